"""Catalog queries used to make lifecycle phases idempotent.

Each phase checks the current schema state first and does nothing when its
target state already holds.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import text

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


async def column_nullable(
    session: AsyncSession, table: str, column: str
) -> Optional[bool]:
    """True/False for an existing column's nullability, None if it is missing."""
    result = await session.execute(
        text(
            "SELECT is_nullable FROM information_schema.columns "
            "WHERE table_schema = current_schema() "
            "AND table_name = :table AND column_name = :column"
        ),
        {"table": table, "column": column},
    )
    value = result.scalar_one_or_none()
    if value is None:
        return None
    return value == "YES"


async def constraint_exists(session: AsyncSession, table: str, name: str) -> bool:
    result = await session.execute(
        text(
            "SELECT EXISTS (SELECT 1 FROM pg_constraint c "
            "JOIN pg_class t ON t.oid = c.conrelid "
            "JOIN pg_namespace n ON n.oid = t.relnamespace "
            "WHERE n.nspname = current_schema() "
            "AND t.relname = :table AND c.conname = :name)"
        ),
        {"table": table, "name": name},
    )
    return bool(result.scalar_one())


async def global_unique_constraints(
    session: AsyncSession, table: str, columns: tuple[str, ...]
) -> list[str]:
    """Names of UNIQUE constraints on exactly ``columns`` (no tenant_id)."""
    result = await session.execute(
        text(
            "SELECT c.conname FROM pg_constraint c "
            "JOIN pg_class t ON t.oid = c.conrelid "
            "JOIN pg_namespace n ON n.oid = t.relnamespace "
            "WHERE n.nspname = current_schema() AND t.relname = :table "
            "AND c.contype = 'u' "
            "AND ARRAY(SELECT a.attname::text FROM unnest(c.conkey) k "
            "JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = k "
            "ORDER BY a.attname) = :columns"
        ),
        {"table": table, "columns": sorted(columns)},
    )
    return list(result.scalars().all())


async def index_exists(session: AsyncSession, name: str) -> bool:
    result = await session.execute(
        text(
            "SELECT EXISTS (SELECT 1 FROM pg_indexes "
            "WHERE schemaname = current_schema() AND indexname = :name)"
        ),
        {"name": name},
    )
    return bool(result.scalar_one())
