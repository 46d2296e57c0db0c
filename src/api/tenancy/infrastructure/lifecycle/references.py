"""Cross-tenant reference checks over the tenant-owned table registry.

A reference is consistent when the referencing row and the referenced row
belong to the same tenant. Repoint and deprovision verify this before they
commit.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Optional, Sequence

from sqlalchemy import Select, and_, func, or_, select

from tenancy.infrastructure.tenant_owned_tables import (
    TENANT_COLUMN,
    TENANT_OWNED_TABLES,
    Reference,
    TenantOwnedTable,
    all_references,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


def reference_label(entry: TenantOwnedTable, reference: Reference) -> str:
    return f"{entry.name}.{reference.column}->{reference.parent}"


def mismatched_reference_count(
    entry: TenantOwnedTable,
    reference: Reference,
    child_ids: Sequence[int] = (),
    parent_ids: Sequence[int] = (),
) -> Optional[Select[Any]]:
    """Count rows of ``entry`` whose tenant differs from the referenced row's.

    Only rows touching ``child_ids`` (as referencing rows) or ``parent_ids``
    (as referenced rows) are considered. Returns None when neither is given.
    """
    child = entry.table
    parent = TENANT_OWNED_TABLES[reference.parent].table
    touched = []
    if child_ids:
        touched.append(child.c.id.in_(list(child_ids)))
    if parent_ids:
        touched.append(parent.c.id.in_(list(parent_ids)))
    if not touched:
        return None
    return (
        select(func.count())
        .select_from(
            child.join(parent, parent.c.id == child.c[reference.column])
        )
        .where(child.c[TENANT_COLUMN] != parent.c[TENANT_COLUMN])
        .where(or_(*touched))
    )


def foreign_reference_count(
    entry: TenantOwnedTable,
    reference: Reference,
    tenant_id: str,
    allowed_tenant_id: Optional[str] = None,
) -> Select[Any]:
    """Count rows of other tenants that reference a row owned by ``tenant_id``.

    Rows belonging to ``allowed_tenant_id`` (a merge target) are not counted.
    """
    child = entry.table
    parent = TENANT_OWNED_TABLES[reference.parent].table
    conditions = [
        parent.c[TENANT_COLUMN] == tenant_id,
        child.c[TENANT_COLUMN] != tenant_id,
    ]
    if allowed_tenant_id is not None:
        conditions.append(child.c[TENANT_COLUMN] != allowed_tenant_id)
    return (
        select(func.count())
        .select_from(
            child.join(parent, parent.c.id == child.c[reference.column])
        )
        .where(and_(*conditions))
    )


async def mismatched_references(
    session: AsyncSession, moved: Mapping[str, Sequence[int]]
) -> dict[str, int]:
    """References left inconsistent after the rows in ``moved`` changed tenant."""
    found: dict[str, int] = {}
    for entry, reference in all_references():
        stmt = mismatched_reference_count(
            entry,
            reference,
            child_ids=moved.get(entry.name, ()),
            parent_ids=moved.get(reference.parent, ()),
        )
        if stmt is None:
            continue
        count = int((await session.execute(stmt)).scalar_one())
        if count:
            found[reference_label(entry, reference)] = count
    return found


async def foreign_references(
    session: AsyncSession,
    tenant_id: str,
    allowed_tenant_id: Optional[str] = None,
) -> dict[str, int]:
    """References from other tenants into ``tenant_id``'s records."""
    found: dict[str, int] = {}
    for entry, reference in all_references():
        stmt = foreign_reference_count(entry, reference, tenant_id, allowed_tenant_id)
        count = int((await session.execute(stmt)).scalar_one())
        if count:
            found[reference_label(entry, reference)] = count
    return found
