"""PostgreSQL implementation of the audit log port.

Security events (cross-tenant violations, admin data access) are written
in their own short transaction so they persist even when the request
transaction that triggered them rolls back. Domain events are appended by
the repositories inside the caller's transaction instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.sql import Select
from ulid import ULID

from tenancy.infrastructure.event_serializer import to_audit_entry
from tenancy.infrastructure.models import AuditLogModel
from tenancy.infrastructure.observability import (
    DefaultTenancyRepositoryProbe,
    TenancyRepositoryProbe,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from tenancy.domain.events import DomainEvent


def build_audit_query(
    tenant_id: Optional[str] = None,
    event_type: Optional[str] = None,
    limit: int = 100,
) -> Select[tuple[AuditLogModel]]:
    """Newest entries first, optionally narrowed to one tenant and event type."""
    stmt = select(AuditLogModel)
    if tenant_id is not None:
        stmt = stmt.where(AuditLogModel.tenant_id == tenant_id)
    if event_type is not None:
        stmt = stmt.where(AuditLogModel.event_type == event_type)
    return stmt.order_by(
        AuditLogModel.occurred_at.desc(), AuditLogModel.id.desc()
    ).limit(limit)


def append_domain_events(
    session: AsyncSession,
    events: Iterable[DomainEvent],
    actor: Optional[str] = None,
) -> int:
    """Add one audit row per domain event to ``session`` (no flush).

    Returns:
        Number of rows added
    """
    count = 0
    for event in events:
        entry = to_audit_entry(event)
        session.add(
            AuditLogModel(
                id=str(ULID()),
                event_type=entry.event_type,
                actor=actor,
                tenant_id=entry.tenant_id,
                detail=entry.detail,
            )
        )
        count += 1
    return count


class SqlAuditLog:
    """Append-only audit log writing through its own sessions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        probe: TenancyRepositoryProbe | None = None,
    ):
        self._session_factory = session_factory
        self._probe = probe or DefaultTenancyRepositoryProbe()

    async def record(
        self,
        event_type: str,
        actor: Optional[str],
        tenant_id: Optional[str] = None,
        detail: Optional[dict[str, Any]] = None,
    ) -> None:
        """Persist an audit entry in its own transaction."""
        async with self._session_factory() as session, session.begin():
            session.add(
                AuditLogModel(
                    id=str(ULID()),
                    event_type=event_type,
                    actor=actor,
                    tenant_id=tenant_id,
                    detail=dict(detail or {}),
                )
            )
        self._probe.audit_recorded(event_type, tenant_id)

    async def list_entries(
        self,
        tenant_id: Optional[str] = None,
        event_type: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditLogModel]:
        """Read entries without recording the read; callers audit it."""
        stmt = build_audit_query(tenant_id, event_type, limit)
        async with self._session_factory() as session:
            return list((await session.execute(stmt)).scalars().all())
