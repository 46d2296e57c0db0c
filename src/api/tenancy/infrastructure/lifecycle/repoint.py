"""Move a misattributed record, and everything it owns, to another tenant.

The move, the cascade through owned children and the reference check run
in one transaction: either every affected row lands in the target tenant
with all references still tenant-consistent, or nothing changes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

from sqlalchemy import select, update

from tenancy.domain.value_objects import TenantId, TenantStatus
from tenancy.infrastructure.lifecycle.references import mismatched_references
from tenancy.infrastructure.lifecycle.runner import LifecycleRunner
from tenancy.infrastructure.models import TenantModel
from tenancy.infrastructure.tenant_owned_tables import (
    TENANT_COLUMN,
    TenantOwnedTable,
    get_tenant_owned,
    owned_children,
)
from tenancy.ports.exceptions import MigrationPhaseError, TenantNotFoundError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

_ACCEPTS_RECORDS = (TenantStatus.ACTIVE.value, TenantStatus.SUSPENDED.value)


class RepointService:
    """Reassigns a record's tenant with a cascade to its owned children."""

    OPERATION = "repoint"
    PHASE = "repoint"

    def __init__(self, runner: LifecycleRunner):
        self._runner = runner

    async def repoint(
        self,
        table: str,
        record_id: int,
        to_tenant: TenantId,
        from_tenant: Optional[TenantId] = None,
    ) -> dict[str, int]:
        """Move ``table``/``record_id`` into ``to_tenant``.

        Args:
            table: Registered tenant-owned table
            record_id: Primary key of the record
            to_tenant: Tenant that should own the record
            from_tenant: Expected current owner; refuses if it differs

        Returns:
            Rows moved per table (empty when already owned by ``to_tenant``)

        Raises:
            TenantNotFoundError: If ``to_tenant`` cannot receive records
            MigrationPhaseError: If the record is missing, owned by someone
                other than ``from_tenant``, or the move would leave a
                cross-tenant reference behind
        """
        entry = get_tenant_owned(table)
        moved: dict[str, list[int]] = {}

        async def work() -> Optional[int]:
            async with self._runner.transaction() as session:
                return await self._repoint(
                    session, entry, record_id, to_tenant, from_tenant, moved
                )

        async with self._runner.run(
            self.OPERATION, f"{entry.name}:{record_id}", f"tenant:{to_tenant}"
        ) as run:
            await run.phase(self.PHASE, work)
        return {name: len(ids) for name, ids in moved.items()}

    async def _repoint(
        self,
        session: AsyncSession,
        entry: TenantOwnedTable,
        record_id: int,
        to_tenant: TenantId,
        from_tenant: Optional[TenantId],
        moved: dict[str, list[int]],
    ) -> Optional[int]:
        target_status = (
            await session.execute(
                select(TenantModel.status).where(TenantModel.id == to_tenant.value)
            )
        ).scalar_one_or_none()
        if target_status not in _ACCEPTS_RECORDS:
            raise TenantNotFoundError(f"Tenant {to_tenant} cannot receive records")

        table = entry.table
        current = (
            await session.execute(
                select(table.c[TENANT_COLUMN])
                .where(table.c.id == record_id)
                .with_for_update()
            )
        ).one_or_none()
        if current is None:
            raise MigrationPhaseError(
                self.OPERATION, self.PHASE, f"{entry.name} {record_id} not found"
            )
        current_tenant = current[0]
        if current_tenant == to_tenant.value:
            return None
        if from_tenant is not None and current_tenant != from_tenant.value:
            raise MigrationPhaseError(
                self.OPERATION,
                self.PHASE,
                f"{entry.name} {record_id} belongs to {current_tenant}, "
                f"not {from_tenant}",
            )

        await self._move(
            session, entry, [record_id], current_tenant, to_tenant.value, moved
        )

        mismatched = await mismatched_references(session, moved)
        if mismatched:
            detail = ", ".join(f"{ref}={count}" for ref, count in mismatched.items())
            raise MigrationPhaseError(
                self.OPERATION,
                self.PHASE,
                f"moving {entry.name} {record_id} would leave cross-tenant "
                f"references: {detail}",
            )
        return sum(len(ids) for ids in moved.values())

    async def _move(
        self,
        session: AsyncSession,
        entry: TenantOwnedTable,
        ids: Sequence[int],
        source: Optional[str],
        target: str,
        moved: dict[str, list[int]],
        column: str = "id",
    ) -> None:
        table = entry.table
        owner_match = (
            table.c[TENANT_COLUMN].is_(None)
            if source is None
            else table.c[TENANT_COLUMN] == source
        )
        result = await session.execute(
            update(table)
            .where(table.c[column].in_(list(ids)))
            .where(owner_match)
            .values({TENANT_COLUMN: target})
            .returning(table.c.id)
        )
        changed = list(result.scalars().all())
        if not changed:
            return
        moved.setdefault(entry.name, []).extend(changed)
        for child, reference in owned_children(entry.name):
            await self._move(
                session, child, changed, source, target, moved, reference.column
            )
