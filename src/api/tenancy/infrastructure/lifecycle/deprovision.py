"""Tenant deprovisioning: purge or merge, then delete.

Phases, each committed separately:

``mark_deprovisioning``
    Status becomes ``deprovisioning``; the resolver stops serving the tenant.
``verify_references``
    Fails while records of other tenants (other than a merge target)
    reference this tenant's records.
``purge_records`` / ``merge_records``
    Delete every tenant-owned row (children first), or hand every row to
    the merge target (parents first).
``remove_memberships``
    Drop memberships; on merge, members are carried over to the target
    unless they already belong to it.
``delete_tenant``
    Clear the institution's default pointer and delete the tenant row.

A re-run after a failure repeats only phases whose work is still pending.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Optional

from sqlalchemy import delete, literal, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert

from tenancy.domain.value_objects import TenantId, TenantStatus
from tenancy.infrastructure.lifecycle.references import foreign_references
from tenancy.infrastructure.lifecycle.runner import LifecycleRunner
from tenancy.infrastructure.membership_repository import MembershipRepository
from tenancy.infrastructure.models import (
    InstitutionModel,
    TenantMembershipModel,
    UserModel,
)
from tenancy.infrastructure.tenant_owned_tables import (
    TENANT_COLUMN,
    TENANT_OWNED_TABLES,
    dependency_order,
)
from tenancy.infrastructure.tenant_repository import TenantRepository
from tenancy.ports.exceptions import (
    MigrationPhaseError,
    TenantHasForeignReferencesError,
    TenantNotFoundError,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from tenancy.domain.aggregates import Tenant

TenantChanged = Callable[[str], None]


class DeprovisionService:
    """Removes a tenant and its data, or folds it into another tenant."""

    OPERATION = "deprovision"

    def __init__(
        self,
        runner: LifecycleRunner,
        on_tenant_changed: Optional[TenantChanged] = None,
    ):
        """Initialize the service.

        Args:
            runner: Lifecycle runner
            on_tenant_changed: Called with the tenant id once the tenant
                stops serving data (directory cache invalidation)
        """
        self._runner = runner
        self._on_tenant_changed = on_tenant_changed

    async def deprovision(
        self,
        tenant_id: TenantId,
        merge_into: Optional[TenantId] = None,
        reason: Optional[str] = None,
    ) -> dict[str, int]:
        """Deprovision ``tenant_id``.

        Returns:
            Affected count per phase

        Raises:
            TenantNotFoundError: If the tenant (or merge target) does not exist
            MigrationPhaseError: Naming the phase that failed
            LifecycleLockedError: If the tenant is locked by another operation
        """
        if merge_into is not None and merge_into == tenant_id:
            raise ValueError("A tenant cannot be merged into itself")

        target = tenant_id.value
        done = await self._runner.run_log.completed_phases(self.OPERATION, target)
        results: dict[str, int] = {}
        async with self._runner.run(self.OPERATION, target, f"tenant:{target}") as run:
            if "delete_tenant" in done:
                return results

            results["mark_deprovisioning"] = await run.phase(
                "mark_deprovisioning",
                lambda: self._mark_deprovisioning(tenant_id, merge_into, reason),
            )
            if self._on_tenant_changed is not None:
                self._on_tenant_changed(target)

            results["verify_references"] = await run.phase(
                "verify_references",
                lambda: self._verify_references(tenant_id, merge_into),
            )
            if merge_into is None:
                results["purge_records"] = await run.phase(
                    "purge_records", lambda: self._purge_records(tenant_id)
                )
            else:
                results["merge_records"] = await run.phase(
                    "merge_records",
                    lambda: self._merge_records(tenant_id, merge_into),
                )
            results["remove_memberships"] = await run.phase(
                "remove_memberships",
                lambda: self._remove_memberships(tenant_id, merge_into),
            )
            results["delete_tenant"] = await run.phase(
                "delete_tenant", lambda: self._delete_tenant(tenant_id, merge_into)
            )

        if self._on_tenant_changed is not None:
            self._on_tenant_changed(target)
            if merge_into is not None:
                self._on_tenant_changed(merge_into.value)
        return results

    async def _load(self, session: AsyncSession, tenant_id: TenantId) -> Tenant:
        tenant = await TenantRepository(session).get_by_id(tenant_id)
        if tenant is None:
            raise TenantNotFoundError(f"Tenant {tenant_id} not found")
        return tenant

    async def _mark_deprovisioning(
        self,
        tenant_id: TenantId,
        merge_into: Optional[TenantId],
        reason: Optional[str],
    ) -> Optional[int]:
        async with self._runner.transaction() as session:
            tenant = await self._load(session, tenant_id)
            if merge_into is not None:
                survivor = await self._load(session, merge_into)
                if not survivor.is_resolvable:
                    raise MigrationPhaseError(
                        self.OPERATION,
                        "mark_deprovisioning",
                        f"merge target {merge_into} is {survivor.status.value}",
                    )
                if survivor.institution_id != tenant.institution_id:
                    raise MigrationPhaseError(
                        self.OPERATION,
                        "mark_deprovisioning",
                        "merge target belongs to a different institution",
                    )
            if tenant.status == TenantStatus.DEPROVISIONING:
                return None
            tenant.begin_deprovisioning(reason)
            await TenantRepository(session, actor=self._runner.actor).save(tenant)
        return 1

    async def _verify_references(
        self, tenant_id: TenantId, merge_into: Optional[TenantId]
    ) -> Optional[int]:
        async with self._runner.transaction() as session:
            found = await foreign_references(
                session,
                tenant_id.value,
                merge_into.value if merge_into is not None else None,
            )
        if found:
            error = TenantHasForeignReferencesError(tenant_id.value, found)
            raise MigrationPhaseError(
                self.OPERATION, "verify_references", str(error)
            ) from error
        return None

    async def _purge_records(self, tenant_id: TenantId) -> Optional[int]:
        total = 0
        async with self._runner.transaction() as session:
            for name in reversed(dependency_order()):
                table = TENANT_OWNED_TABLES[name].table
                result = await session.execute(
                    delete(table).where(table.c[TENANT_COLUMN] == tenant_id.value)
                )
                total += result.rowcount
        return total or None

    async def _merge_records(
        self, tenant_id: TenantId, merge_into: TenantId
    ) -> Optional[int]:
        total = 0
        async with self._runner.transaction() as session:
            for name in dependency_order():
                table = TENANT_OWNED_TABLES[name].table
                result = await session.execute(
                    update(table)
                    .where(table.c[TENANT_COLUMN] == tenant_id.value)
                    .values({TENANT_COLUMN: merge_into.value})
                )
                total += result.rowcount
            # Legacy single-tenant pointers follow the data.
            await session.execute(
                update(UserModel)
                .where(UserModel.tenant_id == tenant_id.value)
                .values(tenant_id=merge_into.value)
            )
        return total or None

    async def _remove_memberships(
        self, tenant_id: TenantId, merge_into: Optional[TenantId]
    ) -> Optional[int]:
        async with self._runner.transaction() as session:
            if merge_into is not None:
                carried = select(
                    TenantMembershipModel.user_id,
                    literal(merge_into.value),
                    TenantMembershipModel.role,
                    TenantMembershipModel.status,
                ).where(TenantMembershipModel.tenant_id == tenant_id.value)
                await session.execute(
                    pg_insert(TenantMembershipModel)
                    .from_select(["user_id", "tenant_id", "role", "status"], carried)
                    .on_conflict_do_nothing(index_elements=["user_id", "tenant_id"])
                )
            removed = await MembershipRepository(session).delete_by_tenant(tenant_id)
        return removed or None

    async def _delete_tenant(
        self, tenant_id: TenantId, merge_into: Optional[TenantId]
    ) -> Optional[int]:
        async with self._runner.transaction() as session:
            tenants = TenantRepository(session, actor=self._runner.actor)
            tenant = await tenants.get_by_id(tenant_id)
            if tenant is None:
                return None
            await session.execute(
                update(InstitutionModel)
                .where(InstitutionModel.default_tenant_id == tenant_id.value)
                .values(
                    default_tenant_id=(
                        merge_into.value if merge_into is not None else None
                    )
                )
            )
            tenant.mark_deleted()
            await tenants.delete(tenant)
        return 1
