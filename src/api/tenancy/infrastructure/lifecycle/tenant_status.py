"""Tenant status changes and the one-time institution backfill."""

from __future__ import annotations

from typing import Callable, Optional, Sequence

from tenancy.domain.aggregates import Tenant
from tenancy.domain.value_objects import InstitutionId, TenantId
from tenancy.infrastructure.lifecycle.runner import LifecycleRunner
from tenancy.infrastructure.tenant_repository import (
    InstitutionRepository,
    TenantRepository,
)
from tenancy.ports.exceptions import InstitutionNotFoundError, TenantNotFoundError

TenantChanged = Callable[[str], None]


class TenantStatusService:
    """Activates, suspends and reactivates tenants.

    Suspension takes effect for new requests once the directory cache entry
    expires (or immediately in the process that made the change).
    """

    def __init__(
        self,
        runner: LifecycleRunner,
        on_tenant_changed: Optional[TenantChanged] = None,
    ):
        self._runner = runner
        self._on_tenant_changed = on_tenant_changed

    async def activate(self, tenant_id: TenantId) -> Tenant:
        """Move a provisioning or suspended tenant to ``active``."""
        return await self._change("activate", tenant_id, lambda t: t.activate())

    async def reactivate(self, tenant_id: TenantId) -> Tenant:
        """Lift a suspension."""
        return await self._change("reactivate", tenant_id, lambda t: t.activate())

    async def suspend(
        self, tenant_id: TenantId, reason: Optional[str] = None
    ) -> Tenant:
        return await self._change("suspend", tenant_id, lambda t: t.suspend(reason))

    async def _change(
        self,
        operation: str,
        tenant_id: TenantId,
        apply: Callable[[Tenant], None],
    ) -> Tenant:
        """Apply a state transition under the tenant lock.

        Raises:
            TenantNotFoundError: If the tenant does not exist
            InvalidTenantTransitionError: If the transition is not allowed
        """
        changed: list[Tenant] = []

        async def work() -> Optional[int]:
            async with self._runner.transaction() as session:
                tenants = TenantRepository(session, actor=self._runner.actor)
                tenant = await tenants.get_by_id(tenant_id)
                if tenant is None:
                    raise TenantNotFoundError(f"Tenant {tenant_id} not found")
                before = tenant.status
                apply(tenant)
                changed.append(tenant)
                if tenant.status == before:
                    return None
                await tenants.save(tenant)
            return 1

        async with self._runner.run(
            operation, tenant_id.value, f"tenant:{tenant_id}"
        ) as run:
            await run.phase("set_status", work)

        if self._on_tenant_changed is not None:
            self._on_tenant_changed(tenant_id.value)
        return changed[0]


class InstitutionBackfill:
    """Attaches tenants created before institutions existed."""

    OPERATION = "link_orphans"

    def __init__(self, runner: LifecycleRunner):
        self._runner = runner

    async def link_orphan_tenants(
        self,
        institution_id: InstitutionId,
        tenant_ids: Sequence[TenantId] = (),
    ) -> list[TenantId]:
        """Link tenants with no institution to ``institution_id``.

        Args:
            institution_id: Institution receiving the tenants
            tenant_ids: Restrict to these tenants; all orphans when empty

        Returns:
            Ids of the tenants linked by this call

        Raises:
            InstitutionNotFoundError: If the institution does not exist
        """
        linked: list[TenantId] = []

        async def work() -> Optional[int]:
            actor = self._runner.actor
            async with self._runner.transaction() as session:
                institutions = InstitutionRepository(session, actor=actor)
                tenants = TenantRepository(session, actor=actor)
                institution = await institutions.get_by_id(institution_id)
                if institution is None:
                    raise InstitutionNotFoundError(
                        f"Institution {institution_id} not found"
                    )
                wanted = {t.value for t in tenant_ids}
                for tenant in await tenants.list_without_institution():
                    if wanted and tenant.id.value not in wanted:
                        continue
                    tenant.link_institution(institution_id)
                    await tenants.save(tenant)
                    linked.append(tenant.id)
                if linked and institution.ensure_default_tenant(linked[0]):
                    await institutions.save(institution)
            return len(linked) or None

        async with self._runner.run(
            self.OPERATION, institution_id.value, f"institution:{institution_id}"
        ) as run:
            await run.phase("link", work)
        return linked
