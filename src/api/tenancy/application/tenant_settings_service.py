"""Tenant settings application service.

Settings are an opaque JSON object per tenant (menu cycle length, stock
alert thresholds and the like). Tenant admins change their own tenant's
settings; system admins can change any tenant's.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tenancy.application.observability import (
    DefaultTenantSettingsProbe,
    TenantSettingsProbe,
)
from tenancy.domain.aggregates import Tenant
from tenancy.domain.value_objects import TenantId
from tenancy.ports.exceptions import TenantNotFoundError
from tenancy.ports.repositories import ITenantRepository

TenantChanged = Callable[[str], None]


class TenantSettingsService:
    """Reads and merges tenant settings."""

    def __init__(
        self,
        tenant_repository: ITenantRepository,
        session: AsyncSession,
        probe: TenantSettingsProbe | None = None,
        on_tenant_changed: Optional[TenantChanged] = None,
    ):
        """Initialize TenantSettingsService with dependencies.

        Args:
            tenant_repository: Repository for tenant persistence
            session: Database session for transaction management
            probe: Optional domain probe for observability
            on_tenant_changed: Called with the tenant id after a committed
                change (directory cache invalidation)
        """
        self._tenants = tenant_repository
        self._session = session
        self._probe = probe or DefaultTenantSettingsProbe()
        self._on_tenant_changed = on_tenant_changed

    async def get_settings(self, tenant_id: TenantId) -> Tenant:
        """Load the tenant carrying the settings.

        Raises:
            TenantNotFoundError: If the tenant does not exist
        """
        async with self._session.begin():
            return await self._get(tenant_id)

    async def update_settings(
        self,
        tenant_id: TenantId,
        changes: dict[str, Any],
        changed_by: Optional[str] = None,
    ) -> Tenant:
        """Merge ``changes`` into the tenant's settings; None removes a key.

        Raises:
            TenantNotFoundError: If the tenant does not exist
            TenantSettingsLockedError: If the tenant is being deprovisioned
            ValueError: If no changes are given or a key is empty
        """
        if not changes:
            raise ValueError("No settings to change")

        async with self._session.begin():
            tenant = await self._get(tenant_id)
            changed = tenant.update_settings(changes, changed_by=changed_by)
            if changed:
                await self._tenants.save(tenant)

        if not changed:
            self._probe.settings_unchanged(tenant_id.value)
            return tenant
        self._probe.settings_updated(tenant_id.value, sorted(changes))
        if self._on_tenant_changed is not None:
            self._on_tenant_changed(tenant_id.value)
        return tenant

    async def _get(self, tenant_id: TenantId) -> Tenant:
        tenant = await self._tenants.get_by_id(tenant_id)
        if tenant is None:
            raise TenantNotFoundError(f"Tenant {tenant_id} not found")
        return tenant
