"""Entry point bundling the tenant lifecycle operations."""

from __future__ import annotations

from typing import Callable, Optional

from tenancy.infrastructure.lifecycle.deprovision import DeprovisionService
from tenancy.infrastructure.lifecycle.ownership import OwnershipMigration
from tenancy.infrastructure.lifecycle.provisioning import ProvisioningService
from tenancy.infrastructure.lifecycle.repoint import RepointService
from tenancy.infrastructure.lifecycle.runner import LifecycleRunner
from tenancy.infrastructure.lifecycle.tenant_status import (
    InstitutionBackfill,
    TenantStatusService,
)


class TenantLifecycleManager:
    """Provisioning, ownership migration, repoint, deprovisioning and status.

    All operations share one runner, so they share its locks, run log and
    probe. ``on_tenant_changed`` is called with a tenant id whenever a
    change must be visible to request resolution in this process.
    """

    def __init__(
        self,
        runner: LifecycleRunner,
        batch_size: int = 1000,
        tenant_setting: str = "app.current_tenant_id",
        bypass_setting: str = "app.admin_bypass",
        on_tenant_changed: Optional[Callable[[str], None]] = None,
    ):
        self.runner = runner
        self.provisioning = ProvisioningService(runner)
        self.ownership = OwnershipMigration(
            runner,
            batch_size=batch_size,
            tenant_setting=tenant_setting,
            bypass_setting=bypass_setting,
        )
        self.repoint = RepointService(runner)
        self.deprovisioning = DeprovisionService(runner, on_tenant_changed)
        self.status = TenantStatusService(runner, on_tenant_changed)
        self.institutions = InstitutionBackfill(runner)
