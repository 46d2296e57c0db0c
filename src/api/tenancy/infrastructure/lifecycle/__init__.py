"""Resumable tenant lifecycle operations.

Run out of band (CLI, system-admin routes) with the admin bypass asserted
per transaction and an advisory lock per target.
"""

from tenancy.infrastructure.lifecycle.deprovision import DeprovisionService
from tenancy.infrastructure.lifecycle.manager import TenantLifecycleManager
from tenancy.infrastructure.lifecycle.ownership import OwnershipMigration
from tenancy.infrastructure.lifecycle.provisioning import ProvisioningService
from tenancy.infrastructure.lifecycle.repoint import RepointService
from tenancy.infrastructure.lifecycle.runner import LifecycleRun, LifecycleRunner
from tenancy.infrastructure.lifecycle.tenant_status import (
    InstitutionBackfill,
    TenantStatusService,
)

__all__ = [
    "DeprovisionService",
    "InstitutionBackfill",
    "LifecycleRun",
    "LifecycleRunner",
    "OwnershipMigration",
    "ProvisioningService",
    "RepointService",
    "TenantLifecycleManager",
    "TenantStatusService",
]
