"""SQLAlchemy ORM models for the tenancy bounded context.

These models map the directory and audit tables. Tenant-owned business
tables are Core tables in ``tenancy.infrastructure.tenant_owned_tables``.
"""

from tenancy.infrastructure.models.audit import AuditLogModel, LifecycleRunModel
from tenancy.infrastructure.models.institution import InstitutionModel
from tenancy.infrastructure.models.membership import TenantMembershipModel
from tenancy.infrastructure.models.tenant import TenantModel
from tenancy.infrastructure.models.user import SystemAdminModel, UserModel

__all__ = [
    "AuditLogModel",
    "InstitutionModel",
    "LifecycleRunModel",
    "SystemAdminModel",
    "TenantMembershipModel",
    "TenantModel",
    "UserModel",
]
