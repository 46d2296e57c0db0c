"""Domain aggregates for the tenancy context.

Aggregates are the core business objects containing state and business logic.
They enforce invariants and business rules without depending on infrastructure.
"""

from tenancy.domain.aggregates.institution import Institution
from tenancy.domain.aggregates.membership import TenantMembership
from tenancy.domain.aggregates.tenant import ALLOWED_TRANSITIONS, Tenant
from tenancy.domain.aggregates.user import SystemAdmin, User

__all__ = [
    "ALLOWED_TRANSITIONS",
    "Institution",
    "SystemAdmin",
    "Tenant",
    "TenantMembership",
    "User",
]
