"""User and SystemAdmin entities for the tenancy context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from tenancy.domain.value_objects import (
    InstitutionId,
    SystemAdminId,
    TenantId,
    UserId,
)


@dataclass
class User:
    """A person acting within one or more tenants.

    ``legacy_tenant_id`` is the single-tenant pointer from before
    memberships existed. It is a resolution hint only and never authorizes
    access on its own.
    """

    id: UserId
    name: str
    email: str
    institution_id: Optional[InstitutionId] = None
    legacy_tenant_id: Optional[TenantId] = None
    active: bool = True


@dataclass
class SystemAdmin:
    """Platform operator. Disjoint from tenant users; holds no tenant."""

    id: SystemAdminId
    email: str
    name: str
    active: bool = True
