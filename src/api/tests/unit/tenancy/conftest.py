"""Shared fixtures for tenancy unit tests.

Provides an in-memory tenant directory and small builders for tenants and
memberships, so resolver and route tests can describe the hierarchy they
need in a few lines.
"""

from __future__ import annotations

from typing import Optional

import pytest

from tenancy.domain.aggregates import SystemAdmin, Tenant, TenantMembership, User
from tenancy.domain.value_objects import (
    InstitutionId,
    MembershipStatus,
    Slug,
    SystemAdminId,
    TenantId,
    TenantRole,
    TenantStatus,
    UserId,
)


class InMemoryTenantDirectory:
    """TenantDirectory backed by dictionaries."""

    def __init__(self) -> None:
        self.tenants: dict[str, Tenant] = {}
        self.memberships: dict[tuple[str, str], TenantMembership] = {}
        self.users: dict[str, User] = {}
        self.admins: dict[str, SystemAdmin] = {}
        self.calls: list[str] = []

    def add_tenant(
        self,
        slug: str,
        status: TenantStatus = TenantStatus.ACTIVE,
        institution_id: Optional[InstitutionId] = None,
    ) -> Tenant:
        tenant = Tenant(
            id=TenantId.generate(),
            slug=Slug(slug),
            name=slug.replace("-", " ").title(),
            institution_id=institution_id or InstitutionId.generate(),
            status=status,
        )
        self.tenants[tenant.id.value] = tenant
        return tenant

    def add_membership(
        self,
        user_id: str,
        tenant: Tenant,
        role: TenantRole = TenantRole.MEMBER,
        status: MembershipStatus = MembershipStatus.ACTIVE,
    ) -> TenantMembership:
        membership = TenantMembership(
            user_id=UserId(value=user_id),
            tenant_id=tenant.id,
            role=role,
            status=status,
        )
        self.memberships[(user_id, tenant.id.value)] = membership
        return membership

    def add_admin(self, admin_id: str, active: bool = True) -> SystemAdmin:
        admin = SystemAdmin(
            id=SystemAdminId(value=admin_id),
            email=f"{admin_id}@merenda.app",
            name=admin_id,
            active=active,
        )
        self.admins[admin_id] = admin
        return admin

    async def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        self.calls.append(f"get_tenant:{tenant_id}")
        tenant = self.tenants.get(tenant_id)
        if tenant is None or tenant.status == TenantStatus.DELETED:
            return None
        return tenant

    async def get_tenant_by_slug(self, slug: str) -> Optional[Tenant]:
        self.calls.append(f"get_tenant_by_slug:{slug}")
        for tenant in self.tenants.values():
            if tenant.slug.value == slug and tenant.status != TenantStatus.DELETED:
                return tenant
        return None

    async def get_membership(
        self, user_id: str, tenant_id: str
    ) -> Optional[TenantMembership]:
        self.calls.append(f"get_membership:{user_id}:{tenant_id}")
        return self.memberships.get((user_id, tenant_id))

    async def list_active_memberships(self, user_id: str) -> list[TenantMembership]:
        self.calls.append(f"list_active_memberships:{user_id}")
        return [
            m
            for (member, tenant_id), m in self.memberships.items()
            if member == user_id
            and m.is_active
            and self.tenants[tenant_id].is_resolvable
        ]

    async def get_user(self, user_id: str) -> Optional[User]:
        self.calls.append(f"get_user:{user_id}")
        return self.users.get(user_id)

    async def get_system_admin(self, admin_id: str) -> Optional[SystemAdmin]:
        self.calls.append(f"get_system_admin:{admin_id}")
        admin = self.admins.get(admin_id)
        return admin if admin is not None and admin.active else None


@pytest.fixture
def directory() -> InMemoryTenantDirectory:
    """Empty in-memory tenant directory."""
    return InMemoryTenantDirectory()
