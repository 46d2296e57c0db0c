"""Reconstitution of tenancy aggregates from ORM models."""

from __future__ import annotations

from tenancy.domain.aggregates import (
    Institution,
    SystemAdmin,
    Tenant,
    TenantMembership,
    User,
)
from tenancy.domain.value_objects import (
    InstitutionId,
    MembershipStatus,
    ResourceLimits,
    Slug,
    SystemAdminId,
    TenantId,
    TenantRole,
    TenantStatus,
    UserId,
)
from tenancy.infrastructure.models import (
    InstitutionModel,
    SystemAdminModel,
    TenantMembershipModel,
    TenantModel,
    UserModel,
)


def tenant_from_model(model: TenantModel) -> Tenant:
    return Tenant(
        id=TenantId(value=model.id),
        slug=Slug(model.slug),
        name=model.name,
        institution_id=(
            InstitutionId(value=model.institution_id) if model.institution_id else None
        ),
        status=TenantStatus(model.status),
        settings=dict(model.settings or {}),
        limits=dict(model.limits or {}),
        created_at=model.created_at,
    )


def institution_from_model(model: InstitutionModel) -> Institution:
    return Institution(
        id=InstitutionId(value=model.id),
        slug=Slug(model.slug),
        name=model.name,
        legal_name=model.legal_name,
        document=model.document,
        contact_email=model.contact_email,
        plan=model.plan,
        limits=ResourceLimits(
            max_tenants=model.max_tenants,
            max_users=model.max_users,
            max_schools=model.max_schools,
        ),
        default_tenant_id=(
            TenantId(value=model.default_tenant_id)
            if model.default_tenant_id
            else None
        ),
        active=model.active,
    )


def membership_from_model(model: TenantMembershipModel) -> TenantMembership:
    return TenantMembership(
        user_id=UserId(value=model.user_id),
        tenant_id=TenantId(value=model.tenant_id),
        role=TenantRole(model.role),
        status=MembershipStatus(model.status),
        created_at=model.created_at,
    )


def user_from_model(model: UserModel) -> User:
    return User(
        id=UserId(value=model.id),
        name=model.name,
        email=model.email,
        institution_id=(
            InstitutionId(value=model.institution_id) if model.institution_id else None
        ),
        legacy_tenant_id=TenantId(value=model.tenant_id) if model.tenant_id else None,
        active=model.active,
    )


def system_admin_from_model(model: SystemAdminModel) -> SystemAdmin:
    return SystemAdmin(
        id=SystemAdminId(value=model.id),
        email=model.email,
        name=model.name,
        active=model.active,
    )
