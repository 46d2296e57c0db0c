"""Pydantic models for tenant context responses."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from shared_kernel.middleware import TenantContext
from tenancy.domain.aggregates import Tenant, TenantMembership


class TenantContextResponse(BaseModel):
    """Response model for the resolved tenant context of a request."""

    tenant_id: str = Field(..., description="Resolved tenant ID (ULID format)")
    institution_id: str | None = Field(
        None, description="Institution owning the tenant"
    )
    role: str = Field(..., description="Caller's role in the tenant")
    user_id: str = Field(..., description="Authenticated user ID")
    source: str = Field(
        ...,
        description=(
            "How the tenant was selected: header, subdomain, token_default "
            "or single_membership"
        ),
    )

    @classmethod
    def from_context(cls, context: TenantContext) -> TenantContextResponse:
        """Convert a resolved TenantContext to an API response."""
        return cls(
            tenant_id=context.tenant_id or "",
            institution_id=context.institution_id,
            role=context.role,
            user_id=context.user_id,
            source=context.source,
        )


class TenantSummaryResponse(BaseModel):
    """A tenant the caller belongs to, with the caller's role in it."""

    id: str = Field(..., description="Tenant ID (ULID format)")
    slug: str = Field(..., description="Subdomain-safe tenant slug")
    name: str = Field(..., description="Tenant name")
    status: str = Field(..., description="Tenant lifecycle status")
    role: str = Field(..., description="Caller's role in the tenant")

    @classmethod
    def from_domain(
        cls, tenant: Tenant, membership: TenantMembership
    ) -> TenantSummaryResponse:
        """Combine a tenant and the caller's membership in it.

        Args:
            tenant: Tenant domain aggregate
            membership: The caller's active membership in ``tenant``

        Returns:
            TenantSummaryResponse
        """
        return cls(
            id=tenant.id.value,
            slug=tenant.slug.value,
            name=tenant.name,
            status=tenant.status.value,
            role=membership.role.value,
        )


class TenantSettingsResponse(BaseModel):
    """A tenant's configuration values."""

    tenant_id: str = Field(..., description="Tenant ID (ULID format)")
    settings: dict[str, Any] = Field(..., description="Tenant settings")

    @classmethod
    def from_domain(cls, tenant: Tenant) -> TenantSettingsResponse:
        return cls(tenant_id=tenant.id.value, settings=dict(tenant.settings))


class UpdateTenantSettingsRequest(BaseModel):
    """Settings to merge into a tenant's configuration.

    A null value removes the key.
    """

    changes: dict[str, Any] = Field(
        ..., min_length=1, description="Keys to set; null removes the key"
    )
