"""Pydantic models for tenant membership requests and responses."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from tenancy.domain.aggregates import TenantMembership
from tenancy.domain.value_objects import TenantRole


class TenantRoleEnum(StrEnum):
    """API-level enum for tenant roles.

    Maps to domain TenantRole values for validation.
    """

    ADMIN = "admin"
    MEMBER = "member"


class InviteMemberRequest(BaseModel):
    """Request model for inviting a user into the current tenant."""

    user_id: str = Field(..., description="User ID to invite", min_length=1)
    role: TenantRoleEnum = Field(
        TenantRoleEnum.MEMBER, description="Role to assign (admin or member)"
    )

    def to_domain_role(self) -> TenantRole:
        return TenantRole(self.role.value)


class ChangeRoleRequest(BaseModel):
    """Request model for changing a member's role."""

    role: TenantRoleEnum = Field(..., description="New role (admin or member)")

    def to_domain_role(self) -> TenantRole:
        return TenantRole(self.role.value)


class MembershipResponse(BaseModel):
    """Response model for a tenant membership."""

    user_id: str = Field(..., description="Member's user ID")
    tenant_id: str = Field(..., description="Tenant ID (ULID format)")
    role: str = Field(..., description="Member's role in the tenant")
    status: str = Field(..., description="invited, active or revoked")

    @classmethod
    def from_domain(cls, membership: TenantMembership) -> MembershipResponse:
        """Convert a domain TenantMembership to an API response.

        Args:
            membership: TenantMembership domain aggregate

        Returns:
            MembershipResponse
        """
        return cls(
            user_id=membership.user_id.value,
            tenant_id=membership.tenant_id.value,
            role=membership.role.value,
            status=membership.status.value,
        )
