"""Pydantic models for system-admin requests and responses."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from tenancy.domain.aggregates import Institution, Tenant
from tenancy.domain.value_objects import ResourceLimits
from tenancy.infrastructure.models import AuditLogModel, LifecycleRunModel


class CreateInstitutionRequest(BaseModel):
    """Request model for registering an institution."""

    slug: str = Field(..., description="Subdomain-safe unique slug", max_length=63)
    name: str = Field(..., description="Display name", min_length=1, max_length=255)
    legal_name: str | None = Field(None, description="Registered legal name")
    document: str | None = Field(None, description="Tax registration number")
    contact_email: str | None = Field(None, description="Contact e-mail")
    plan: str = Field("basic", description="Commercial plan")
    max_tenants: int | None = Field(
        None, ge=1, description="Tenant cap (unlimited when omitted)"
    )
    max_users: int | None = Field(None, ge=1, description="User cap")
    max_schools: int | None = Field(None, ge=1, description="School cap")

    def to_limits(self) -> ResourceLimits:
        return ResourceLimits(
            max_tenants=self.max_tenants,
            max_users=self.max_users,
            max_schools=self.max_schools,
        )


class InstitutionResponse(BaseModel):
    """Response model for an institution."""

    id: str = Field(..., description="Institution ID (ULID format)")
    slug: str = Field(..., description="Institution slug")
    name: str = Field(..., description="Institution name")
    plan: str = Field(..., description="Commercial plan")
    default_tenant_id: str | None = Field(
        None, description="Primary tenant, once one exists"
    )
    max_tenants: int | None = Field(None, description="Tenant cap")

    @classmethod
    def from_domain(cls, institution: Institution) -> InstitutionResponse:
        """Convert a domain Institution aggregate to an API response."""
        return cls(
            id=institution.id.value,
            slug=institution.slug.value,
            name=institution.name,
            plan=institution.plan,
            default_tenant_id=(
                institution.default_tenant_id.value
                if institution.default_tenant_id
                else None
            ),
            max_tenants=institution.limits.max_tenants,
        )


class ProvisionTenantRequest(BaseModel):
    """Request model for provisioning a tenant inside an institution."""

    slug: str = Field(..., description="Subdomain-safe unique slug", max_length=63)
    name: str = Field(..., description="Tenant name", min_length=1, max_length=255)
    admin_user_id: str = Field(
        ..., description="Existing user who becomes the first admin", min_length=1
    )
    settings: dict[str, Any] = Field(
        default_factory=dict, description="Tenant configuration"
    )


class TenantResponse(BaseModel):
    """Response model for a tenant."""

    id: str = Field(..., description="Tenant ID (ULID format)")
    slug: str = Field(..., description="Tenant slug")
    name: str = Field(..., description="Tenant name")
    institution_id: str | None = Field(None, description="Owning institution")
    status: str = Field(..., description="Tenant lifecycle status")

    @classmethod
    def from_domain(cls, tenant: Tenant) -> TenantResponse:
        """Convert a domain Tenant aggregate to an API response."""
        return cls(
            id=tenant.id.value,
            slug=tenant.slug.value,
            name=tenant.name,
            institution_id=(
                tenant.institution_id.value if tenant.institution_id else None
            ),
            status=tenant.status.value,
        )


class SuspendTenantRequest(BaseModel):
    """Request model for suspending a tenant."""

    reason: str | None = Field(None, description="Why the tenant is suspended")


class LinkOrphansRequest(BaseModel):
    """Request model for attaching institution-less tenants."""

    tenant_ids: list[str] = Field(
        default_factory=list,
        description="Tenants to link; every orphan tenant when empty",
    )


class LinkOrphansResponse(BaseModel):
    institution_id: str = Field(..., description="Institution ID")
    linked: list[str] = Field(..., description="Tenants linked by this call")


class RepointRecordRequest(BaseModel):
    """Request model for moving a misattributed record to another tenant."""

    table: str = Field(..., description="Tenant-owned table name")
    record_id: int = Field(..., description="Primary key of the record")
    to_tenant_id: str = Field(..., description="Tenant that should own the record")
    from_tenant_id: str | None = Field(
        None, description="Expected current owner; refused if it differs"
    )


class LifecycleResultResponse(BaseModel):
    """Outcome of a lifecycle operation: an affected count per key."""

    operation: str = Field(..., description="Lifecycle operation name")
    target: str = Field(..., description="Tenant, institution or record acted on")
    results: dict[str, int] = Field(
        ..., description="Affected rows per phase or per table"
    )


class TenantCountsResponse(BaseModel):
    table: str = Field(..., description="Tenant-owned table name")
    counts: dict[str, int] = Field(..., description="Row count per tenant ID")


class LifecycleRunResponse(BaseModel):
    """One recorded invocation of a lifecycle operation."""

    id: str = Field(..., description="Run ID (ULID format)")
    operation: str = Field(..., description="Lifecycle operation name")
    target: str = Field(..., description="Target of the operation")
    status: str = Field(..., description="running, completed or failed")
    phases: list[str] = Field(..., description="Phases committed, in order")
    detail: str | None = Field(None, description="Failure detail")
    started_at: datetime = Field(..., description="Start time")
    finished_at: datetime | None = Field(None, description="End time")

    @classmethod
    def from_model(cls, run: LifecycleRunModel) -> LifecycleRunResponse:
        return cls(
            id=run.id,
            operation=run.operation,
            target=run.target,
            status=run.status,
            phases=list(run.phases or []),
            detail=run.detail,
            started_at=run.started_at,
            finished_at=run.finished_at,
        )


class AuditEntryResponse(BaseModel):
    """One audit trail entry."""

    id: str = Field(..., description="Entry ID (ULID format)")
    event_type: str = Field(..., description="Domain event or security event name")
    actor: str | None = Field(None, description="Who caused the entry")
    tenant_id: str | None = Field(None, description="Tenant the entry concerns")
    detail: dict[str, Any] = Field(default_factory=dict, description="Event payload")
    occurred_at: datetime = Field(..., description="When the entry was written")

    @classmethod
    def from_model(cls, entry: AuditLogModel) -> AuditEntryResponse:
        return cls(
            id=entry.id,
            event_type=entry.event_type,
            actor=entry.actor,
            tenant_id=entry.tenant_id,
            detail=dict(entry.detail or {}),
            occurred_at=entry.occurred_at,
        )
