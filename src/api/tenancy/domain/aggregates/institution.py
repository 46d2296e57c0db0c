"""Institution aggregate for the tenancy context."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Optional

from tenancy.domain.events import InstitutionCreated, InstitutionDefaultTenantSet
from tenancy.domain.value_objects import (
    InstitutionId,
    ResourceLimits,
    Slug,
    TenantId,
)

if TYPE_CHECKING:
    from tenancy.domain.events import DomainEvent


@dataclass
class Institution:
    """A contracting organization (a municipal or state education department).

    Owns one or more tenants. ``default_tenant_id`` points at the primary
    tenant and is set once that tenant exists; it never points at a tenant
    of another institution.
    """

    id: InstitutionId
    slug: Slug
    name: str
    legal_name: Optional[str] = None
    document: Optional[str] = None
    contact_email: Optional[str] = None
    plan: str = "basic"
    limits: ResourceLimits = field(default_factory=ResourceLimits)
    default_tenant_id: Optional[TenantId] = None
    active: bool = True
    _pending_events: list[DomainEvent] = field(default_factory=list, repr=False)

    @classmethod
    def create(
        cls,
        slug: Slug,
        name: str,
        legal_name: Optional[str] = None,
        document: Optional[str] = None,
        contact_email: Optional[str] = None,
        plan: str = "basic",
        limits: Optional[ResourceLimits] = None,
    ) -> Institution:
        """Register a new institution with no tenants yet."""
        institution = cls(
            id=InstitutionId.generate(),
            slug=slug,
            name=name,
            legal_name=legal_name,
            document=document,
            contact_email=contact_email,
            plan=plan,
            limits=limits or ResourceLimits(),
        )
        institution._pending_events.append(
            InstitutionCreated(
                institution_id=institution.id.value,
                slug=slug.value,
                occurred_at=datetime.now(UTC),
            )
        )
        return institution

    def can_add_tenant(self, current_tenant_count: int) -> bool:
        return self.active and self.limits.allows_another_tenant(current_tenant_count)

    def ensure_default_tenant(self, tenant_id: TenantId) -> bool:
        """Record ``tenant_id`` as the primary tenant if none is set yet.

        Returns:
            True if the default was set by this call
        """
        if self.default_tenant_id is not None:
            return False
        self.default_tenant_id = tenant_id
        self._pending_events.append(
            InstitutionDefaultTenantSet(
                institution_id=self.id.value,
                tenant_id=tenant_id.value,
                occurred_at=datetime.now(UTC),
            )
        )
        return True

    def clear_default_tenant(self, tenant_id: TenantId) -> None:
        """Drop the default pointer when that tenant is being removed."""
        if self.default_tenant_id == tenant_id:
            self.default_tenant_id = None

    def collect_events(self) -> list[DomainEvent]:
        """Return and clear pending domain events."""
        events = self._pending_events.copy()
        self._pending_events.clear()
        return events
