"""Domain events for the tenancy bounded context.

Domain events capture facts about things that have happened in the domain.
Repositories persist them to the tenant audit log in the same transaction
as the aggregate change.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class InstitutionCreated:
    """Event raised when an institution is registered.

    Attributes:
        institution_id: The ULID of the institution
        slug: The institution slug
        occurred_at: When the event occurred (UTC)
    """

    institution_id: str
    slug: str
    occurred_at: datetime


@dataclass(frozen=True)
class InstitutionDefaultTenantSet:
    """Event raised when an institution's primary tenant is recorded."""

    institution_id: str
    tenant_id: str
    occurred_at: datetime


@dataclass(frozen=True)
class TenantCreated:
    """Event raised when a tenant row is created in ``provisioning`` status.

    Attributes:
        tenant_id: The ULID of the created tenant
        slug: The tenant slug
        institution_id: Owning institution (None only for legacy tenants)
        occurred_at: When the event occurred (UTC)
    """

    tenant_id: str
    slug: str
    institution_id: Optional[str]
    occurred_at: datetime


@dataclass(frozen=True)
class TenantStatusChanged:
    """Event raised on every tenant state machine transition."""

    tenant_id: str
    from_status: str
    to_status: str
    occurred_at: datetime
    reason: Optional[str] = None


@dataclass(frozen=True)
class TenantLinkedToInstitution:
    """Event raised when a pre-hierarchy tenant is attached to an institution."""

    tenant_id: str
    institution_id: str
    occurred_at: datetime


@dataclass(frozen=True)
class MembershipChanged:
    """Event raised when a membership is invited, activated, revoked or re-roled.

    Attributes:
        tenant_id: The tenant of the membership
        user_id: The member
        role: Role after the change
        status: Status after the change
        changed_by: The [optional] actor that initiated this action
        occurred_at: When this event occurred (UTC)
    """

    tenant_id: str
    user_id: str
    role: str
    status: str
    occurred_at: datetime
    changed_by: Optional[str] = None


@dataclass(frozen=True)
class TenantSettingsChanged:
    """Event raised when tenant settings are set or removed.

    Attributes:
        tenant_id: The tenant whose settings changed
        changed_keys: Keys set or removed, sorted
        removed_keys: The subset of ``changed_keys`` that was removed
        changed_by: The [optional] actor that initiated this action
        occurred_at: When this event occurred (UTC)
    """

    tenant_id: str
    changed_keys: tuple[str, ...]
    removed_keys: tuple[str, ...]
    occurred_at: datetime
    changed_by: Optional[str] = None


DomainEvent = (
    InstitutionCreated
    | InstitutionDefaultTenantSet
    | TenantCreated
    | TenantStatusChanged
    | TenantLinkedToInstitution
    | MembershipChanged
    | TenantSettingsChanged
)

__all__ = [
    "DomainEvent",
    "InstitutionCreated",
    "InstitutionDefaultTenantSet",
    "MembershipChanged",
    "TenantCreated",
    "TenantLinkedToInstitution",
    "TenantSettingsChanged",
    "TenantStatusChanged",
]
