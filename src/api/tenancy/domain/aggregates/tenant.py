"""Tenant aggregate for the tenancy context."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Optional

from tenancy.domain.events import (
    TenantCreated,
    TenantLinkedToInstitution,
    TenantSettingsChanged,
    TenantStatusChanged,
)
from tenancy.domain.exceptions import (
    InvalidTenantTransitionError,
    TenantAlreadyLinkedError,
    TenantSettingsLockedError,
)
from tenancy.domain.value_objects import InstitutionId, Slug, TenantId, TenantStatus

if TYPE_CHECKING:
    from tenancy.domain.events import DomainEvent

ALLOWED_TRANSITIONS: dict[TenantStatus, frozenset[TenantStatus]] = {
    TenantStatus.PROVISIONING: frozenset(
        {TenantStatus.ACTIVE, TenantStatus.DEPROVISIONING}
    ),
    TenantStatus.ACTIVE: frozenset(
        {TenantStatus.SUSPENDED, TenantStatus.DEPROVISIONING}
    ),
    TenantStatus.SUSPENDED: frozenset(
        {TenantStatus.ACTIVE, TenantStatus.DEPROVISIONING}
    ),
    TenantStatus.DEPROVISIONING: frozenset({TenantStatus.DELETED}),
    TenantStatus.DELETED: frozenset(),
}


@dataclass
class Tenant:
    """Tenant aggregate: the isolation boundary for operational data.

    Every tenant-owned record carries the tenant id. A tenant belongs to
    exactly one institution; ``institution_id`` is only None for tenants
    created before institutions existed, until ``link_institution`` runs.

    Business rules:
    - Slugs are globally unique and subdomain-safe
    - Status follows ALLOWED_TRANSITIONS; DELETED is terminal
    - Only ACTIVE tenants serve data; SUSPENDED tenants still resolve so the
      caller can be told the tenant is suspended
    """

    id: TenantId
    slug: Slug
    name: str
    institution_id: Optional[InstitutionId]
    status: TenantStatus = TenantStatus.PROVISIONING
    settings: dict[str, Any] = field(default_factory=dict)
    limits: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    _pending_events: list[DomainEvent] = field(default_factory=list, repr=False)

    @classmethod
    def create(
        cls,
        slug: Slug,
        name: str,
        institution_id: InstitutionId,
        settings: Optional[dict[str, Any]] = None,
        limits: Optional[dict[str, Any]] = None,
    ) -> Tenant:
        """Factory method for creating a new tenant in ``provisioning`` status.

        Args:
            slug: Subdomain-safe unique slug
            name: Display name
            institution_id: Owning institution
            settings: Optional tenant configuration (opaque JSON)
            limits: Optional tenant limits (opaque JSON)

        Returns:
            A new Tenant aggregate with TenantCreated event recorded
        """
        now = datetime.now(UTC)
        tenant = cls(
            id=TenantId.generate(),
            slug=slug,
            name=name,
            institution_id=institution_id,
            status=TenantStatus.PROVISIONING,
            settings=dict(settings or {}),
            limits=dict(limits or {}),
            created_at=now,
        )
        tenant._pending_events.append(
            TenantCreated(
                tenant_id=tenant.id.value,
                slug=slug.value,
                institution_id=institution_id.value,
                occurred_at=now,
            )
        )
        return tenant

    @property
    def serves_data(self) -> bool:
        """True when members may read and write operational data."""
        return self.status == TenantStatus.ACTIVE

    @property
    def is_resolvable(self) -> bool:
        """True when a membership in this tenant can become a request context."""
        return self.status in (TenantStatus.ACTIVE, TenantStatus.SUSPENDED)

    def can_transition_to(self, target: TenantStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def activate(self) -> None:
        """Move a provisioning or suspended tenant to ACTIVE."""
        self._transition(TenantStatus.ACTIVE)

    def suspend(self, reason: Optional[str] = None) -> None:
        """Block data access for members without deleting anything."""
        self._transition(TenantStatus.SUSPENDED, reason=reason)

    def begin_deprovisioning(self, reason: Optional[str] = None) -> None:
        """Stop all access and prepare the tenant for removal."""
        self._transition(TenantStatus.DEPROVISIONING, reason=reason)

    def mark_deleted(self) -> None:
        """Record the terminal state. Only reachable from DEPROVISIONING."""
        self._transition(TenantStatus.DELETED)

    def link_institution(self, institution_id: InstitutionId) -> None:
        """Attach a pre-hierarchy tenant to its institution.

        Raises:
            TenantAlreadyLinkedError: If the tenant already has an institution
        """
        if self.institution_id is not None:
            if self.institution_id == institution_id:
                return
            raise TenantAlreadyLinkedError(
                f"Tenant {self.id} already belongs to institution "
                f"{self.institution_id}"
            )
        self.institution_id = institution_id
        self._pending_events.append(
            TenantLinkedToInstitution(
                tenant_id=self.id.value,
                institution_id=institution_id.value,
                occurred_at=datetime.now(UTC),
            )
        )

    def update_settings(
        self, changes: dict[str, Any], changed_by: Optional[str] = None
    ) -> bool:
        """Merge ``changes`` into the settings; a None value removes the key.

        Returns:
            Whether anything changed

        Raises:
            ValueError: If a key is empty
            TenantSettingsLockedError: If the tenant is being deprovisioned
        """
        if any(not key for key in changes):
            raise ValueError("Setting names must not be empty")
        if self.status in (TenantStatus.DEPROVISIONING, TenantStatus.DELETED):
            raise TenantSettingsLockedError(
                f"Tenant {self.id} is {self.status.value}; settings are frozen"
            )

        changed: list[str] = []
        removed: list[str] = []
        for key, value in changes.items():
            if value is None:
                if key in self.settings:
                    del self.settings[key]
                    changed.append(key)
                    removed.append(key)
            elif key not in self.settings or self.settings[key] != value:
                self.settings[key] = value
                changed.append(key)

        if not changed:
            return False
        self._pending_events.append(
            TenantSettingsChanged(
                tenant_id=self.id.value,
                changed_keys=tuple(sorted(changed)),
                removed_keys=tuple(sorted(removed)),
                occurred_at=datetime.now(UTC),
                changed_by=changed_by,
            )
        )
        return True

    def _transition(self, target: TenantStatus, reason: Optional[str] = None) -> None:
        if self.status == target:
            return
        if not self.can_transition_to(target):
            raise InvalidTenantTransitionError(
                tenant_id=self.id.value,
                current=self.status.value,
                target=target.value,
            )
        previous = self.status
        self.status = target
        self._pending_events.append(
            TenantStatusChanged(
                tenant_id=self.id.value,
                from_status=previous.value,
                to_status=target.value,
                occurred_at=datetime.now(UTC),
                reason=reason,
            )
        )

    def collect_events(self) -> list[DomainEvent]:
        """Return and clear pending domain events.

        Returns:
            List of pending domain events
        """
        events = self._pending_events.copy()
        self._pending_events.clear()
        return events
