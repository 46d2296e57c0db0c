"""TenantMembership aggregate for the tenancy context."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Optional

from tenancy.domain.events import MembershipChanged
from tenancy.domain.exceptions import (
    CannotRemoveLastAdminError,
    InvalidMembershipTransitionError,
)
from tenancy.domain.value_objects import (
    MembershipStatus,
    TenantId,
    TenantRole,
    UserId,
)

if TYPE_CHECKING:
    from tenancy.domain.events import DomainEvent


@dataclass
class TenantMembership:
    """Links a user to a tenant with a role.

    A user may belong to many tenants; (user_id, tenant_id) is unique. Only
    ACTIVE memberships authorize access.
    """

    user_id: UserId
    tenant_id: TenantId
    role: TenantRole = TenantRole.MEMBER
    status: MembershipStatus = MembershipStatus.INVITED
    created_at: Optional[datetime] = None
    _pending_events: list[DomainEvent] = field(default_factory=list, repr=False)

    @classmethod
    def invite(
        cls,
        user_id: UserId,
        tenant_id: TenantId,
        role: TenantRole = TenantRole.MEMBER,
        invited_by: Optional[str] = None,
    ) -> TenantMembership:
        """Create a membership in INVITED status."""
        membership = cls(
            user_id=user_id,
            tenant_id=tenant_id,
            role=role,
            status=MembershipStatus.INVITED,
            created_at=datetime.now(UTC),
        )
        membership._record(invited_by)
        return membership

    @property
    def is_active(self) -> bool:
        return self.status == MembershipStatus.ACTIVE

    @property
    def is_active_admin(self) -> bool:
        return self.is_active and self.role == TenantRole.ADMIN

    def activate(self, changed_by: Optional[str] = None) -> None:
        """Accept an invitation.

        Raises:
            InvalidMembershipTransitionError: If the membership was revoked
        """
        if self.status == MembershipStatus.ACTIVE:
            return
        if self.status == MembershipStatus.REVOKED:
            raise InvalidMembershipTransitionError(
                f"Membership of {self.user_id} in {self.tenant_id} was revoked"
            )
        self.status = MembershipStatus.ACTIVE
        self._record(changed_by)

    def reinstate(
        self, role: TenantRole, changed_by: Optional[str] = None
    ) -> None:
        """Re-invite a revoked member with ``role``."""
        if self.status != MembershipStatus.REVOKED:
            return
        self.role = role
        self.status = MembershipStatus.INVITED
        self._record(changed_by)

    def revoke(self, is_last_admin: bool, changed_by: Optional[str] = None) -> None:
        """Revoke access immediately.

        Args:
            is_last_admin: Whether this member is the tenant's last active admin
            changed_by: Actor performing the change

        Raises:
            CannotRemoveLastAdminError: If revoking the last active admin
        """
        if self.status == MembershipStatus.REVOKED:
            return
        if self.is_active_admin and is_last_admin:
            raise CannotRemoveLastAdminError()
        self.status = MembershipStatus.REVOKED
        self._record(changed_by)

    def change_role(
        self,
        role: TenantRole,
        is_last_admin: bool,
        changed_by: Optional[str] = None,
    ) -> None:
        """Change the member's role, refusing to demote the last admin."""
        if role == self.role:
            return
        if self.is_active_admin and is_last_admin:
            raise CannotRemoveLastAdminError("Cannot demote the last admin of a tenant")
        self.role = role
        self._record(changed_by)

    def _record(self, changed_by: Optional[str]) -> None:
        self._pending_events.append(
            MembershipChanged(
                tenant_id=self.tenant_id.value,
                user_id=self.user_id.value,
                role=self.role.value,
                status=self.status.value,
                occurred_at=datetime.now(UTC),
                changed_by=changed_by,
            )
        )

    def collect_events(self) -> list[DomainEvent]:
        """Return and clear pending domain events."""
        events = self._pending_events.copy()
        self._pending_events.clear()
        return events
