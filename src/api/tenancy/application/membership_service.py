"""Membership application service for the tenancy bounded context.

Handles inviting users into a tenant, activating and revoking their
membership, and changing their role. A tenant always keeps at least one
active admin.
"""

from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tenancy.application.observability import (
    DefaultMembershipServiceProbe,
    MembershipServiceProbe,
)
from tenancy.domain.aggregates import TenantMembership
from tenancy.domain.exceptions import CannotRemoveLastAdminError
from tenancy.domain.value_objects import TenantId, TenantRole, UserId
from tenancy.ports.exceptions import MembershipNotFoundError
from tenancy.ports.repositories import IMembershipRepository

UserChanged = Callable[[str], None]


class MembershipService:
    """Application service for tenant membership management."""

    def __init__(
        self,
        membership_repository: IMembershipRepository,
        session: AsyncSession,
        probe: MembershipServiceProbe | None = None,
        on_user_changed: Optional[UserChanged] = None,
    ):
        """Initialize MembershipService with dependencies.

        Args:
            membership_repository: Repository for membership persistence
            session: Database session for transaction management
            probe: Optional domain probe for observability
            on_user_changed: Called with the user id after a committed change
                (directory cache invalidation)
        """
        self._memberships = membership_repository
        self._session = session
        self._probe = probe or DefaultMembershipServiceProbe()
        self._on_user_changed = on_user_changed

    async def invite(
        self,
        tenant_id: TenantId,
        user_id: UserId,
        role: TenantRole = TenantRole.MEMBER,
        invited_by: Optional[str] = None,
    ) -> TenantMembership:
        """Invite a user; a revoked member is re-invited.

        Inviting a user who is already invited or active changes nothing.
        """
        async with self._session.begin():
            membership = await self._memberships.get(user_id, tenant_id)
            if membership is None:
                membership = TenantMembership.invite(
                    user_id, tenant_id, role, invited_by=invited_by
                )
            else:
                membership.reinstate(role, changed_by=invited_by)
            await self._memberships.save(membership)

        self._probe.member_invited(
            tenant_id.value, user_id.value, membership.role.value
        )
        self._changed(user_id)
        return membership

    async def activate(
        self,
        tenant_id: TenantId,
        user_id: UserId,
        changed_by: Optional[str] = None,
    ) -> TenantMembership:
        """Activate an invited membership.

        Raises:
            MembershipNotFoundError: If the user was never invited
        """
        async with self._session.begin():
            membership = await self._get(tenant_id, user_id)
            membership.activate(changed_by=changed_by)
            await self._memberships.save(membership)

        self._probe.membership_activated(tenant_id.value, user_id.value)
        self._changed(user_id)
        return membership

    async def revoke(
        self,
        tenant_id: TenantId,
        user_id: UserId,
        changed_by: Optional[str] = None,
    ) -> TenantMembership:
        """Revoke a membership. Effective for new requests within the cache TTL.

        Raises:
            MembershipNotFoundError: If the membership does not exist
            CannotRemoveLastAdminError: If this is the last active admin
        """
        async with self._session.begin():
            membership = await self._get(tenant_id, user_id)
            try:
                membership.revoke(
                    is_last_admin=await self._is_last_admin(membership),
                    changed_by=changed_by,
                )
            except CannotRemoveLastAdminError:
                self._probe.last_admin_protected(tenant_id.value, user_id.value)
                raise
            await self._memberships.save(membership)

        self._probe.membership_revoked(tenant_id.value, user_id.value)
        self._changed(user_id)
        return membership

    async def change_role(
        self,
        tenant_id: TenantId,
        user_id: UserId,
        role: TenantRole,
        changed_by: Optional[str] = None,
    ) -> TenantMembership:
        """Change a member's role.

        Raises:
            MembershipNotFoundError: If the membership does not exist
            CannotRemoveLastAdminError: If demoting the last active admin
        """
        async with self._session.begin():
            membership = await self._get(tenant_id, user_id)
            try:
                membership.change_role(
                    role,
                    is_last_admin=await self._is_last_admin(membership),
                    changed_by=changed_by,
                )
            except CannotRemoveLastAdminError:
                self._probe.last_admin_protected(tenant_id.value, user_id.value)
                raise
            await self._memberships.save(membership)

        self._probe.role_changed(tenant_id.value, user_id.value, role.value)
        self._changed(user_id)
        return membership

    async def list_members(self, tenant_id: TenantId) -> list[TenantMembership]:
        async with self._session.begin():
            return await self._memberships.list_by_tenant(tenant_id)

    async def _get(self, tenant_id: TenantId, user_id: UserId) -> TenantMembership:
        membership = await self._memberships.get(user_id, tenant_id)
        if membership is None:
            raise MembershipNotFoundError(
                f"User {user_id} has no membership in tenant {tenant_id}"
            )
        return membership

    async def _is_last_admin(self, membership: TenantMembership) -> bool:
        if not membership.is_active_admin:
            return False
        return await self._memberships.count_active_admins(membership.tenant_id) <= 1

    def _changed(self, user_id: UserId) -> None:
        if self._on_user_changed is not None:
            self._on_user_changed(user_id.value)
