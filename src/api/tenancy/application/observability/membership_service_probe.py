"""Protocol for membership application service observability."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class MembershipServiceProbe(Protocol):
    """Domain probe for membership application service operations."""

    def member_invited(self, tenant_id: str, user_id: str, role: str) -> None:
        """Record that a user was invited to a tenant."""
        ...

    def membership_activated(self, tenant_id: str, user_id: str) -> None:
        """Record that a membership became active."""
        ...

    def membership_revoked(self, tenant_id: str, user_id: str) -> None:
        """Record that a membership was revoked."""
        ...

    def role_changed(self, tenant_id: str, user_id: str, role: str) -> None:
        """Record that a member's role changed."""
        ...

    def last_admin_protected(self, tenant_id: str, user_id: str) -> None:
        """Record that removing or demoting the last admin was refused."""
        ...

    def with_context(self, context: ObservationContext) -> MembershipServiceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultMembershipServiceProbe:
    """Default implementation of MembershipServiceProbe using structlog."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        """Get context metadata as kwargs for logging."""
        if self._context is None:
            return {}
        return self._context.as_dict()

    def with_context(
        self, context: ObservationContext
    ) -> DefaultMembershipServiceProbe:
        """Create a new probe with observation context bound."""
        return DefaultMembershipServiceProbe(logger=self._logger, context=context)

    def member_invited(self, tenant_id: str, user_id: str, role: str) -> None:
        """Record that a user was invited to a tenant."""
        self._logger.info(
            "tenant_member_invited",
            tenant_id=tenant_id,
            user_id=user_id,
            role=role,
            **self._get_context_kwargs(),
        )

    def membership_activated(self, tenant_id: str, user_id: str) -> None:
        """Record that a membership became active."""
        self._logger.info(
            "tenant_membership_activated",
            tenant_id=tenant_id,
            user_id=user_id,
            **self._get_context_kwargs(),
        )

    def membership_revoked(self, tenant_id: str, user_id: str) -> None:
        """Record that a membership was revoked."""
        self._logger.info(
            "tenant_membership_revoked",
            tenant_id=tenant_id,
            user_id=user_id,
            **self._get_context_kwargs(),
        )

    def role_changed(self, tenant_id: str, user_id: str, role: str) -> None:
        """Record that a member's role changed."""
        self._logger.info(
            "tenant_member_role_changed",
            tenant_id=tenant_id,
            user_id=user_id,
            role=role,
            **self._get_context_kwargs(),
        )

    def last_admin_protected(self, tenant_id: str, user_id: str) -> None:
        """Record that removing or demoting the last admin was refused."""
        self._logger.warning(
            "tenant_last_admin_protected",
            tenant_id=tenant_id,
            user_id=user_id,
            **self._get_context_kwargs(),
        )
