"""Domain probe for tenancy repository operations.

Following Domain-Oriented Observability patterns, this probe captures
domain-significant events related to institution, tenant and membership
persistence.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class TenancyRepositoryProbe(Protocol):
    """Domain probe for tenancy repository operations."""

    def institution_saved(self, institution_id: str, slug: str) -> None:
        """Record that an institution was saved."""
        ...

    def tenant_saved(self, tenant_id: str, status: str) -> None:
        """Record that a tenant was saved."""
        ...

    def tenant_deleted(self, tenant_id: str) -> None:
        """Record that a tenant row was deleted."""
        ...

    def duplicate_slug(self, kind: str, slug: str) -> None:
        """Record that a duplicate institution or tenant slug was detected."""
        ...

    def membership_saved(self, tenant_id: str, user_id: str, status: str) -> None:
        """Record that a membership was saved."""
        ...

    def memberships_removed(self, tenant_id: str, count: int) -> None:
        """Record that a tenant's memberships were deleted."""
        ...

    def audit_recorded(self, event_type: str, tenant_id: str | None) -> None:
        """Record that an audit entry was written."""
        ...

    def with_context(self, context: ObservationContext) -> TenancyRepositoryProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultTenancyRepositoryProbe:
    """Default implementation of TenancyRepositoryProbe using structlog."""

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
    ) -> DefaultTenancyRepositoryProbe:
        """Create a new probe with observation context bound."""
        return DefaultTenancyRepositoryProbe(logger=self._logger, context=context)

    def institution_saved(self, institution_id: str, slug: str) -> None:
        """Record that an institution was saved."""
        self._logger.info(
            "institution_saved",
            institution_id=institution_id,
            slug=slug,
            **self._get_context_kwargs(),
        )

    def tenant_saved(self, tenant_id: str, status: str) -> None:
        """Record that a tenant was saved."""
        self._logger.info(
            "tenant_saved",
            tenant_id=tenant_id,
            status=status,
            **self._get_context_kwargs(),
        )

    def tenant_deleted(self, tenant_id: str) -> None:
        """Record that a tenant row was deleted."""
        self._logger.info(
            "tenant_deleted",
            tenant_id=tenant_id,
            **self._get_context_kwargs(),
        )

    def duplicate_slug(self, kind: str, slug: str) -> None:
        """Record that a duplicate institution or tenant slug was detected."""
        self._logger.warning(
            "duplicate_slug",
            kind=kind,
            slug=slug,
            **self._get_context_kwargs(),
        )

    def membership_saved(self, tenant_id: str, user_id: str, status: str) -> None:
        """Record that a membership was saved."""
        self._logger.debug(
            "membership_saved",
            tenant_id=tenant_id,
            user_id=user_id,
            status=status,
            **self._get_context_kwargs(),
        )

    def memberships_removed(self, tenant_id: str, count: int) -> None:
        """Record that a tenant's memberships were deleted."""
        self._logger.info(
            "memberships_removed",
            tenant_id=tenant_id,
            count=count,
            **self._get_context_kwargs(),
        )

    def audit_recorded(self, event_type: str, tenant_id: str | None) -> None:
        """Record that an audit entry was written."""
        self._logger.debug(
            "audit_recorded",
            event_type=event_type,
            tenant_id=tenant_id,
            **self._get_context_kwargs(),
        )
