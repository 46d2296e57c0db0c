"""Domain probe for tenant context resolution.

Following Domain-Oriented Observability patterns, this probe captures
domain-significant events related to resolving the active tenant of a
request from selectors, token claims and membership state.

See: https://martinfowler.com/articles/domain-oriented-observability.html
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class TenantContextProbe(Protocol):
    """Domain probe for tenant context resolution operations."""

    def tenant_resolved(self, tenant_id: str, user_id: str, source: str) -> None:
        """Record that a tenant context was resolved."""
        ...

    def system_scope_resolved(self, admin_id: str) -> None:
        """Record that a system admin was resolved to system scope."""
        ...

    def system_route_denied(self, user_id: str) -> None:
        """Record that a non-admin credential reached a system-admin route."""
        ...

    def system_admin_on_tenant_route(self, admin_id: str) -> None:
        """Record that a system-admin credential reached a tenant route."""
        ...

    def tenant_mismatch(self, user_id: str, selector: str, reason: str) -> None:
        """Record that the requested tenant is not accessible to the caller."""
        ...

    def conflicting_selectors(self, user_id: str, header: str, subdomain: str) -> None:
        """Record that header and subdomain selected different tenants."""
        ...

    def stale_default_tenant(self, user_id: str, tenant_id: str) -> None:
        """Record that the token's default tenant failed re-validation."""
        ...

    def ambiguous_tenant(self, user_id: str, candidate_count: int) -> None:
        """Record that no selector was given and membership count was not one."""
        ...

    def tenant_suspended(self, tenant_id: str, user_id: str) -> None:
        """Record that a member was blocked by the tenant's suspended status."""
        ...

    def with_context(self, context: ObservationContext) -> TenantContextProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultTenantContextProbe:
    """Default implementation of TenantContextProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultTenantContextProbe:
        """Create a new probe with observation context bound."""
        return DefaultTenantContextProbe(logger=self._logger, context=context)

    def tenant_resolved(self, tenant_id: str, user_id: str, source: str) -> None:
        """Record that a tenant context was resolved."""
        self._logger.debug(
            "tenant_context_resolved",
            tenant_id=tenant_id,
            user_id=user_id,
            source=source,
            **self._get_context_kwargs(),
        )

    def system_scope_resolved(self, admin_id: str) -> None:
        """Record that a system admin was resolved to system scope."""
        self._logger.info(
            "tenant_context_system_scope",
            admin_id=admin_id,
            **self._get_context_kwargs(),
        )

    def system_route_denied(self, user_id: str) -> None:
        """Record that a non-admin credential reached a system-admin route."""
        self._logger.warning(
            "tenant_context_system_route_denied",
            user_id=user_id,
            **self._get_context_kwargs(),
        )

    def system_admin_on_tenant_route(self, admin_id: str) -> None:
        """Record that a system-admin credential reached a tenant route."""
        self._logger.warning(
            "tenant_context_system_admin_on_tenant_route",
            admin_id=admin_id,
            **self._get_context_kwargs(),
        )

    def tenant_mismatch(self, user_id: str, selector: str, reason: str) -> None:
        """Record that the requested tenant is not accessible to the caller."""
        self._logger.warning(
            "tenant_context_mismatch",
            user_id=user_id,
            selector=selector,
            reason=reason,
            **self._get_context_kwargs(),
        )

    def conflicting_selectors(self, user_id: str, header: str, subdomain: str) -> None:
        """Record that header and subdomain selected different tenants."""
        self._logger.warning(
            "tenant_context_conflicting_selectors",
            user_id=user_id,
            header=header,
            subdomain=subdomain,
            **self._get_context_kwargs(),
        )

    def stale_default_tenant(self, user_id: str, tenant_id: str) -> None:
        """Record that the token's default tenant failed re-validation."""
        self._logger.warning(
            "tenant_context_stale_default_tenant",
            user_id=user_id,
            tenant_id=tenant_id,
            **self._get_context_kwargs(),
        )

    def ambiguous_tenant(self, user_id: str, candidate_count: int) -> None:
        """Record that no selector was given and membership count was not one."""
        self._logger.info(
            "tenant_context_ambiguous",
            user_id=user_id,
            candidate_count=candidate_count,
            **self._get_context_kwargs(),
        )

    def tenant_suspended(self, tenant_id: str, user_id: str) -> None:
        """Record that a member was blocked by the tenant's suspended status."""
        self._logger.warning(
            "tenant_context_tenant_suspended",
            tenant_id=tenant_id,
            user_id=user_id,
            **self._get_context_kwargs(),
        )
