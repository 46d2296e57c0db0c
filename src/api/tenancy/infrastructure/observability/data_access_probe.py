"""Domain probe for tenant-scoped data access.

Captures the security-relevant events of the data-access guard: scope
boundaries, attempted overrides of the tenant column and cross-tenant
violations.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class DataAccessProbe(Protocol):
    """Domain probe for the tenant-scoped data access guard."""

    def scope_opened(self, tenant_id: str) -> None:
        """Record that a tenant-scoped transaction started."""
        ...

    def scope_rolled_back(self, tenant_id: str, error_type: str) -> None:
        """Record that a tenant-scoped transaction was rolled back."""
        ...

    def scoped_operation(
        self, table: str, operation: str, tenant_id: str, row_count: int
    ) -> None:
        """Record a completed scoped statement."""
        ...

    def tenant_override_ignored(
        self, table: str, tenant_id: str, supplied_tenant_id: str
    ) -> None:
        """Record that a caller-supplied tenant_id was replaced on insert."""
        ...

    def cross_tenant_violation(self, table: str, tenant_id: str, detail: str) -> None:
        """Record that the guard detected a scope breach."""
        ...

    def missing_tenant_context(self, table: str, operation: str) -> None:
        """Record that scoped access was attempted without a tenant."""
        ...

    def audit_failed(self, table: str, error: Exception) -> None:
        """Record that an audit entry for a violation could not be written."""
        ...

    def admin_access(
        self, admin_id: str, table: str, operation: str, tenant_id: Optional[str]
    ) -> None:
        """Record a cross-tenant read through the admin data path."""
        ...

    def with_context(self, context: ObservationContext) -> DataAccessProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultDataAccessProbe:
    """Default implementation of DataAccessProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultDataAccessProbe:
        """Create a new probe with observation context bound."""
        return DefaultDataAccessProbe(logger=self._logger, context=context)

    def scope_opened(self, tenant_id: str) -> None:
        self._logger.debug(
            "tenant_scope_opened",
            tenant_id=tenant_id,
            **self._get_context_kwargs(),
        )

    def scope_rolled_back(self, tenant_id: str, error_type: str) -> None:
        self._logger.info(
            "tenant_scope_rolled_back",
            tenant_id=tenant_id,
            error_type=error_type,
            **self._get_context_kwargs(),
        )

    def scoped_operation(
        self, table: str, operation: str, tenant_id: str, row_count: int
    ) -> None:
        self._logger.debug(
            "tenant_scoped_operation",
            table=table,
            operation=operation,
            tenant_id=tenant_id,
            row_count=row_count,
            **self._get_context_kwargs(),
        )

    def tenant_override_ignored(
        self, table: str, tenant_id: str, supplied_tenant_id: str
    ) -> None:
        self._logger.warning(
            "tenant_override_ignored",
            table=table,
            tenant_id=tenant_id,
            supplied_tenant_id=supplied_tenant_id,
            **self._get_context_kwargs(),
        )

    def cross_tenant_violation(self, table: str, tenant_id: str, detail: str) -> None:
        self._logger.error(
            "cross_tenant_violation",
            table=table,
            tenant_id=tenant_id,
            detail=detail,
            **self._get_context_kwargs(),
        )

    def missing_tenant_context(self, table: str, operation: str) -> None:
        self._logger.error(
            "missing_tenant_context",
            table=table,
            operation=operation,
            **self._get_context_kwargs(),
        )

    def admin_access(
        self, admin_id: str, table: str, operation: str, tenant_id: Optional[str]
    ) -> None:
        self._logger.warning(
            "admin_cross_tenant_access",
            admin_id=admin_id,
            table=table,
            operation=operation,
            tenant_id=tenant_id,
            **self._get_context_kwargs(),
        )

    def audit_failed(self, table: str, error: Exception) -> None:
        self._logger.error(
            "tenant_audit_failed",
            table=table,
            error=str(error),
            error_type=type(error).__name__,
            **self._get_context_kwargs(),
        )
