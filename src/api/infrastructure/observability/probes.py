"""Domain probes for infrastructure observability.

Domain probes provide a high-level instrumentation API oriented around
domain semantics, keeping infrastructure code clean and testable.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class DatabaseProbe(Protocol):
    """Domain probe for database engine lifecycle."""

    def engine_created(self, purpose: str, pool_size: int) -> None:
        """Record that an engine (and its pool) was created."""
        ...

    def pool_closed(self) -> None:
        """Record that an engine's pool was disposed."""
        ...

    def with_context(self, context: ObservationContext) -> DatabaseProbe:
        """Create a new probe with observation context bound."""
        ...


class TenantBindingProbe(Protocol):
    """Domain probe for the per-connection tenant setting.

    Failures here are security relevant: a connection that could not be
    reset is invalidated rather than returned to the pool.
    """

    def listeners_installed(self, settings: list[str]) -> None:
        """Record that checkout/checkin reset listeners were installed."""
        ...

    def reset_failed(self, stage: str, error: Exception) -> None:
        """Record that resetting the tenant setting failed."""
        ...

    def with_context(self, context: ObservationContext) -> TenantBindingProbe:
        """Create a new probe with observation context bound."""
        ...


class _StructlogProbe:
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


class DefaultDatabaseProbe(_StructlogProbe):
    """Default implementation of DatabaseProbe using structlog."""

    def with_context(self, context: ObservationContext) -> DefaultDatabaseProbe:
        """Create a new probe with observation context bound."""
        return DefaultDatabaseProbe(logger=self._logger, context=context)

    def engine_created(self, purpose: str, pool_size: int) -> None:
        """Record that an engine (and its pool) was created."""
        self._logger.info(
            "database_engine_created",
            purpose=purpose,
            pool_size=pool_size,
            **self._get_context_kwargs(),
        )

    def pool_closed(self) -> None:
        """Record that an engine's pool was disposed."""
        self._logger.info(
            "database_pool_closed",
            **self._get_context_kwargs(),
        )


class DefaultTenantBindingProbe(_StructlogProbe):
    """Default implementation of TenantBindingProbe using structlog."""

    def with_context(self, context: ObservationContext) -> DefaultTenantBindingProbe:
        """Create a new probe with observation context bound."""
        return DefaultTenantBindingProbe(logger=self._logger, context=context)

    def listeners_installed(self, settings: list[str]) -> None:
        """Record that checkout/checkin reset listeners were installed."""
        self._logger.debug(
            "tenant_binding_listeners_installed",
            settings=settings,
            **self._get_context_kwargs(),
        )

    def reset_failed(self, stage: str, error: Exception) -> None:
        """Record that resetting the tenant setting failed."""
        self._logger.error(
            "tenant_binding_reset_failed",
            stage=stage,
            error=str(error),
            error_type=type(error).__name__,
            **self._get_context_kwargs(),
        )
