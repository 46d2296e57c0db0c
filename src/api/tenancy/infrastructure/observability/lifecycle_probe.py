"""Domain probe for tenant lifecycle operations.

Lifecycle operations run out of band (CLI, admin routes). Every phase
boundary is reported so an operator can see where a run stopped.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class LifecycleProbe(Protocol):
    """Domain probe for lifecycle operations."""

    def operation_started(self, operation: str, target: str, run_id: str) -> None:
        ...

    def phase_completed(
        self, operation: str, phase: str, target: str, affected: int
    ) -> None:
        ...

    def phase_skipped(self, operation: str, phase: str, target: str) -> None:
        """Record that a phase found its work already done."""
        ...

    def phase_failed(
        self, operation: str, phase: str, target: str, error: Exception
    ) -> None:
        ...

    def operation_completed(self, operation: str, target: str) -> None:
        ...

    def lock_contended(self, lock_name: str) -> None:
        """Record that another process holds the lifecycle lock."""
        ...

    def backfill_batch(self, table: str, updated: int) -> None:
        ...

    def misattributed_records_found(self, table: str, count: int) -> None:
        ...

    def with_context(self, context: ObservationContext) -> LifecycleProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultLifecycleProbe:
    """Default implementation of LifecycleProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultLifecycleProbe:
        """Create a new probe with observation context bound."""
        return DefaultLifecycleProbe(logger=self._logger, context=context)

    def operation_started(self, operation: str, target: str, run_id: str) -> None:
        self._logger.info(
            "lifecycle_operation_started",
            operation=operation,
            target=target,
            run_id=run_id,
            **self._get_context_kwargs(),
        )

    def phase_completed(
        self, operation: str, phase: str, target: str, affected: int
    ) -> None:
        self._logger.info(
            "lifecycle_phase_completed",
            operation=operation,
            phase=phase,
            target=target,
            affected=affected,
            **self._get_context_kwargs(),
        )

    def phase_skipped(self, operation: str, phase: str, target: str) -> None:
        self._logger.info(
            "lifecycle_phase_skipped",
            operation=operation,
            phase=phase,
            target=target,
            **self._get_context_kwargs(),
        )

    def phase_failed(
        self, operation: str, phase: str, target: str, error: Exception
    ) -> None:
        self._logger.error(
            "lifecycle_phase_failed",
            operation=operation,
            phase=phase,
            target=target,
            error=str(error),
            error_type=type(error).__name__,
            **self._get_context_kwargs(),
        )

    def operation_completed(self, operation: str, target: str) -> None:
        self._logger.info(
            "lifecycle_operation_completed",
            operation=operation,
            target=target,
            **self._get_context_kwargs(),
        )

    def lock_contended(self, lock_name: str) -> None:
        self._logger.warning(
            "lifecycle_lock_contended",
            lock_name=lock_name,
            **self._get_context_kwargs(),
        )

    def backfill_batch(self, table: str, updated: int) -> None:
        self._logger.debug(
            "lifecycle_backfill_batch",
            table=table,
            updated=updated,
            **self._get_context_kwargs(),
        )

    def misattributed_records_found(self, table: str, count: int) -> None:
        self._logger.warning(
            "lifecycle_misattributed_records_found",
            table=table,
            count=count,
            **self._get_context_kwargs(),
        )
