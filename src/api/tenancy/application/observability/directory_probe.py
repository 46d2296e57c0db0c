"""Domain probe for the cached tenant directory."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class DirectoryProbe(Protocol):
    """Domain probe for directory cache behaviour."""

    def cache_hit(self, key: str) -> None:
        ...

    def cache_miss(self, key: str) -> None:
        ...

    def cache_invalidated(self, scope: str, key: str) -> None:
        """Record that cached entries for a user or tenant were dropped."""
        ...

    def with_context(self, context: ObservationContext) -> DirectoryProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultDirectoryProbe:
    """Default implementation of DirectoryProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultDirectoryProbe:
        """Create a new probe with observation context bound."""
        return DefaultDirectoryProbe(logger=self._logger, context=context)

    def cache_hit(self, key: str) -> None:
        self._logger.debug("directory_cache_hit", key=key, **self._get_context_kwargs())

    def cache_miss(self, key: str) -> None:
        self._logger.debug(
            "directory_cache_miss", key=key, **self._get_context_kwargs()
        )

    def cache_invalidated(self, scope: str, key: str) -> None:
        self._logger.info(
            "directory_cache_invalidated",
            scope=scope,
            key=key,
            **self._get_context_kwargs(),
        )
