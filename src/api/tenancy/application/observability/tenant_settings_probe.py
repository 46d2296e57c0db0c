"""Protocol for tenant settings observability."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, Sequence

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class TenantSettingsProbe(Protocol):
    """Domain probe for tenant settings changes."""

    def settings_updated(self, tenant_id: str, keys: Sequence[str]) -> None:
        """Record that settings were set or removed."""
        ...

    def settings_unchanged(self, tenant_id: str) -> None:
        ...

    def with_context(self, context: ObservationContext) -> TenantSettingsProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultTenantSettingsProbe:
    """Default implementation of TenantSettingsProbe using structlog."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        if self._context is None:
            return {}
        return self._context.as_dict()

    def with_context(self, context: ObservationContext) -> DefaultTenantSettingsProbe:
        return DefaultTenantSettingsProbe(logger=self._logger, context=context)

    def settings_updated(self, tenant_id: str, keys: Sequence[str]) -> None:
        self._logger.info(
            "tenant_settings_updated",
            tenant_id=tenant_id,
            keys=list(keys),
            **self._get_context_kwargs(),
        )

    def settings_unchanged(self, tenant_id: str) -> None:
        self._logger.debug(
            "tenant_settings_unchanged",
            tenant_id=tenant_id,
            **self._get_context_kwargs(),
        )
