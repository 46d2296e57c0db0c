"""Domain probe for identity token verification.

Following Domain-Oriented Observability patterns, this probe captures
domain-significant events related to verifying identity tokens.

See: https://martinfowler.com/articles/domain-oriented-observability.html
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from shared_kernel.observability_context import ObservationContext


class IdentityTokenProbe(Protocol):
    """Domain probe for identity token verification."""

    def token_verified(self, subject: str, kind: str) -> None:
        """Record that a token was successfully verified."""
        ...

    def token_rejected(self, reason: str) -> None:
        """Record that a token failed verification."""
        ...

    def token_issued(self, subject: str, kind: str) -> None:
        """Record that a token was minted."""
        ...

    def with_context(self, context: ObservationContext) -> IdentityTokenProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultIdentityTokenProbe:
    """Default implementation of IdentityTokenProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultIdentityTokenProbe:
        """Create a new probe with observation context bound."""
        return DefaultIdentityTokenProbe(logger=self._logger, context=context)

    def token_verified(self, subject: str, kind: str) -> None:
        """Record that a token was successfully verified."""
        self._logger.debug(
            "identity_token_verified",
            subject=subject,
            kind=kind,
            **self._get_context_kwargs(),
        )

    def token_rejected(self, reason: str) -> None:
        """Record that a token failed verification."""
        self._logger.warning(
            "identity_token_rejected",
            reason=reason,
            **self._get_context_kwargs(),
        )

    def token_issued(self, subject: str, kind: str) -> None:
        """Record that a token was minted."""
        self._logger.info(
            "identity_token_issued",
            subject=subject,
            kind=kind,
            **self._get_context_kwargs(),
        )
