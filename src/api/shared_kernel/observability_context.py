"""Observation context for domain-oriented observability.

Probes bind an ObservationContext so every event they log carries the
caller and, once resolved, the tenant the request acts on.

See: https://martinfowler.com/articles/domain-oriented-observability.html
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from shared_kernel.middleware.tenant_context import TenantContext


@dataclass(frozen=True)
class ObservationContext:
    """Immutable request metadata attached to probe events.

    Attributes:
        request_id: Identifier of the request or CLI invocation.
        user_id: The caller (user or system admin).
        tenant_id: Resolved tenant; None before resolution and in system scope.
        institution_id: Institution owning the resolved tenant.
        extra: Additional contextual metadata.
    """

    request_id: str | None = None
    user_id: str | None = None
    tenant_id: str | None = None
    institution_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_caller(
        cls, context: TenantContext, request_id: str | None = None
    ) -> ObservationContext:
        """Context for probes acting on behalf of a resolved caller."""
        return cls(
            request_id=request_id,
            user_id=context.user_id,
            tenant_id=context.tenant_id,
            institution_id=context.institution_id,
        )

    def as_dict(self) -> dict[str, Any]:
        """Non-None fields plus ``extra``, ready to pass as log kwargs."""
        fields = {
            "request_id": self.request_id,
            "user_id": self.user_id,
            "tenant_id": self.tenant_id,
            "institution_id": self.institution_id,
        }
        result = {key: value for key, value in fields.items() if value is not None}
        result.update(self.extra)
        return result
