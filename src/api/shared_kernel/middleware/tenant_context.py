"""Tenant context value object for resolved tenant identification.

This module contains the pure value object that represents a resolved
tenant context. It is framework-agnostic and contains no business logic,
making it safe for the shared kernel.

The resolution logic (selector parsing, membership re-validation, status
checks) lives in the tenancy bounded context's application layer.
"""

from __future__ import annotations

from dataclasses import dataclass

SYSTEM_ADMIN_ROLE = "system_admin"


@dataclass(frozen=True)
class TenantContext:
    """Resolved tenant context for the current request.

    A context is created once per request and passed explicitly through the
    call chain; nothing stores it globally.

    Attributes:
        tenant_id: The resolved tenant, or None only for system-admin scope.
        institution_id: Institution owning the tenant (None in system scope).
        role: The caller's membership role in the tenant, or "system_admin".
        user_id: The authenticated caller.
        source: How the tenant was resolved - 'header', 'subdomain',
            'token_default', 'single_membership' or 'system'.
    """

    tenant_id: str | None
    institution_id: str | None
    role: str
    user_id: str
    source: str

    @classmethod
    def system(cls, admin_id: str) -> TenantContext:
        """Context for a system admin operating above all tenants."""
        return cls(
            tenant_id=None,
            institution_id=None,
            role=SYSTEM_ADMIN_ROLE,
            user_id=admin_id,
            source="system",
        )

    @property
    def is_system_scope(self) -> bool:
        """Whether this context carries no tenant (system-admin routes only)."""
        return self.tenant_id is None and self.role == SYSTEM_ADMIN_ROLE
