"""Shared middleware for cross-cutting concerns.

Holds the framework-agnostic tenant context value object and the probe
used while resolving it. The resolution itself is owned by the tenancy
bounded context.
"""

from shared_kernel.middleware.tenant_context import SYSTEM_ADMIN_ROLE, TenantContext

__all__ = ["SYSTEM_ADMIN_ROLE", "TenantContext"]
