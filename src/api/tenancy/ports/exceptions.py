"""Error taxonomy for the tenancy bounded context.

Resolution errors are terminal for the request: the dependency layer maps
them to HTTP responses and never falls back to a guessed tenant. Guard
errors fail closed. Lifecycle errors carry the phase that failed so the
operation can be resumed.
"""

from __future__ import annotations

from typing import Sequence

from tenancy.domain.exceptions import (
    CannotRemoveLastAdminError,
    InvalidMembershipTransitionError,
    InvalidSlugError,
    InvalidTenantTransitionError,
    TenantAlreadyLinkedError,
    TenancyError,
    TenantSettingsLockedError,
)


class UnauthenticatedError(TenancyError):
    """Raised when the request carries no valid identity token."""

    pass


class UnauthorizedError(TenancyError):
    """Base for authenticated callers that may not act in the requested scope."""

    pass


class TenantMismatchError(UnauthorizedError):
    """Raised when the selected or default tenant is not accessible.

    The message given to callers is generic: it never reveals whether the
    tenant exists.
    """

    def __init__(self, reason: str = "tenant not accessible"):
        super().__init__(reason)
        self.reason = reason


class SystemAdminRequiredError(UnauthorizedError):
    """Raised when a tenant credential reaches a system-admin route,
    or a system-admin credential reaches a tenant route."""

    pass


class AmbiguousTenantError(TenancyError):
    """Raised when no selector was given and the user has zero or several
    active memberships.

    Attributes:
        candidates: Tenants the caller is an active member of (for a picker)
    """

    def __init__(self, candidates: Sequence[str] = ()):
        self.candidates = tuple(candidates)
        if self.candidates:
            message = (
                f"Multiple tenants available ({len(self.candidates)}); "
                "select one explicitly"
            )
        else:
            message = "No active tenant membership"
        super().__init__(message)


class TenantSuspendedError(UnauthorizedError):
    """Raised when a member's tenant is suspended."""

    def __init__(self, tenant_id: str):
        super().__init__(f"Tenant {tenant_id} is suspended")
        self.tenant_id = tenant_id


class CrossTenantViolationError(TenancyError):
    """Raised when a guarded operation would read or write another tenant's data.

    Always audited before it is raised.
    """

    def __init__(self, table: str, tenant_id: str, detail: str):
        super().__init__(f"Cross-tenant violation on {table}: {detail}")
        self.table = table
        self.tenant_id = tenant_id
        self.detail = detail


class MissingTenantContextError(TenancyError):
    """Raised when tenant-scoped access is attempted without a resolved tenant."""

    pass


class NotTenantOwnedError(TenancyError):
    """Raised when a guarded operation names a table outside the registry."""

    def __init__(self, table: str):
        super().__init__(f"Table '{table}' is not a registered tenant-owned table")
        self.table = table


class TenantNotFoundError(TenancyError):
    """Raised when a tenant cannot be found."""

    pass


class InstitutionNotFoundError(TenancyError):
    """Raised when an institution cannot be found."""

    pass


class DuplicateTenantSlugError(TenancyError):
    """Raised when a tenant or institution slug is already taken."""

    pass


class InstitutionLimitExceededError(TenancyError):
    """Raised when provisioning would exceed the institution's tenant cap."""

    pass


class MembershipNotFoundError(TenancyError):
    """Raised when a membership cannot be found."""

    pass


class UserNotFoundError(TenancyError):
    """Raised when a user referenced by a lifecycle operation does not exist."""

    pass


class TenantHasForeignReferencesError(TenancyError):
    """Raised when a tenant's records are referenced from another tenant."""

    def __init__(self, tenant_id: str, references: dict[str, int]):
        detail = ", ".join(f"{table}={count}" for table, count in references.items())
        super().__init__(f"Tenant {tenant_id} is referenced by other tenants: {detail}")
        self.tenant_id = tenant_id
        self.references = references


class LifecycleLockedError(TenancyError):
    """Raised when another process holds the lifecycle lock for a target."""

    def __init__(self, lock_name: str):
        super().__init__(f"Lifecycle operation already running: {lock_name}")
        self.lock_name = lock_name


class MigrationPhaseError(TenancyError):
    """Raised when a lifecycle phase fails.

    Completed phases stay committed; re-running the operation resumes from
    the failing phase.

    Attributes:
        operation: Lifecycle operation name
        phase: The phase that failed
    """

    def __init__(self, operation: str, phase: str, message: str):
        super().__init__(f"{operation} failed in phase '{phase}': {message}")
        self.operation = operation
        self.phase = phase


__all__ = [
    "AmbiguousTenantError",
    "CannotRemoveLastAdminError",
    "CrossTenantViolationError",
    "DuplicateTenantSlugError",
    "InstitutionLimitExceededError",
    "InstitutionNotFoundError",
    "InvalidMembershipTransitionError",
    "InvalidSlugError",
    "InvalidTenantTransitionError",
    "LifecycleLockedError",
    "MembershipNotFoundError",
    "MigrationPhaseError",
    "MissingTenantContextError",
    "NotTenantOwnedError",
    "SystemAdminRequiredError",
    "TenancyError",
    "TenantAlreadyLinkedError",
    "TenantHasForeignReferencesError",
    "TenantMismatchError",
    "TenantNotFoundError",
    "TenantSettingsLockedError",
    "TenantSuspendedError",
    "UnauthenticatedError",
    "UnauthorizedError",
    "UserNotFoundError",
]
