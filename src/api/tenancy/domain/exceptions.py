"""Domain exceptions for the tenancy bounded context."""


class TenancyError(Exception):
    """Base class for every tenancy error."""

    pass


class InvalidTenantTransitionError(TenancyError):
    """Raised when a tenant status change is not allowed by the state machine.

    Deletion is terminal; suspension only applies to active tenants.
    """

    def __init__(self, tenant_id: str, current: str, target: str):
        super().__init__(
            f"Tenant {tenant_id} cannot move from '{current}' to '{target}'"
        )
        self.tenant_id = tenant_id
        self.current = current
        self.target = target


class CannotRemoveLastAdminError(TenancyError):
    """Raised when revoking or demoting the last active admin of a tenant."""

    def __init__(self, message: str = "Cannot remove the last admin of a tenant"):
        super().__init__(message)


class InvalidSlugError(TenancyError, ValueError):
    """Raised when a tenant or institution slug is not subdomain-safe."""

    pass


class TenantAlreadyLinkedError(TenancyError):
    """Raised when linking a tenant that already belongs to an institution."""

    pass


class InvalidMembershipTransitionError(TenancyError):
    """Raised when activating a revoked membership; it must be re-invited."""

    pass


class TenantSettingsLockedError(TenancyError):
    """Raised when changing the settings of a tenant being deprovisioned."""

    pass
