"""Database-specific exceptions shared by the tenancy infrastructure."""


class DatabaseError(Exception):
    """Base exception for database operations."""

    pass


class TenantBindingError(DatabaseError):
    """Raised when the per-connection tenant setting cannot be asserted or cleared.

    A connection whose tenant setting is in an unknown state must never be
    handed to another request; callers invalidate it instead.
    """

    pass
