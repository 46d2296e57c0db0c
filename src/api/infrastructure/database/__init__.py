"""Database infrastructure - shared connection primitives."""

from infrastructure.database.exceptions import (
    DatabaseError,
    TenantBindingError,
)

__all__ = [
    "DatabaseError",
    "TenantBindingError",
]
