"""Value objects for the tenancy domain.

Value objects are immutable descriptors that provide type safety and
domain semantics for identifiers and domain concepts.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

from ulid import ULID

from tenancy.domain.exceptions import InvalidSlugError

_SLUG_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")


@dataclass(frozen=True)
class TenantId:
    """Identifier for a Tenant aggregate.

    Uses ULID for sortability and distribution-friendly generation. Every
    guarded data access takes one of these, never a bare string.
    """

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def generate(cls) -> TenantId:
        """Generate a new TenantId using ULID."""
        return cls(value=str(ULID()))

    @classmethod
    def from_string(cls, value: str) -> TenantId:
        """Create TenantId from string value.

        Args:
            value: ULID string

        Returns:
            TenantId instance

        Raises:
            ValueError: If value is not a valid ULID
        """
        try:
            ULID.from_str(value)
        except ValueError as e:
            raise ValueError(f"Invalid TenantId: {value}") from e

        return cls(value=value)

    @staticmethod
    def is_valid(value: str) -> bool:
        """Return True when the string parses as a ULID."""
        try:
            ULID.from_str(value)
        except ValueError:
            return False
        return True


@dataclass(frozen=True)
class InstitutionId:
    """Identifier for an Institution aggregate."""

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def generate(cls) -> InstitutionId:
        """Generate a new InstitutionId using ULID."""
        return cls(value=str(ULID()))

    @classmethod
    def from_string(cls, value: str) -> InstitutionId:
        """Create InstitutionId from string value.

        Raises:
            ValueError: If value is not a valid ULID
        """
        try:
            ULID.from_str(value)
        except ValueError as e:
            raise ValueError(f"Invalid InstitutionId: {value}") from e

        return cls(value=value)


@dataclass(frozen=True)
class UserId:
    """Identifier for a tenant user.

    User ids come from the identity provider, so any non-empty string is
    accepted.
    """

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def generate(cls) -> UserId:
        """Generate a new UserId using ULID."""
        return cls(value=str(ULID()))

    @classmethod
    def from_string(cls, value: str) -> UserId:
        """Create UserId from string value.

        Raises:
            ValueError: If value is empty
        """
        if not value or not value.strip():
            raise ValueError("UserId cannot be empty")
        return cls(value=value)


@dataclass(frozen=True)
class SystemAdminId:
    """Identifier for a system administrator.

    Lives in a namespace disjoint from UserId: a system admin is never a
    tenant user.
    """

    value: str

    def __str__(self) -> str:
        """Return string representation."""
        return self.value

    @classmethod
    def generate(cls) -> SystemAdminId:
        """Generate a new SystemAdminId using ULID."""
        return cls(value=str(ULID()))

    @classmethod
    def from_string(cls, value: str) -> SystemAdminId:
        if not value or not value.strip():
            raise ValueError("SystemAdminId cannot be empty")
        return cls(value=value)


@dataclass(frozen=True)
class Slug:
    """Subdomain-safe short name for tenants and institutions.

    Lowercase letters, digits and inner hyphens, at most 63 characters.
    """

    value: str

    def __post_init__(self) -> None:
        if not _SLUG_PATTERN.match(self.value):
            raise InvalidSlugError(
                f"Invalid slug '{self.value}': use lowercase letters, digits "
                "and inner hyphens (max 63 characters)"
            )

    def __str__(self) -> str:
        return self.value


class TenantStatus(StrEnum):
    """Lifecycle states of a tenant.

    provisioning -> active <-> suspended -> deprovisioning -> deleted
    """

    PROVISIONING = "provisioning"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DEPROVISIONING = "deprovisioning"
    DELETED = "deleted"


class MembershipStatus(StrEnum):
    """States of a user's membership in a tenant."""

    INVITED = "invited"
    ACTIVE = "active"
    REVOKED = "revoked"


class TenantRole(StrEnum):
    """Roles a user can hold within a tenant."""

    ADMIN = "admin"
    MEMBER = "member"


@dataclass(frozen=True)
class ResourceLimits:
    """Per-institution resource caps. ``None`` means unlimited."""

    max_tenants: int | None = None
    max_users: int | None = None
    max_schools: int | None = None

    def allows_another_tenant(self, current_count: int) -> bool:
        """Return True if one more tenant fits under ``max_tenants``."""
        return self.max_tenants is None or current_count < self.max_tenants
