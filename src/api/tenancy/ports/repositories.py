"""Repository protocols (ports) for the tenancy bounded context.

Repository protocols define the interface for persisting and retrieving
aggregates. The directory protocol is the read-only view the resolver
depends on; the writable repositories are used by membership management
and lifecycle operations.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from tenancy.domain.aggregates import (
    Institution,
    SystemAdmin,
    Tenant,
    TenantMembership,
    User,
)
from tenancy.domain.value_objects import InstitutionId, TenantId, UserId


@runtime_checkable
class TenantDirectory(Protocol):
    """Read-only view of the System -> Institution -> Tenant -> User hierarchy.

    Lookups take raw strings because callers hold untrusted selectors.
    Implementations must reflect membership revocation within the cache TTL.
    """

    async def get_tenant(self, tenant_id: str) -> Tenant | None:
        """Retrieve a tenant by id (deleted tenants are not returned)."""
        ...

    async def get_tenant_by_slug(self, slug: str) -> Tenant | None:
        """Retrieve a tenant by slug."""
        ...

    async def get_membership(
        self, user_id: str, tenant_id: str
    ) -> TenantMembership | None:
        """Retrieve one membership regardless of its status."""
        ...

    async def list_active_memberships(self, user_id: str) -> list[TenantMembership]:
        """List the user's ACTIVE memberships in resolvable tenants."""
        ...

    async def get_user(self, user_id: str) -> User | None:
        """Retrieve a tenant user."""
        ...

    async def get_system_admin(self, admin_id: str) -> SystemAdmin | None:
        """Retrieve an active system administrator."""
        ...


@runtime_checkable
class ITenantRepository(Protocol):
    """Repository for Tenant aggregate persistence."""

    async def save(self, tenant: Tenant) -> None:
        """Persist a tenant aggregate and its pending events.

        Raises:
            DuplicateTenantSlugError: If the slug already exists
        """
        ...

    async def get_by_id(self, tenant_id: TenantId) -> Tenant | None:
        ...

    async def get_by_slug(self, slug: str) -> Tenant | None:
        ...

    async def count_by_institution(self, institution_id: InstitutionId) -> int:
        """Count non-deleted tenants of an institution."""
        ...

    async def list_without_institution(self) -> list[Tenant]:
        """List pre-hierarchy tenants whose institution_id is NULL."""
        ...

    async def delete(self, tenant: Tenant) -> bool:
        """Delete the tenant row. Memberships must already be removed."""
        ...


@runtime_checkable
class IInstitutionRepository(Protocol):
    """Repository for Institution aggregate persistence."""

    async def save(self, institution: Institution) -> None:
        """Persist an institution aggregate and its pending events.

        Raises:
            DuplicateTenantSlugError: If the slug already exists
        """
        ...

    async def get_by_id(self, institution_id: InstitutionId) -> Institution | None:
        ...

    async def get_by_slug(self, slug: str) -> Institution | None:
        ...


@runtime_checkable
class IMembershipRepository(Protocol):
    """Repository for TenantMembership persistence."""

    async def save(self, membership: TenantMembership) -> None:
        ...

    async def get(
        self, user_id: UserId, tenant_id: TenantId
    ) -> TenantMembership | None:
        ...

    async def list_by_tenant(self, tenant_id: TenantId) -> list[TenantMembership]:
        ...

    async def count_active_admins(self, tenant_id: TenantId) -> int:
        ...

    async def delete_by_tenant(self, tenant_id: TenantId) -> int:
        """Delete all memberships of a tenant. Returns the number removed."""
        ...


@runtime_checkable
class IAuditLog(Protocol):
    """Append-only security and lifecycle audit trail."""

    async def record(
        self,
        event_type: str,
        actor: Optional[str],
        tenant_id: Optional[str] = None,
        detail: Optional[dict[str, Any]] = None,
    ) -> None:
        """Persist an audit entry in its own transaction.

        Entries survive a rollback of the caller's transaction.
        """
        ...

    async def list_entries(
        self,
        tenant_id: Optional[str] = None,
        event_type: Optional[str] = None,
        limit: int = 100,
    ) -> list[Any]:
        """Most recent entries first, optionally filtered by tenant and event type."""
        ...


@runtime_checkable
class ILifecycleRunLog(Protocol):
    """Records which phase each named lifecycle run reached."""

    async def start(self, operation: str, target: str) -> str:
        """Open a run record and return its id."""
        ...

    async def phase_completed(self, run_id: str, phase: str) -> None:
        ...

    async def finish(
        self, run_id: str, status: str, detail: Optional[str] = None
    ) -> None:
        """Close a run with status ``completed`` or ``failed``."""
        ...

    async def completed_phases(self, operation: str, target: str) -> list[str]:
        """Phases completed by earlier runs of the same operation and target."""
        ...
