"""Tenant context resolution.

Turns a verified identity plus optional tenant selectors into exactly one
TenantContext, or raises. Resolution only reads from the directory, so it
is idempotent and safe to retry. Every failure is terminal: nothing here
ever falls back to a guessed tenant.

Priority order:
1. System-admin credentials resolve to system scope, on system routes only.
2. An explicit selector (header or subdomain) requires an active membership.
3. The token's default tenant, re-validated against the directory.
4. The caller's single active membership; zero or several is ambiguous.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from shared_kernel.middleware import TenantContext
from tenancy.domain.value_objects import TenantId, TenantStatus
from tenancy.ports.exceptions import (
    AmbiguousTenantError,
    SystemAdminRequiredError,
    TenantMismatchError,
    TenantSuspendedError,
    UnauthenticatedError,
)

if TYPE_CHECKING:
    from shared_kernel.auth import IdentityClaims
    from shared_kernel.middleware.observability import TenantContextProbe
    from tenancy.domain.aggregates import Tenant
    from tenancy.ports.repositories import TenantDirectory


@dataclass(frozen=True)
class TenantSelector:
    """Explicit tenant selection carried by the request.

    Either value may be a tenant id or a tenant slug.
    """

    header: Optional[str] = None
    subdomain: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.header and not self.subdomain


def subdomain_from_host(
    host: Optional[str], base_domain: Optional[str]
) -> Optional[str]:
    """Extract the tenant label from ``<label>.<base_domain>``.

    Returns None when subdomain selection is disabled, the host is the base
    domain itself, or the label is nested (``a.b.<base_domain>``).
    """
    if not host or not base_domain:
        return None
    hostname = host.split(":", 1)[0].strip().lower().rstrip(".")
    suffix = "." + base_domain.strip().lower().strip(".")
    if not hostname.endswith(suffix):
        return None
    label = hostname[: -len(suffix)]
    if not label or "." in label or label == "www":
        return None
    return label


class TenantContextResolver:
    """Resolves the active tenant for a request.

    Holds no per-request state; one instance serves all concurrent requests.
    """

    def __init__(self, directory: TenantDirectory, probe: TenantContextProbe):
        self._directory = directory
        self._probe = probe

    async def resolve(
        self,
        claims: IdentityClaims,
        selector: TenantSelector = TenantSelector(),
        system_route: bool = False,
    ) -> TenantContext:
        """Resolve the caller's context.

        Args:
            claims: Verified identity token claims
            selector: Header/subdomain tenant selection, if any
            system_route: True for the system-admin route namespace

        Returns:
            TenantContext for the request

        Raises:
            UnauthenticatedError: System-admin token for an unknown admin
            SystemAdminRequiredError: Credential used outside its namespace
            TenantMismatchError: Selected or default tenant not accessible
            TenantSuspendedError: Member of a suspended tenant
            AmbiguousTenantError: No selector and not exactly one membership
        """
        if claims.is_system_admin:
            return await self._resolve_system_admin(claims, system_route)

        user_id = claims.subject
        if system_route:
            self._probe.system_route_denied(user_id=user_id)
            raise SystemAdminRequiredError("System administrator credentials required")

        if not selector.is_empty:
            tenant, source = await self._select(user_id, selector)
            return await self._authorize(user_id, tenant, source)

        if claims.default_tenant_id:
            tenant = await self._directory.get_tenant(claims.default_tenant_id)
            try:
                return await self._authorize(user_id, tenant, "token_default")
            except TenantMismatchError:
                self._probe.stale_default_tenant(
                    user_id=user_id, tenant_id=claims.default_tenant_id
                )
                raise

        memberships = await self._directory.list_active_memberships(user_id)
        if len(memberships) != 1:
            self._probe.ambiguous_tenant(
                user_id=user_id, candidate_count=len(memberships)
            )
            raise AmbiguousTenantError(
                candidates=[m.tenant_id.value for m in memberships]
            )

        tenant = await self._directory.get_tenant(memberships[0].tenant_id.value)
        return await self._authorize(user_id, tenant, "single_membership")

    async def _resolve_system_admin(
        self, claims: IdentityClaims, system_route: bool
    ) -> TenantContext:
        if not system_route:
            self._probe.system_admin_on_tenant_route(admin_id=claims.subject)
            raise SystemAdminRequiredError(
                "System administrator credentials cannot act on tenant routes"
            )
        admin = await self._directory.get_system_admin(claims.subject)
        if admin is None or not admin.active:
            raise UnauthenticatedError("Unknown system administrator")
        self._probe.system_scope_resolved(admin_id=admin.id.value)
        return TenantContext.system(admin.id.value)

    async def _select(
        self, user_id: str, selector: TenantSelector
    ) -> tuple[Optional[Tenant], str]:
        header = selector.header.strip() if selector.header else None
        subdomain = selector.subdomain

        from_header = await self._lookup(header) if header else None
        from_subdomain = await self._lookup(subdomain) if subdomain else None

        if header and subdomain:
            if (
                from_header is None
                or from_subdomain is None
                or from_header.id != from_subdomain.id
            ):
                self._probe.conflicting_selectors(
                    user_id=user_id, header=header, subdomain=subdomain
                )
                raise TenantMismatchError("conflicting tenant selectors")
            return from_header, "header"

        if header:
            return from_header, "header"
        return from_subdomain, "subdomain"

    async def _lookup(self, value: str) -> Optional[Tenant]:
        if TenantId.is_valid(value):
            tenant = await self._directory.get_tenant(value.upper())
            if tenant is not None:
                return tenant
        return await self._directory.get_tenant_by_slug(value.lower())

    async def _authorize(
        self, user_id: str, tenant: Optional[Tenant], source: str
    ) -> TenantContext:
        if tenant is None:
            self._probe.tenant_mismatch(
                user_id=user_id, selector=source, reason="unknown tenant"
            )
            raise TenantMismatchError()

        # Membership before status so a non-member learns nothing about the tenant.
        membership = await self._directory.get_membership(user_id, tenant.id.value)
        if membership is None or not membership.is_active:
            self._probe.tenant_mismatch(
                user_id=user_id, selector=source, reason="no active membership"
            )
            raise TenantMismatchError()

        if tenant.status == TenantStatus.SUSPENDED:
            self._probe.tenant_suspended(tenant_id=tenant.id.value, user_id=user_id)
            raise TenantSuspendedError(tenant.id.value)

        if not tenant.serves_data:
            self._probe.tenant_mismatch(
                user_id=user_id,
                selector=source,
                reason=f"tenant status {tenant.status.value}",
            )
            raise TenantMismatchError()

        self._probe.tenant_resolved(
            tenant_id=tenant.id.value, user_id=user_id, source=source
        )
        return TenantContext(
            tenant_id=tenant.id.value,
            institution_id=(
                tenant.institution_id.value if tenant.institution_id else None
            ),
            role=membership.role.value,
            user_id=user_id,
            source=source,
        )
