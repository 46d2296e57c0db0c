"""Tenant context FastAPI dependencies.

Tenant routes use ``get_tenant_context``; system-admin routes use
``get_system_context``. Both resolve through the same resolver, which
refuses each credential kind outside its own namespace.

Usage in FastAPI routes:
    @router.get("/example")
    async def example(
        context: Annotated[TenantContext, Depends(get_tenant_context)],
    ):
        ...
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, NoReturn

from fastapi import Depends, HTTPException, Request, status

from infrastructure.database.dependencies import get_read_sessionmaker
from infrastructure.settings import get_tenancy_settings
from shared_kernel.auth import IdentityClaims
from shared_kernel.middleware import TenantContext
from shared_kernel.middleware.observability import DefaultTenantContextProbe
from tenancy.application.directory_cache import CachedTenantDirectory
from tenancy.application.observability import DefaultDirectoryProbe
from tenancy.application.resolver import (
    TenantContextResolver,
    TenantSelector,
    subdomain_from_host,
)
from tenancy.dependencies.authentication import get_identity_claims
from tenancy.infrastructure.directory import SqlTenantDirectory
from tenancy.ports.exceptions import (
    AmbiguousTenantError,
    TenancyError,
    UnauthenticatedError,
    UnauthorizedError,
)

ACCESS_DENIED = "Access denied"


@lru_cache
def get_tenant_directory() -> CachedTenantDirectory:
    """Process-wide cached directory.

    Writers in this process (membership and lifecycle routes) invalidate it
    explicitly; everything else expires after the configured TTL.
    """
    settings = get_tenancy_settings()
    return CachedTenantDirectory(
        SqlTenantDirectory(get_read_sessionmaker()),
        ttl_seconds=settings.directory_cache_ttl_seconds,
        probe=DefaultDirectoryProbe(),
        max_entries=settings.directory_cache_max_entries,
    )


@lru_cache
def get_tenant_resolver() -> TenantContextResolver:
    return TenantContextResolver(
        directory=get_tenant_directory(),
        probe=DefaultTenantContextProbe(),
    )


def selector_from_request(request: Request) -> TenantSelector:
    """Read the tenant header and the Host subdomain."""
    settings = get_tenancy_settings()
    host = request.headers.get("host")
    return TenantSelector(
        header=request.headers.get(settings.header_name) or None,
        subdomain=subdomain_from_host(host, settings.base_domain),
    )


def raise_for_resolution_error(error: TenancyError) -> NoReturn:
    """Translate a resolution failure into an HTTP error.

    Authorization failures share one generic message so a caller cannot
    tell an unknown tenant from one it may not access.
    """
    if isinstance(error, UnauthenticatedError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        ) from error
    if isinstance(error, AmbiguousTenantError):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "message": "Tenant selection required",
                "tenants": list(error.candidates),
            },
        ) from error
    if isinstance(error, UnauthorizedError):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=ACCESS_DENIED,
        ) from error
    raise error


async def get_tenant_context(
    request: Request,
    claims: Annotated[IdentityClaims, Depends(get_identity_claims)],
    resolver: Annotated[TenantContextResolver, Depends(get_tenant_resolver)],
) -> TenantContext:
    """Resolve the tenant for a tenant route.

    Raises:
        HTTPException 401: Unknown identity
        HTTPException 403: Tenant not accessible, suspended, ambiguous, or a
            system-admin credential on a tenant route
    """
    try:
        return await resolver.resolve(claims, selector_from_request(request))
    except TenancyError as e:
        raise_for_resolution_error(e)


async def get_system_context(
    claims: Annotated[IdentityClaims, Depends(get_identity_claims)],
    resolver: Annotated[TenantContextResolver, Depends(get_tenant_resolver)],
) -> TenantContext:
    """Resolve system scope for a system-admin route.

    Raises:
        HTTPException 401: Unknown system administrator
        HTTPException 403: Tenant credential on a system-admin route
    """
    try:
        return await resolver.resolve(claims, system_route=True)
    except TenancyError as e:
        raise_for_resolution_error(e)
