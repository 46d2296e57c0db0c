"""HTTP routes for the caller's tenant context."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from shared_kernel.auth import IdentityClaims
from shared_kernel.middleware import TenantContext
from tenancy.application.directory_cache import CachedTenantDirectory
from tenancy.application.tenant_settings_service import TenantSettingsService
from tenancy.dependencies.authentication import get_identity_claims
from tenancy.dependencies.membership import require_tenant_admin
from tenancy.dependencies.tenant_context import (
    ACCESS_DENIED,
    get_tenant_context,
    get_tenant_directory,
)
from tenancy.dependencies.tenant_settings import get_tenant_settings_service
from tenancy.domain.value_objects import TenantId
from tenancy.ports.exceptions import TenantNotFoundError, TenantSettingsLockedError
from tenancy.presentation.tenants.models import (
    TenantContextResponse,
    TenantSettingsResponse,
    TenantSummaryResponse,
    UpdateTenantSettingsRequest,
)

router = APIRouter(tags=["tenants"])


@router.get("/current")
async def get_current_tenant(
    context: Annotated[TenantContext, Depends(get_tenant_context)],
) -> TenantContextResponse:
    """Return the tenant resolved for this request.

    Raises:
        HTTPException: 401 if the caller is not authenticated
        HTTPException: 403 if no tenant can be resolved for the caller
    """
    return TenantContextResponse.from_context(context)


@router.get("/mine")
async def list_my_tenants(
    claims: Annotated[IdentityClaims, Depends(get_identity_claims)],
    directory: Annotated[CachedTenantDirectory, Depends(get_tenant_directory)],
) -> list[TenantSummaryResponse]:
    """List the tenants the caller holds an active membership in.

    Needs no tenant selection, so a user with several tenants can discover
    which ones to select. Only tenants that still resolve are listed.

    Raises:
        HTTPException: 403 for system-admin credentials
    """
    if claims.is_system_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=ACCESS_DENIED,
        )

    summaries: list[TenantSummaryResponse] = []
    for membership in await directory.list_active_memberships(claims.subject):
        tenant = await directory.get_tenant(membership.tenant_id.value)
        if tenant is None or not tenant.is_resolvable:
            continue
        summaries.append(TenantSummaryResponse.from_domain(tenant, membership))
    return summaries


@router.get("/current/settings")
async def get_current_settings(
    context: Annotated[TenantContext, Depends(get_tenant_context)],
    service: Annotated[TenantSettingsService, Depends(get_tenant_settings_service)],
) -> TenantSettingsResponse:
    """Settings of the tenant resolved for this request."""
    try:
        tenant = await service.get_settings(TenantId(value=context.tenant_id))
    except TenantNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=str(e)
        ) from e
    return TenantSettingsResponse.from_domain(tenant)


@router.patch("/current/settings")
async def update_current_settings(
    request: UpdateTenantSettingsRequest,
    context: Annotated[TenantContext, Depends(require_tenant_admin)],
    service: Annotated[TenantSettingsService, Depends(get_tenant_settings_service)],
) -> TenantSettingsResponse:
    """Merge settings into the current tenant; a null value removes the key.

    Raises:
        HTTPException: 403 if the caller is not a tenant admin
        HTTPException: 400 for an empty setting name
    """
    try:
        tenant = await service.update_settings(
            TenantId(value=context.tenant_id),
            request.changes,
            changed_by=context.user_id,
        )
    except TenantNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=str(e)
        ) from e
    except TenantSettingsLockedError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail=str(e)
        ) from e
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)
        ) from e
    return TenantSettingsResponse.from_domain(tenant)
