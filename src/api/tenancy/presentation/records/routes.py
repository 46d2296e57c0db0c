"""HTTP routes for reading and writing tenant-owned records.

Every handler goes through ``TenantScope``: the tenant comes from the
resolved context, never from the request body or query, and a row of any
other tenant is never returned or written.
"""

from __future__ import annotations

from typing import Annotated, Any, NoReturn

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError

from shared_kernel.middleware import TenantContext
from tenancy.dependencies.data_access import get_tenant_scope
from tenancy.dependencies.tenant_context import get_tenant_context
from tenancy.domain.value_objects import TenantId
from tenancy.infrastructure.data_access import TenantScope
from tenancy.ports.exceptions import (
    CrossTenantViolationError,
    MissingTenantContextError,
    NotTenantOwnedError,
    TenancyError,
)
from tenancy.presentation.records.models import RecordResponse, RecordsResponse

router = APIRouter(prefix="/current/records", tags=["records"])


def raise_for_data_error(error: Exception) -> NoReturn:
    """Translate a guarded data access failure into an HTTP error.

    Isolation violations are reported without detail; the audit log and
    the probe carry the specifics.
    """
    if isinstance(error, NotTenantOwnedError):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Unknown table",
        ) from error
    if isinstance(error, MissingTenantContextError):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Tenant context required",
        ) from error
    if isinstance(error, CrossTenantViolationError):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Tenant isolation violation",
        ) from error
    if isinstance(error, IntegrityError):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Record conflicts with existing data",
        ) from error
    if isinstance(error, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(error),
        ) from error
    raise error


def _tenant(context: TenantContext) -> TenantId:
    assert context.tenant_id is not None
    return TenantId(value=context.tenant_id)


@router.get("/{table}")
async def list_records(
    table: str,
    context: Annotated[TenantContext, Depends(get_tenant_context)],
    scope: Annotated[TenantScope, Depends(get_tenant_scope)],
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> RecordsResponse:
    """List the current tenant's rows of ``table``."""
    tenant = _tenant(context)
    try:
        async with scope as data:
            rows = await data.scoped_select(table, tenant, limit=limit)
    except (TenancyError, IntegrityError, ValueError) as e:
        raise_for_data_error(e)
    return RecordsResponse.from_rows(table, tenant.value, rows)


@router.post("/{table}", status_code=status.HTTP_201_CREATED)
async def create_record(
    table: str,
    record: Annotated[dict[str, Any], Body()],
    context: Annotated[TenantContext, Depends(get_tenant_context)],
    scope: Annotated[TenantScope, Depends(get_tenant_scope)],
) -> RecordResponse:
    """Insert a row owned by the current tenant.

    A ``tenant_id`` in the body is ignored; the row always belongs to the
    resolved tenant.
    """
    tenant = _tenant(context)
    try:
        async with scope as data:
            row = await data.scoped_insert(table, tenant, record)
    except (TenancyError, IntegrityError, ValueError) as e:
        raise_for_data_error(e)
    return RecordResponse(table=table, record=row)


@router.patch("/{table}/{record_id}")
async def update_record(
    table: str,
    record_id: int,
    values: Annotated[dict[str, Any], Body()],
    context: Annotated[TenantContext, Depends(get_tenant_context)],
    scope: Annotated[TenantScope, Depends(get_tenant_scope)],
) -> RecordResponse:
    """Update one of the current tenant's rows.

    Raises:
        HTTPException: 404 if the tenant has no such row
        HTTPException: 500 if the update tried to move the row to another
            tenant
    """
    tenant = _tenant(context)
    try:
        async with scope as data:
            rows = await data.scoped_update(table, tenant, {"id": record_id}, values)
    except (TenancyError, IntegrityError, ValueError) as e:
        raise_for_data_error(e)
    if not rows:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Record not found",
        )
    return RecordResponse(table=table, record=rows[0])


@router.delete(
    "/{table}/{record_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_model=None,
)
async def delete_record(
    table: str,
    record_id: int,
    context: Annotated[TenantContext, Depends(get_tenant_context)],
    scope: Annotated[TenantScope, Depends(get_tenant_scope)],
) -> None:
    """Delete one of the current tenant's rows."""
    tenant = _tenant(context)
    try:
        async with scope as data:
            deleted = await data.scoped_delete(table, tenant, {"id": record_id})
    except (TenancyError, IntegrityError, ValueError) as e:
        raise_for_data_error(e)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Record not found",
        )
