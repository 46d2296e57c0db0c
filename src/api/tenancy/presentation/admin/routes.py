"""HTTP routes for system administrators.

Institution registration, tenant provisioning and status changes, tenant
settings, record repointing, deprovisioning, and audited cross-tenant reads
of tenant data and of the audit trail. Nothing here is reachable with a
tenant user's credentials.
"""

from __future__ import annotations

from typing import Annotated, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from tenancy.application.tenant_settings_service import TenantSettingsService
from tenancy.dependencies.data_access import get_admin_data_access
from tenancy.dependencies.lifecycle import (
    get_lifecycle_manager,
    get_lifecycle_run_log,
)
from tenancy.dependencies.tenant_settings import get_admin_tenant_settings_service
from tenancy.domain.exceptions import InvalidSlugError
from tenancy.domain.value_objects import InstitutionId, TenantId, UserId
from tenancy.infrastructure.data_access import AdminDataAccess
from tenancy.infrastructure.lifecycle import TenantLifecycleManager
from tenancy.infrastructure.lifecycle_run_log import SqlLifecycleRunLog
from tenancy.ports.exceptions import (
    DuplicateTenantSlugError,
    InstitutionLimitExceededError,
    InstitutionNotFoundError,
    InvalidTenantTransitionError,
    LifecycleLockedError,
    MigrationPhaseError,
    NotTenantOwnedError,
    TenancyError,
    TenantNotFoundError,
    TenantSettingsLockedError,
    UserNotFoundError,
)
from tenancy.presentation.admin.models import (
    AuditEntryResponse,
    CreateInstitutionRequest,
    InstitutionResponse,
    LifecycleResultResponse,
    LifecycleRunResponse,
    LinkOrphansRequest,
    LinkOrphansResponse,
    ProvisionTenantRequest,
    RepointRecordRequest,
    SuspendTenantRequest,
    TenantCountsResponse,
    TenantResponse,
)
from tenancy.presentation.records.models import RecordsResponse
from tenancy.presentation.tenants.models import (
    TenantSettingsResponse,
    UpdateTenantSettingsRequest,
)

router = APIRouter(tags=["admin"])

_NOT_FOUND = (
    InstitutionNotFoundError,
    TenantNotFoundError,
    UserNotFoundError,
    NotTenantOwnedError,
)
_CONFLICT = (
    DuplicateTenantSlugError,
    InstitutionLimitExceededError,
    InvalidTenantTransitionError,
    LifecycleLockedError,
    TenantSettingsLockedError,
)


def raise_for_admin_error(error: Exception) -> NoReturn:
    """Translate a lifecycle or admin data access failure into an HTTP error.

    A failed phase is reported with its operation and phase name; phases
    before it stay committed and a retry resumes from it.
    """
    if isinstance(error, InvalidSlugError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(error),
        ) from error
    if isinstance(error, _NOT_FOUND):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(error),
        ) from error
    if isinstance(error, _CONFLICT):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(error),
        ) from error
    if isinstance(error, MigrationPhaseError):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(error),
                "operation": error.operation,
                "phase": error.phase,
            },
        ) from error
    if isinstance(error, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(error),
        ) from error
    raise error


def _parse(parser, value: str, label: str):
    try:
        return parser(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {label} format",
        )


@router.post("/institutions", status_code=status.HTTP_201_CREATED)
async def create_institution(
    request: CreateInstitutionRequest,
    manager: Annotated[TenantLifecycleManager, Depends(get_lifecycle_manager)],
) -> InstitutionResponse:
    """Register an institution with no tenants yet.

    Raises:
        HTTPException: 400 if the slug is not subdomain-safe
        HTTPException: 409 if the slug is taken
    """
    try:
        institution = await manager.provisioning.create_institution(
            slug=request.slug,
            name=request.name,
            legal_name=request.legal_name,
            document=request.document,
            contact_email=request.contact_email,
            plan=request.plan,
            limits=request.to_limits(),
        )
    except (TenancyError, ValueError) as e:
        raise_for_admin_error(e)
    return InstitutionResponse.from_domain(institution)


@router.post(
    "/institutions/{institution_id}/tenants",
    status_code=status.HTTP_201_CREATED,
    responses={
        201: {"description": "Tenant provisioned", "model": TenantResponse},
        400: {"description": "Invalid slug or ID format"},
        404: {"description": "Institution or admin user not found"},
        409: {
            "description": (
                "Slug taken, institution at its tenant limit, or a provisioning "
                "already running for the institution"
            )
        },
    },
)
async def provision_tenant(
    institution_id: str,
    request: ProvisionTenantRequest,
    manager: Annotated[TenantLifecycleManager, Depends(get_lifecycle_manager)],
) -> TenantResponse:
    """Provision an active tenant with its first admin and seed data.

    Either the whole tenant exists afterwards or nothing does.
    """
    institution = _parse(InstitutionId.from_string, institution_id, "institution ID")
    admin = _parse(UserId.from_string, request.admin_user_id, "user ID")
    try:
        tenant = await manager.provisioning.provision_tenant(
            institution,
            slug=request.slug,
            name=request.name,
            admin_user_id=admin,
            settings=request.settings,
        )
    except (TenancyError, ValueError) as e:
        raise_for_admin_error(e)
    return TenantResponse.from_domain(tenant)


@router.post("/institutions/{institution_id}/link-orphans")
async def link_orphan_tenants(
    institution_id: str,
    request: LinkOrphansRequest,
    manager: Annotated[TenantLifecycleManager, Depends(get_lifecycle_manager)],
) -> LinkOrphansResponse:
    """Attach tenants created before institutions existed."""
    institution = _parse(InstitutionId.from_string, institution_id, "institution ID")
    tenant_ids = [
        _parse(TenantId.from_string, value, "tenant ID") for value in request.tenant_ids
    ]
    try:
        linked = await manager.institutions.link_orphan_tenants(
            institution, tenant_ids
        )
    except (TenancyError, ValueError) as e:
        raise_for_admin_error(e)
    return LinkOrphansResponse(
        institution_id=institution.value, linked=[t.value for t in linked]
    )


@router.post("/tenants/{tenant_id}/suspend")
async def suspend_tenant(
    tenant_id: str,
    request: SuspendTenantRequest,
    manager: Annotated[TenantLifecycleManager, Depends(get_lifecycle_manager)],
) -> TenantResponse:
    """Suspend a tenant. Its members get 403 on new requests."""
    tenant = _parse(TenantId.from_string, tenant_id, "tenant ID")
    try:
        suspended = await manager.status.suspend(tenant, request.reason)
    except (TenancyError, ValueError) as e:
        raise_for_admin_error(e)
    return TenantResponse.from_domain(suspended)


@router.post("/tenants/{tenant_id}/activate")
async def activate_tenant(
    tenant_id: str,
    manager: Annotated[TenantLifecycleManager, Depends(get_lifecycle_manager)],
) -> TenantResponse:
    """Activate a provisioning tenant or lift a suspension."""
    tenant = _parse(TenantId.from_string, tenant_id, "tenant ID")
    try:
        activated = await manager.status.activate(tenant)
    except (TenancyError, ValueError) as e:
        raise_for_admin_error(e)
    return TenantResponse.from_domain(activated)


@router.delete("/tenants/{tenant_id}")
async def deprovision_tenant(
    tenant_id: str,
    manager: Annotated[TenantLifecycleManager, Depends(get_lifecycle_manager)],
    merge_into: Annotated[
        Optional[str], Query(description="Tenant receiving the data")
    ] = None,
    reason: Annotated[Optional[str], Query(description="Recorded reason")] = None,
) -> LifecycleResultResponse:
    """Deprovision a tenant, purging its data or merging it into another.

    Raises:
        HTTPException: 404 if the tenant does not exist
        HTTPException: 409 naming the failed phase; re-issue to resume
    """
    tenant = _parse(TenantId.from_string, tenant_id, "tenant ID")
    survivor = (
        _parse(TenantId.from_string, merge_into, "tenant ID")
        if merge_into is not None
        else None
    )
    try:
        results = await manager.deprovisioning.deprovision(
            tenant, merge_into=survivor, reason=reason
        )
    except (TenancyError, ValueError) as e:
        raise_for_admin_error(e)
    return LifecycleResultResponse(
        operation=manager.deprovisioning.OPERATION,
        target=tenant.value,
        results=results,
    )


@router.post("/records/repoint")
async def repoint_record(
    request: RepointRecordRequest,
    manager: Annotated[TenantLifecycleManager, Depends(get_lifecycle_manager)],
) -> LifecycleResultResponse:
    """Move a misattributed record and everything it owns to another tenant.

    Returns the rows moved per table; empty when the record already
    belongs to the target.
    """
    to_tenant = _parse(TenantId.from_string, request.to_tenant_id, "tenant ID")
    from_tenant = (
        _parse(TenantId.from_string, request.from_tenant_id, "tenant ID")
        if request.from_tenant_id is not None
        else None
    )
    try:
        moved = await manager.repoint.repoint(
            request.table, request.record_id, to_tenant, from_tenant
        )
    except (TenancyError, ValueError) as e:
        raise_for_admin_error(e)
    return LifecycleResultResponse(
        operation=manager.repoint.OPERATION,
        target=f"{request.table}:{request.record_id}",
        results=moved,
    )


@router.get("/data/{table}")
async def read_records(
    table: str,
    data: Annotated[AdminDataAccess, Depends(get_admin_data_access)],
    tenant_id: Annotated[
        Optional[str], Query(description="Narrow to one tenant")
    ] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> RecordsResponse:
    """Read rows of a tenant-owned table across tenants (audited)."""
    tenant = (
        _parse(TenantId.from_string, tenant_id, "tenant ID")
        if tenant_id is not None
        else None
    )
    try:
        rows = await data.select(table, tenant_id=tenant, limit=limit)
    except (TenancyError, ValueError) as e:
        raise_for_admin_error(e)
    return RecordsResponse.from_rows(table, tenant_id, rows)


@router.get("/data/{table}/counts")
async def count_records(
    table: str,
    data: Annotated[AdminDataAccess, Depends(get_admin_data_access)],
) -> TenantCountsResponse:
    """Row counts per tenant for a tenant-owned table (audited)."""
    try:
        counts = await data.count_by_tenant(table)
    except (TenancyError, ValueError) as e:
        raise_for_admin_error(e)
    return TenantCountsResponse(table=table, counts=counts)


@router.get("/lifecycle-runs")
async def list_lifecycle_runs(
    run_log: Annotated[SqlLifecycleRunLog, Depends(get_lifecycle_run_log)],
    target: Annotated[Optional[str], Query(description="Filter by target")] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 20,
) -> list[LifecycleRunResponse]:
    """Most recent lifecycle runs first."""
    runs = await run_log.list_runs(target=target, limit=limit)
    return [LifecycleRunResponse.from_model(run) for run in runs]


@router.get("/audit-log")
async def read_audit_log(
    data: Annotated[AdminDataAccess, Depends(get_admin_data_access)],
    tenant_id: Annotated[
        Optional[str], Query(description="Narrow to one tenant")
    ] = None,
    event_type: Annotated[
        Optional[str], Query(description="Narrow to one event type")
    ] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> list[AuditEntryResponse]:
    """Audit trail entries, newest first (the read is itself audited)."""
    tenant = (
        _parse(TenantId.from_string, tenant_id, "tenant ID")
        if tenant_id is not None
        else None
    )
    entries = await data.audit_entries(
        tenant_id=tenant, event_type=event_type, limit=limit
    )
    return [AuditEntryResponse.from_model(entry) for entry in entries]


@router.get("/tenants/{tenant_id}/settings")
async def get_tenant_settings(
    tenant_id: str,
    service: Annotated[
        TenantSettingsService, Depends(get_admin_tenant_settings_service)
    ],
) -> TenantSettingsResponse:
    tenant_ref = _parse(TenantId.from_string, tenant_id, "tenant ID")
    try:
        tenant = await service.get_settings(tenant_ref)
    except TenancyError as e:
        raise_for_admin_error(e)
    return TenantSettingsResponse.from_domain(tenant)


@router.patch("/tenants/{tenant_id}/settings")
async def update_tenant_settings(
    tenant_id: str,
    request: UpdateTenantSettingsRequest,
    service: Annotated[
        TenantSettingsService, Depends(get_admin_tenant_settings_service)
    ],
) -> TenantSettingsResponse:
    """Merge settings into any tenant; a null value removes the key."""
    tenant_ref = _parse(TenantId.from_string, tenant_id, "tenant ID")
    try:
        tenant = await service.update_settings(tenant_ref, request.changes)
    except (TenancyError, ValueError) as e:
        raise_for_admin_error(e)
    return TenantSettingsResponse.from_domain(tenant)
