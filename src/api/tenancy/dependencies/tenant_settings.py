"""Tenant settings service dependencies."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.database.dependencies import get_write_session
from shared_kernel.middleware import TenantContext
from shared_kernel.observability_context import ObservationContext
from tenancy.application.directory_cache import CachedTenantDirectory
from tenancy.application.observability import DefaultTenantSettingsProbe
from tenancy.application.tenant_settings_service import TenantSettingsService
from tenancy.dependencies.tenant_context import (
    get_system_context,
    get_tenant_context,
    get_tenant_directory,
)
from tenancy.infrastructure.tenant_repository import TenantRepository


def _service(
    context: TenantContext,
    session: AsyncSession,
    directory: CachedTenantDirectory,
) -> TenantSettingsService:
    return TenantSettingsService(
        tenant_repository=TenantRepository(session, actor=context.user_id),
        session=session,
        probe=DefaultTenantSettingsProbe().with_context(
            ObservationContext.for_caller(context)
        ),
        on_tenant_changed=directory.invalidate_tenant,
    )


def get_tenant_settings_service(
    context: Annotated[TenantContext, Depends(get_tenant_context)],
    session: Annotated[AsyncSession, Depends(get_write_session)],
    directory: Annotated[CachedTenantDirectory, Depends(get_tenant_directory)],
) -> TenantSettingsService:
    """TenantSettingsService acting as a member of the resolved tenant."""
    return _service(context, session, directory)


def get_admin_tenant_settings_service(
    context: Annotated[TenantContext, Depends(get_system_context)],
    session: Annotated[AsyncSession, Depends(get_write_session)],
    directory: Annotated[CachedTenantDirectory, Depends(get_tenant_directory)],
) -> TenantSettingsService:
    """TenantSettingsService acting as a system administrator."""
    return _service(context, session, directory)
