"""Guarded data access dependencies.

Tenant routes receive a ``TenantScope`` for the resolved tenant; the
transaction starts when the route enters it. System-admin routes receive
``AdminDataAccess``, which cannot be built from a tenant context.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.database.dependencies import (
    get_write_session,
    get_write_sessionmaker,
)
from infrastructure.settings import get_tenancy_settings
from shared_kernel.middleware import TenantContext
from shared_kernel.observability_context import ObservationContext
from tenancy.dependencies.tenant_context import get_system_context, get_tenant_context
from tenancy.domain.value_objects import TenantId
from tenancy.infrastructure.audit_log import SqlAuditLog
from tenancy.infrastructure.data_access import AdminDataAccess, TenantScope
from tenancy.infrastructure.observability import DefaultDataAccessProbe
from tenancy.ports.repositories import IAuditLog


@lru_cache
def get_audit_log() -> SqlAuditLog:
    """Audit log writing through its own sessions, so entries survive rollbacks."""
    return SqlAuditLog(get_write_sessionmaker())


def _probe_for(context: TenantContext) -> DefaultDataAccessProbe:
    return DefaultDataAccessProbe().with_context(
        ObservationContext.for_caller(context)
    )


def get_tenant_scope(
    context: Annotated[TenantContext, Depends(get_tenant_context)],
    session: Annotated[AsyncSession, Depends(get_write_session)],
    audit: Annotated[IAuditLog, Depends(get_audit_log)],
) -> TenantScope:
    """Unentered tenant scope for the caller's resolved tenant.

    Usage::

        async with scope as data:
            await data.scoped_select("escolas", tenant_id)
    """
    return TenantScope(
        session,
        TenantId(value=context.tenant_id) if context.tenant_id else None,
        audit,
        _probe_for(context),
        setting=get_tenancy_settings().current_tenant_setting,
        actor=context.user_id,
    )


def get_admin_data_access(
    context: Annotated[TenantContext, Depends(get_system_context)],
    session: Annotated[AsyncSession, Depends(get_write_session)],
    audit: Annotated[IAuditLog, Depends(get_audit_log)],
) -> AdminDataAccess:
    return AdminDataAccess(
        session,
        context,
        audit,
        _probe_for(context),
        bypass_setting=get_tenancy_settings().admin_bypass_setting,
    )
