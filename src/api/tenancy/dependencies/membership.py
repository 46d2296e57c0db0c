"""Membership service dependency."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.database.dependencies import get_write_session
from shared_kernel.middleware import TenantContext
from shared_kernel.observability_context import ObservationContext
from tenancy.application.directory_cache import CachedTenantDirectory
from tenancy.application.membership_service import MembershipService
from tenancy.application.observability import DefaultMembershipServiceProbe
from tenancy.dependencies.tenant_context import (
    get_tenant_context,
    get_tenant_directory,
)
from tenancy.domain.value_objects import TenantRole
from tenancy.infrastructure.membership_repository import MembershipRepository


def get_membership_service(
    context: Annotated[TenantContext, Depends(get_tenant_context)],
    session: Annotated[AsyncSession, Depends(get_write_session)],
    directory: Annotated[CachedTenantDirectory, Depends(get_tenant_directory)],
) -> MembershipService:
    """MembershipService for the caller's tenant.

    Committed changes invalidate the affected user's cached memberships.
    """
    return MembershipService(
        membership_repository=MembershipRepository(session, actor=context.user_id),
        session=session,
        probe=DefaultMembershipServiceProbe().with_context(
            ObservationContext.for_caller(context)
        ),
        on_user_changed=directory.invalidate_user,
    )


def require_tenant_admin(
    context: Annotated[TenantContext, Depends(get_tenant_context)],
) -> TenantContext:
    """Allow only admins of the resolved tenant.

    Raises:
        HTTPException 403: If the caller is not an admin of the tenant
    """
    if context.role != TenantRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Tenant admin role required",
        )
    return context
