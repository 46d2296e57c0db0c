"""HTTP routes for managing members of the current tenant.

Every route acts on the tenant resolved for the request; a tenant admin of
one tenant can never reach the members of another.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError

from shared_kernel.middleware import TenantContext
from tenancy.application.membership_service import MembershipService
from tenancy.dependencies.membership import (
    get_membership_service,
    require_tenant_admin,
)
from tenancy.dependencies.tenant_context import get_tenant_context
from tenancy.domain.exceptions import (
    CannotRemoveLastAdminError,
    InvalidMembershipTransitionError,
)
from tenancy.domain.value_objects import TenantId, UserId
from tenancy.ports.exceptions import MembershipNotFoundError
from tenancy.presentation.members.models import (
    ChangeRoleRequest,
    InviteMemberRequest,
    MembershipResponse,
)

router = APIRouter(prefix="/current/members", tags=["members"])


def _user_id(value: str) -> UserId:
    try:
        return UserId.from_string(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid user ID format",
        )


def _tenant_id(context: TenantContext) -> TenantId:
    assert context.tenant_id is not None
    return TenantId(value=context.tenant_id)


@router.get("")
async def list_members(
    context: Annotated[TenantContext, Depends(get_tenant_context)],
    service: Annotated[MembershipService, Depends(get_membership_service)],
) -> list[MembershipResponse]:
    """List every membership of the current tenant, in any status."""
    members = await service.list_members(_tenant_id(context))
    return [MembershipResponse.from_domain(m) for m in members]


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    responses={
        201: {"description": "User invited", "model": MembershipResponse},
        400: {"description": "Invalid user ID format"},
        403: {"description": "Caller is not a tenant admin"},
        404: {"description": "User not found"},
    },
)
async def invite_member(
    request: InviteMemberRequest,
    context: Annotated[TenantContext, Depends(require_tenant_admin)],
    service: Annotated[MembershipService, Depends(get_membership_service)],
) -> MembershipResponse:
    """Invite a user into the current tenant.

    A revoked member is re-invited with the requested role; inviting a
    user who is already invited or active changes nothing.
    """
    user_id = _user_id(request.user_id)
    try:
        membership = await service.invite(
            _tenant_id(context),
            user_id,
            request.to_domain_role(),
            invited_by=context.user_id,
        )
    except IntegrityError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return MembershipResponse.from_domain(membership)


@router.post("/{user_id}/activate")
async def activate_member(
    user_id: str,
    context: Annotated[TenantContext, Depends(require_tenant_admin)],
    service: Annotated[MembershipService, Depends(get_membership_service)],
) -> MembershipResponse:
    """Activate an invited membership.

    Raises:
        HTTPException: 404 if the user was never invited
        HTTPException: 409 if the membership was revoked
    """
    try:
        membership = await service.activate(
            _tenant_id(context), _user_id(user_id), changed_by=context.user_id
        )
    except MembershipNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Membership not found",
        )
    except InvalidMembershipTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return MembershipResponse.from_domain(membership)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_model=None,
    responses={
        204: {"description": "Membership revoked"},
        403: {"description": "Caller is not a tenant admin"},
        404: {"description": "Membership not found"},
        409: {"description": "Cannot remove the last admin from the tenant"},
    },
)
async def revoke_member(
    user_id: str,
    context: Annotated[TenantContext, Depends(require_tenant_admin)],
    service: Annotated[MembershipService, Depends(get_membership_service)],
) -> None:
    """Revoke a membership.

    The user loses access for new requests once cached memberships expire.
    """
    try:
        await service.revoke(
            _tenant_id(context), _user_id(user_id), changed_by=context.user_id
        )
    except MembershipNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Membership not found",
        )
    except CannotRemoveLastAdminError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot remove the last admin from the tenant",
        )


@router.patch("/{user_id}/role")
async def change_member_role(
    user_id: str,
    request: ChangeRoleRequest,
    context: Annotated[TenantContext, Depends(require_tenant_admin)],
    service: Annotated[MembershipService, Depends(get_membership_service)],
) -> MembershipResponse:
    """Change a member's role.

    Raises:
        HTTPException: 404 if the membership does not exist
        HTTPException: 409 if demoting the last admin
    """
    try:
        membership = await service.change_role(
            _tenant_id(context),
            _user_id(user_id),
            request.to_domain_role(),
            changed_by=context.user_id,
        )
    except MembershipNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Membership not found",
        )
    except CannotRemoveLastAdminError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot remove the last admin from the tenant",
        )
    return MembershipResponse.from_domain(membership)
