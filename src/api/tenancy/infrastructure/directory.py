"""PostgreSQL implementation of the TenantDirectory port.

Each lookup opens its own short read session, so one directory instance
can be shared by all requests (and wrapped by CachedTenantDirectory).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import select

from tenancy.domain.value_objects import MembershipStatus, TenantStatus
from tenancy.infrastructure.mappers import (
    membership_from_model,
    system_admin_from_model,
    tenant_from_model,
    user_from_model,
)
from tenancy.infrastructure.models import (
    SystemAdminModel,
    TenantMembershipModel,
    TenantModel,
    UserModel,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from tenancy.domain.aggregates import (
        SystemAdmin,
        Tenant,
        TenantMembership,
        User,
    )

_RESOLVABLE = (TenantStatus.ACTIVE.value, TenantStatus.SUSPENDED.value)


class SqlTenantDirectory:
    """Read-only directory backed by the institutions/tenants/membership tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        stmt = select(TenantModel).where(
            TenantModel.id == tenant_id,
            TenantModel.status != TenantStatus.DELETED.value,
        )
        async with self._session_factory() as session:
            model = (await session.execute(stmt)).scalar_one_or_none()
        return tenant_from_model(model) if model is not None else None

    async def get_tenant_by_slug(self, slug: str) -> Optional[Tenant]:
        stmt = select(TenantModel).where(
            TenantModel.slug == slug,
            TenantModel.status != TenantStatus.DELETED.value,
        )
        async with self._session_factory() as session:
            model = (await session.execute(stmt)).scalar_one_or_none()
        return tenant_from_model(model) if model is not None else None

    async def get_membership(
        self, user_id: str, tenant_id: str
    ) -> Optional[TenantMembership]:
        stmt = select(TenantMembershipModel).where(
            TenantMembershipModel.user_id == user_id,
            TenantMembershipModel.tenant_id == tenant_id,
        )
        async with self._session_factory() as session:
            model = (await session.execute(stmt)).scalar_one_or_none()
        return membership_from_model(model) if model is not None else None

    async def list_active_memberships(self, user_id: str) -> list[TenantMembership]:
        stmt = (
            select(TenantMembershipModel)
            .join(TenantModel, TenantModel.id == TenantMembershipModel.tenant_id)
            .where(
                TenantMembershipModel.user_id == user_id,
                TenantMembershipModel.status == MembershipStatus.ACTIVE.value,
                TenantModel.status.in_(_RESOLVABLE),
            )
            .order_by(TenantMembershipModel.tenant_id)
        )
        async with self._session_factory() as session:
            models = (await session.execute(stmt)).scalars().all()
        return [membership_from_model(model) for model in models]

    async def get_user(self, user_id: str) -> Optional[User]:
        stmt = select(UserModel).where(UserModel.id == user_id)
        async with self._session_factory() as session:
            model = (await session.execute(stmt)).scalar_one_or_none()
        return user_from_model(model) if model is not None else None

    async def get_system_admin(self, admin_id: str) -> Optional[SystemAdmin]:
        stmt = select(SystemAdminModel).where(
            SystemAdminModel.id == admin_id,
            SystemAdminModel.active.is_(True),
        )
        async with self._session_factory() as session:
            model = (await session.execute(stmt)).scalar_one_or_none()
        return system_admin_from_model(model) if model is not None else None
