"""PostgreSQL implementation of IMembershipRepository."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenancy.domain.aggregates import TenantMembership
from tenancy.domain.value_objects import (
    MembershipStatus,
    TenantId,
    TenantRole,
    UserId,
)
from tenancy.infrastructure.audit_log import append_domain_events
from tenancy.infrastructure.mappers import membership_from_model
from tenancy.infrastructure.models import TenantMembershipModel
from tenancy.infrastructure.observability import (
    DefaultTenancyRepositoryProbe,
    TenancyRepositoryProbe,
)
from tenancy.ports.repositories import IMembershipRepository


class MembershipRepository(IMembershipRepository):
    """Repository for tenant memberships."""

    def __init__(
        self,
        session: AsyncSession,
        probe: TenancyRepositoryProbe | None = None,
        actor: Optional[str] = None,
    ) -> None:
        self._session = session
        self._probe = probe or DefaultTenancyRepositoryProbe()
        self._actor = actor

    async def save(self, membership: TenantMembership) -> None:
        key = (membership.user_id.value, membership.tenant_id.value)
        model = await self._session.get(TenantMembershipModel, key)
        if model is None:
            model = TenantMembershipModel(
                user_id=membership.user_id.value,
                tenant_id=membership.tenant_id.value,
            )
            self._session.add(model)
        model.role = membership.role.value
        model.status = membership.status.value

        await self._session.flush()
        append_domain_events(
            self._session, membership.collect_events(), self._actor
        )
        self._probe.membership_saved(
            membership.tenant_id.value,
            membership.user_id.value,
            membership.status.value,
        )

    async def get(
        self, user_id: UserId, tenant_id: TenantId
    ) -> TenantMembership | None:
        model = await self._session.get(
            TenantMembershipModel, (user_id.value, tenant_id.value)
        )
        return membership_from_model(model) if model is not None else None

    async def list_by_tenant(self, tenant_id: TenantId) -> list[TenantMembership]:
        stmt = (
            select(TenantMembershipModel)
            .where(TenantMembershipModel.tenant_id == tenant_id.value)
            .order_by(TenantMembershipModel.user_id)
        )
        models = (await self._session.execute(stmt)).scalars().all()
        return [membership_from_model(model) for model in models]

    async def count_active_admins(self, tenant_id: TenantId) -> int:
        stmt = (
            select(func.count())
            .select_from(TenantMembershipModel)
            .where(
                TenantMembershipModel.tenant_id == tenant_id.value,
                TenantMembershipModel.role == TenantRole.ADMIN.value,
                TenantMembershipModel.status == MembershipStatus.ACTIVE.value,
            )
        )
        return int((await self._session.execute(stmt)).scalar_one())

    async def delete_by_tenant(self, tenant_id: TenantId) -> int:
        result = await self._session.execute(
            delete(TenantMembershipModel).where(
                TenantMembershipModel.tenant_id == tenant_id.value
            )
        )
        count = result.rowcount or 0
        self._probe.memberships_removed(tenant_id.value, count)
        return count
