"""Institution creation and tenant provisioning.

Provisioning is a single transaction: the tenant row, its first admin
membership, the default seed data and the institution's default tenant are
committed together or not at all, so a slug collision leaves nothing
behind.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import insert

from tenancy.domain.aggregates import Institution, Tenant, TenantMembership
from tenancy.domain.value_objects import (
    InstitutionId,
    ResourceLimits,
    Slug,
    TenantRole,
    UserId,
)
from tenancy.infrastructure.lifecycle.runner import LifecycleRunner
from tenancy.infrastructure.membership_repository import MembershipRepository
from tenancy.infrastructure.models import UserModel
from tenancy.infrastructure.tenant_owned_tables import (
    DEFAULT_SEED,
    DEFAULT_TENANT_LIMITS,
    TENANT_COLUMN,
    SeedRows,
    get_tenant_owned,
)
from tenancy.infrastructure.tenant_repository import (
    InstitutionRepository,
    TenantRepository,
)
from tenancy.ports.exceptions import (
    InstitutionLimitExceededError,
    InstitutionNotFoundError,
    UserNotFoundError,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


class ProvisioningService:
    """Creates institutions and provisions tenants inside them."""

    OPERATION = "provision"

    def __init__(
        self,
        runner: LifecycleRunner,
        seed: tuple[SeedRows, ...] = DEFAULT_SEED,
    ):
        self._runner = runner
        self._seed = seed

    async def create_institution(
        self,
        slug: str,
        name: str,
        legal_name: Optional[str] = None,
        document: Optional[str] = None,
        contact_email: Optional[str] = None,
        plan: str = "basic",
        limits: Optional[ResourceLimits] = None,
    ) -> Institution:
        """Create an institution.

        Raises:
            InvalidSlugError: If the slug is malformed
            DuplicateTenantSlugError: If the slug is taken
        """
        institution = Institution.create(
            slug=Slug(slug),
            name=name,
            legal_name=legal_name,
            document=document,
            contact_email=contact_email,
            plan=plan,
            limits=limits,
        )
        async with self._runner.transaction() as session:
            await InstitutionRepository(session, actor=self._runner.actor).save(
                institution
            )
        return institution

    async def provision_tenant(
        self,
        institution_id: InstitutionId,
        slug: str,
        name: str,
        admin_user_id: UserId,
        settings: Optional[dict[str, Any]] = None,
    ) -> Tenant:
        """Provision an active tenant with one admin member.

        Raises:
            InstitutionNotFoundError: If the institution does not exist
            InstitutionLimitExceededError: If the institution is at max_tenants
            UserNotFoundError: If the first admin does not exist
            DuplicateTenantSlugError: If the slug is taken
            LifecycleLockedError: If the institution is being provisioned elsewhere
        """
        tenant_slug = Slug(slug)
        created: list[Tenant] = []

        async def provision() -> int:
            async with self._runner.transaction() as session:
                tenant = await self._provision(
                    session,
                    institution_id,
                    tenant_slug,
                    name,
                    admin_user_id,
                    settings,
                )
            created.append(tenant)
            return 1

        async with self._runner.run(
            self.OPERATION, tenant_slug.value, f"institution:{institution_id}"
        ) as run:
            await run.phase("provision", provision)
        return created[0]

    async def _provision(
        self,
        session: AsyncSession,
        institution_id: InstitutionId,
        slug: Slug,
        name: str,
        admin_user_id: UserId,
        settings: Optional[dict[str, Any]],
    ) -> Tenant:
        actor = self._runner.actor
        institutions = InstitutionRepository(session, actor=actor)
        tenants = TenantRepository(session, actor=actor)
        memberships = MembershipRepository(session, actor=actor)

        institution = await institutions.get_by_id(institution_id)
        if institution is None:
            raise InstitutionNotFoundError(f"Institution {institution_id} not found")
        if not institution.can_add_tenant(
            await tenants.count_by_institution(institution_id)
        ):
            raise InstitutionLimitExceededError(
                f"Institution {institution_id} cannot take another tenant "
                f"(active={institution.active}, "
                f"max_tenants={institution.limits.max_tenants})"
            )
        if await session.get(UserModel, admin_user_id.value) is None:
            raise UserNotFoundError(f"User {admin_user_id} not found")

        tenant = Tenant.create(
            slug=slug,
            name=name,
            institution_id=institution_id,
            settings=settings,
            limits=dict(DEFAULT_TENANT_LIMITS),
        )
        await tenants.save(tenant)

        membership = TenantMembership.invite(
            admin_user_id, tenant.id, TenantRole.ADMIN, invited_by=actor
        )
        membership.activate(changed_by=actor)
        await memberships.save(membership)

        for seed in self._seed:
            table = get_tenant_owned(seed.table).table
            rows = [{**row, TENANT_COLUMN: tenant.id.value} for row in seed.rows]
            if rows:
                await session.execute(insert(table), rows)

        tenant.activate()
        await tenants.save(tenant)

        if institution.ensure_default_tenant(tenant.id):
            await institutions.save(institution)
        return tenant
