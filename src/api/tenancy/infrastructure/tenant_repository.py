"""PostgreSQL implementations of the tenant and institution repositories.

Write operations append the aggregate's domain events to the tenant audit
log within the same transaction. Callers own the transaction boundary.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenancy.domain.aggregates import Institution, Tenant
from tenancy.domain.value_objects import InstitutionId, TenantId, TenantStatus
from tenancy.infrastructure.audit_log import append_domain_events
from tenancy.infrastructure.mappers import institution_from_model, tenant_from_model
from tenancy.infrastructure.models import InstitutionModel, TenantModel
from tenancy.infrastructure.observability import (
    DefaultTenancyRepositoryProbe,
    TenancyRepositoryProbe,
)
from tenancy.ports.exceptions import DuplicateTenantSlugError
from tenancy.ports.repositories import IInstitutionRepository, ITenantRepository


class TenantRepository(ITenantRepository):
    """Repository managing PostgreSQL storage for Tenant aggregates."""

    def __init__(
        self,
        session: AsyncSession,
        probe: TenancyRepositoryProbe | None = None,
        actor: Optional[str] = None,
    ) -> None:
        """Initialize repository with database session.

        Args:
            session: AsyncSession owned by the caller
            probe: Optional domain probe for observability
            actor: Identity recorded on audit entries
        """
        self._session = session
        self._probe = probe or DefaultTenancyRepositoryProbe()
        self._actor = actor

    async def save(self, tenant: Tenant) -> None:
        """Persist tenant state to PostgreSQL, events to the audit log.

        Raises:
            DuplicateTenantSlugError: If the slug belongs to another tenant
        """
        existing = await self.get_by_slug(tenant.slug.value)
        if existing is not None and existing.id != tenant.id:
            self._probe.duplicate_slug("tenant", tenant.slug.value)
            raise DuplicateTenantSlugError(
                f"Tenant slug '{tenant.slug}' already exists"
            )

        try:
            model = await self._session.get(TenantModel, tenant.id.value)
            if model is None:
                model = TenantModel(id=tenant.id.value)
                self._session.add(model)

            model.slug = tenant.slug.value
            model.name = tenant.name
            model.institution_id = (
                tenant.institution_id.value if tenant.institution_id else None
            )
            model.status = tenant.status.value
            model.settings = dict(tenant.settings)
            model.limits = dict(tenant.limits)

            # Flush to catch integrity errors before audit writes
            await self._session.flush()
            append_domain_events(self._session, tenant.collect_events(), self._actor)
            self._probe.tenant_saved(tenant.id.value, tenant.status.value)

        except IntegrityError as e:
            if "uq_tenants_slug" in str(e):
                self._probe.duplicate_slug("tenant", tenant.slug.value)
                raise DuplicateTenantSlugError(
                    f"Tenant slug '{tenant.slug}' already exists"
                ) from e
            raise

    async def get_by_id(self, tenant_id: TenantId) -> Tenant | None:
        model = await self._session.get(TenantModel, tenant_id.value)
        return tenant_from_model(model) if model is not None else None

    async def get_by_slug(self, slug: str) -> Tenant | None:
        stmt = select(TenantModel).where(TenantModel.slug == slug)
        model = (await self._session.execute(stmt)).scalar_one_or_none()
        return tenant_from_model(model) if model is not None else None

    async def count_by_institution(self, institution_id: InstitutionId) -> int:
        stmt = (
            select(func.count())
            .select_from(TenantModel)
            .where(
                TenantModel.institution_id == institution_id.value,
                TenantModel.status != TenantStatus.DELETED.value,
            )
        )
        return int((await self._session.execute(stmt)).scalar_one())

    async def list_without_institution(self) -> list[Tenant]:
        stmt = (
            select(TenantModel)
            .where(TenantModel.institution_id.is_(None))
            .order_by(TenantModel.id)
        )
        models = (await self._session.execute(stmt)).scalars().all()
        return [tenant_from_model(model) for model in models]

    async def delete(self, tenant: Tenant) -> bool:
        """Delete the tenant row, recording its final events first.

        Returns:
            True if deleted, False if not found
        """
        append_domain_events(self._session, tenant.collect_events(), self._actor)
        result = await self._session.execute(
            delete(TenantModel).where(TenantModel.id == tenant.id.value)
        )
        await self._session.flush()
        if result.rowcount == 0:
            return False
        self._probe.tenant_deleted(tenant.id.value)
        return True


class InstitutionRepository(IInstitutionRepository):
    """Repository managing PostgreSQL storage for Institution aggregates."""

    def __init__(
        self,
        session: AsyncSession,
        probe: TenancyRepositoryProbe | None = None,
        actor: Optional[str] = None,
    ) -> None:
        self._session = session
        self._probe = probe or DefaultTenancyRepositoryProbe()
        self._actor = actor

    async def save(self, institution: Institution) -> None:
        """Persist institution state.

        Raises:
            DuplicateTenantSlugError: If the slug belongs to another institution
        """
        existing = await self.get_by_slug(institution.slug.value)
        if existing is not None and existing.id != institution.id:
            self._probe.duplicate_slug("institution", institution.slug.value)
            raise DuplicateTenantSlugError(
                f"Institution slug '{institution.slug}' already exists"
            )

        model = await self._session.get(InstitutionModel, institution.id.value)
        if model is None:
            model = InstitutionModel(id=institution.id.value)
            self._session.add(model)

        model.slug = institution.slug.value
        model.name = institution.name
        model.legal_name = institution.legal_name
        model.document = institution.document
        model.contact_email = institution.contact_email
        model.plan = institution.plan
        model.max_tenants = institution.limits.max_tenants
        model.max_users = institution.limits.max_users
        model.max_schools = institution.limits.max_schools
        model.default_tenant_id = (
            institution.default_tenant_id.value
            if institution.default_tenant_id
            else None
        )
        model.active = institution.active

        try:
            await self._session.flush()
        except IntegrityError as e:
            if "uq_institutions_slug" in str(e):
                self._probe.duplicate_slug("institution", institution.slug.value)
                raise DuplicateTenantSlugError(
                    f"Institution slug '{institution.slug}' already exists"
                ) from e
            raise

        append_domain_events(
            self._session, institution.collect_events(), self._actor
        )
        self._probe.institution_saved(institution.id.value, institution.slug.value)

    async def get_by_id(self, institution_id: InstitutionId) -> Institution | None:
        model = await self._session.get(InstitutionModel, institution_id.value)
        return institution_from_model(model) if model is not None else None

    async def get_by_slug(self, slug: str) -> Institution | None:
        stmt = select(InstitutionModel).where(InstitutionModel.slug == slug)
        model = (await self._session.execute(stmt)).scalar_one_or_none()
        return institution_from_model(model) if model is not None else None
