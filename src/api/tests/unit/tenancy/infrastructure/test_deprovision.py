"""Unit tests for DeprovisionService phases and re-runs."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest

from tenancy.domain.value_objects import InstitutionId, TenantStatus
from tenancy.infrastructure.lifecycle.deprovision import DeprovisionService
from tenancy.infrastructure.tenant_owned_tables import TENANT_OWNED_TABLES
from tenancy.ports.exceptions import MigrationPhaseError

MODULE = "tenancy.infrastructure.lifecycle.deprovision"
INSTITUTION = InstitutionId.generate()


@pytest.fixture
def norte(directory):
    return directory.add_tenant("escola-norte", institution_id=INSTITUTION)


@pytest.fixture
def sul(directory):
    return directory.add_tenant("escola-sul", institution_id=INSTITUTION)


@pytest.fixture
def tenants(directory):
    """TenantRepository stand-in reading the in-memory directory."""
    repository = Mock()
    repository.get_by_id = AsyncMock(
        side_effect=lambda tenant_id: directory.tenants.get(tenant_id.value)
    )
    repository.save = AsyncMock()
    repository.delete = AsyncMock(return_value=True)
    with patch(f"{MODULE}.TenantRepository", return_value=repository):
        yield repository


@pytest.fixture
def memberships():
    repository = Mock()
    repository.delete_by_tenant = AsyncMock(return_value=3)
    with patch(f"{MODULE}.MembershipRepository", return_value=repository):
        yield repository


@pytest.fixture
def foreign():
    check = AsyncMock(return_value={})
    with patch(f"{MODULE}.foreign_references", check):
        yield check


@pytest.fixture
def changed() -> list[str]:
    return []


@pytest.fixture
def service(runner, lifecycle_session, changed) -> DeprovisionService:
    lifecycle_session.execute.return_value = MagicMock(rowcount=2)
    return DeprovisionService(runner, on_tenant_changed=changed.append)


class TestPurge:
    @pytest.mark.asyncio
    async def test_runs_every_phase(
        self, service, norte, tenants, memberships, foreign, changed
    ):
        results = await service.deprovision(norte.id, reason="closed")

        assert results == {
            "mark_deprovisioning": 1,
            "verify_references": 0,
            "purge_records": 2 * len(TENANT_OWNED_TABLES),
            "remove_memberships": 3,
            "delete_tenant": 1,
        }
        assert norte.status == TenantStatus.DELETED
        tenants.delete.assert_awaited_once_with(norte)
        assert changed == [norte.id.value, norte.id.value]

    @pytest.mark.asyncio
    async def test_purges_children_before_parents(
        self, service, norte, tenants, memberships, foreign, executed_sql
    ):
        await service.deprovision(norte.id)

        deletes = [
            sql.split()[2] for sql in executed_sql() if sql.startswith("DELETE FROM")
        ]
        assert deletes.index("pedido_itens") < deletes.index("pedidos")
        assert deletes.index("pedidos") < deletes.index("contratos")
        assert deletes.index("estoque_lotes") < deletes.index("estoque_escolas")
        assert deletes.index("estoque_escolas") < deletes.index("escolas")


class TestReruns:
    @pytest.mark.asyncio
    async def test_finished_operation_is_not_repeated(
        self, service, norte, tenants, run_log, foreign
    ):
        run_log.completed_phases.return_value = [
            "mark_deprovisioning",
            "verify_references",
            "purge_records",
            "remove_memberships",
            "delete_tenant",
        ]

        assert await service.deprovision(norte.id) == {}

        tenants.get_by_id.assert_not_awaited()
        foreign.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resumes_after_foreign_references_are_fixed(
        self, service, norte, tenants, memberships, foreign
    ):
        foreign.return_value = {"pedidos.contrato_id->contratos": 2}

        with pytest.raises(MigrationPhaseError) as exc_info:
            await service.deprovision(norte.id)

        assert exc_info.value.phase == "verify_references"
        assert "pedidos.contrato_id->contratos" in str(exc_info.value)
        assert norte.status == TenantStatus.DEPROVISIONING
        memberships.delete_by_tenant.assert_not_awaited()

        foreign.return_value = {}
        results = await service.deprovision(norte.id)

        assert results["mark_deprovisioning"] == 0
        assert norte.status == TenantStatus.DELETED
        tenants.save.assert_awaited_once()


class TestMerge:
    @pytest.mark.asyncio
    async def test_moves_records_and_members(
        self,
        service,
        norte,
        sul,
        tenants,
        memberships,
        foreign,
        executed_sql,
        changed,
    ):
        results = await service.deprovision(norte.id, merge_into=sul.id)

        assert "purge_records" not in results
        assert results["merge_records"] == 2 * len(TENANT_OWNED_TABLES)
        foreign.assert_awaited_once()
        assert foreign.await_args.args[1:] == (norte.id.value, sul.id.value)

        statements = executed_sql()
        updates = [sql.split()[1] for sql in statements if sql.startswith("UPDATE")]
        assert updates.index("contratos") < updates.index("pedidos")
        assert any(
            sql.startswith("INSERT INTO tenant_memberships")
            and "ON CONFLICT (user_id, tenant_id) DO NOTHING" in sql
            for sql in statements
        )
        assert any(
            sql.startswith("UPDATE users") and f"tenant_id='{sul.id.value}'" in sql
            for sql in statements
        )
        assert changed[-1] == sul.id.value

    @pytest.mark.asyncio
    async def test_target_in_other_institution(
        self, service, norte, directory, tenants, foreign
    ):
        other = directory.add_tenant("outra-rede")

        with pytest.raises(MigrationPhaseError, match="different institution"):
            await service.deprovision(norte.id, merge_into=other.id)

        assert norte.status == TenantStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_target_being_deprovisioned_is_refused(
        self, service, norte, sul, tenants, foreign
    ):
        sul.begin_deprovisioning()

        with pytest.raises(MigrationPhaseError, match="merge target"):
            await service.deprovision(norte.id, merge_into=sul.id)

    @pytest.mark.asyncio
    async def test_merge_into_itself(self, service, norte):
        with pytest.raises(ValueError):
            await service.deprovision(norte.id, merge_into=norte.id)
