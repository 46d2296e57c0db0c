"""Unit tests for the tenant-scoped data access guard.

Statement builders are checked by compiling them for PostgreSQL; the
guarded operations run against a mocked session.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, Mock

import pytest
from sqlalchemy import or_, true
from sqlalchemy.ext.asyncio import AsyncSession

from shared_kernel.middleware import TenantContext
from tenancy.domain.value_objects import TenantId
from tenancy.infrastructure.data_access import (
    AdminDataAccess,
    TenantScope,
    TenantScopedDataAccess,
    build_scoped_delete,
    build_scoped_insert,
    build_scoped_select,
    build_scoped_update,
    predicate_clauses,
)
from tenancy.infrastructure.observability import DataAccessProbe
from tenancy.infrastructure.tenant_owned_tables import get_tenant_owned
from tenancy.ports.exceptions import (
    CrossTenantViolationError,
    MissingTenantContextError,
    NotTenantOwnedError,
    SystemAdminRequiredError,
)

TENANT_A = TenantId.generate()
TENANT_B = TenantId.generate()
SYSTEM = TenantContext.system("admin-root")


def _result(rows: list[dict]) -> MagicMock:
    result = MagicMock()
    result.mappings.return_value.all.return_value = rows
    if rows:
        result.mappings.return_value.one.return_value = rows[0]
    result.all.return_value = rows
    return result


@pytest.fixture
def mock_probe():
    return Mock(spec=DataAccessProbe)


@pytest.fixture
def escolas():
    return get_tenant_owned("escolas")


class TestStatementBuilders:
    """Every statement carries the mandatory tenant clause."""

    def test_select_is_scoped_and_narrowed(self, escolas, compile_pg):
        sql = compile_pg(build_scoped_select(escolas, TENANT_A, {"nome": "Norte"}, 10))

        assert f"WHERE escolas.tenant_id = '{TENANT_A.value}'" in sql
        assert "escolas.nome = 'Norte'" in sql
        assert "ORDER BY escolas.id" in sql
        assert "LIMIT 10" in sql

    def test_predicate_cannot_widen_scope(self, escolas, compile_pg):
        """A caller predicate is ANDed with the tenant clause, never ORed."""
        sql = compile_pg(
            build_scoped_select(
                escolas,
                TENANT_A,
                lambda t: or_(t.c.tenant_id == TENANT_B.value, true()),
            )
        )

        assert f"WHERE escolas.tenant_id = '{TENANT_A.value}' AND" in sql

    def test_mapping_predicate_forms(self, escolas, compile_pg):
        clauses = predicate_clauses(
            escolas.table, {"codigo": None, "id": [1, 2]}
        )
        rendered = [compile_pg(clause) for clause in clauses]

        assert rendered[0] == "escolas.codigo IS NULL"
        assert rendered[1] == "escolas.id IN (1, 2)"

    def test_unknown_predicate_column(self, escolas):
        with pytest.raises(ValueError, match="Unknown column"):
            build_scoped_select(escolas, TENANT_A, {"senha": "x"})

    def test_insert_forces_tenant(self, escolas, compile_pg):
        """A supplied tenant_id is replaced by the scope's tenant."""
        sql = compile_pg(
            build_scoped_insert(
                escolas, TENANT_A, {"nome": "Norte", "tenant_id": TENANT_B.value}
            )
        )

        assert TENANT_A.value in sql
        assert TENANT_B.value not in sql
        assert "RETURNING" in sql

    def test_insert_rejects_unknown_columns(self, escolas):
        with pytest.raises(ValueError, match="Unknown columns"):
            build_scoped_insert(escolas, TENANT_A, {"nome": "Norte", "senha": "x"})

    def test_update_is_scoped(self, escolas, compile_pg):
        sql = compile_pg(
            build_scoped_update(escolas, TENANT_A, {"id": 7}, {"nome": "Sul"})
        )

        assert sql.startswith("UPDATE escolas SET nome='Sul'")
        assert f"escolas.tenant_id = '{TENANT_A.value}'" in sql
        assert "escolas.id = 7" in sql

    def test_delete_is_scoped(self, escolas, compile_pg):
        sql = compile_pg(build_scoped_delete(escolas, TENANT_A, {"id": 7}))

        assert sql.startswith("DELETE FROM escolas WHERE")
        assert f"escolas.tenant_id = '{TENANT_A.value}'" in sql
        assert "RETURNING escolas.id, escolas.tenant_id" in sql


class TestTenantScopedDataAccess:
    """Guarded operations against a mocked session."""

    @pytest.fixture
    def data(self, mock_session, mock_audit_log, mock_probe):
        return TenantScopedDataAccess(
            mock_session,
            mock_audit_log,
            mock_probe,
            actor="user-ana",
            bound_tenant=TENANT_A,
        )

    @pytest.mark.asyncio
    async def test_select_returns_rows(self, data, mock_session, mock_probe):
        mock_session.execute.return_value = _result(
            [{"id": 1, "nome": "Norte", "tenant_id": TENANT_A.value}]
        )

        rows = await data.scoped_select("escolas", TENANT_A)

        assert rows == [{"id": 1, "nome": "Norte", "tenant_id": TENANT_A.value}]
        mock_probe.scoped_operation.assert_called_once_with(
            "escolas", "select", TENANT_A.value, 1
        )

    @pytest.mark.asyncio
    async def test_missing_tenant_fails_closed(self, data, mock_session, mock_probe):
        with pytest.raises(MissingTenantContextError):
            await data.scoped_select("escolas", None)

        mock_session.execute.assert_not_awaited()
        mock_probe.missing_tenant_context.assert_called_once_with("escolas", "select")

    @pytest.mark.asyncio
    async def test_bare_string_tenant_is_refused(self, data):
        with pytest.raises(TypeError):
            await data.scoped_select("escolas", TENANT_A.value)

    @pytest.mark.asyncio
    async def test_unregistered_table(self, data, mock_session):
        with pytest.raises(NotTenantOwnedError):
            await data.scoped_select("tenants", TENANT_A)

        mock_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_tenant_inside_scope_is_violation(
        self, data, mock_session, mock_audit_log, mock_probe
    ):
        """A scope bound to one tenant refuses operations for another."""
        with pytest.raises(CrossTenantViolationError):
            await data.scoped_select("escolas", TENANT_B)

        mock_session.execute.assert_not_awaited()
        mock_probe.cross_tenant_violation.assert_called_once()
        mock_audit_log.record.assert_awaited_once()
        assert (
            mock_audit_log.record.await_args.kwargs["event_type"]
            == "cross_tenant_violation"
        )

    @pytest.mark.asyncio
    async def test_foreign_row_in_result_is_violation(
        self, data, mock_session, mock_audit_log
    ):
        mock_session.execute.return_value = _result(
            [
                {"id": 1, "tenant_id": TENANT_A.value},
                {"id": 2, "tenant_id": TENANT_B.value},
            ]
        )

        with pytest.raises(CrossTenantViolationError) as exc_info:
            await data.scoped_select("escolas", TENANT_A)

        assert exc_info.value.table == "escolas"
        assert exc_info.value.tenant_id == TENANT_A.value
        mock_audit_log.record.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_violation_raised_even_when_audit_fails(
        self, data, mock_audit_log, mock_probe
    ):
        mock_audit_log.record.side_effect = RuntimeError("audit down")

        with pytest.raises(CrossTenantViolationError):
            await data.scoped_select("escolas", TENANT_B)

        mock_probe.audit_failed.assert_called_once()

    @pytest.mark.asyncio
    async def test_insert_override_is_logged(self, data, mock_session, mock_probe):
        mock_session.execute.return_value = _result(
            [{"id": 9, "nome": "Norte", "tenant_id": TENANT_A.value}]
        )

        row = await data.scoped_insert(
            "escolas", TENANT_A, {"nome": "Norte", "tenant_id": TENANT_B.value}
        )

        assert row["tenant_id"] == TENANT_A.value
        mock_probe.tenant_override_ignored.assert_called_once_with(
            "escolas", TENANT_A.value, TENANT_B.value
        )

    @pytest.mark.asyncio
    async def test_update_cannot_move_rows(self, data, mock_session):
        with pytest.raises(CrossTenantViolationError):
            await data.scoped_update(
                "escolas", TENANT_A, {"id": 1}, {"tenant_id": TENANT_B.value}
            )

        mock_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_without_columns_is_rejected(self, data, mock_session):
        """Stripping the tenant column can leave nothing to set."""
        with pytest.raises(ValueError, match="sets no columns"):
            await data.scoped_update(
                "escolas", TENANT_A, {"id": 1}, {"tenant_id": TENANT_A.value}
            )

        mock_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_insert_checks_referenced_parent(
        self, data, mock_session, compile_pg
    ):
        check = MagicMock()
        check.scalar_one_or_none.return_value = 42
        mock_session.execute.side_effect = [
            check,
            _result([{"id": 5, "contrato_id": 42, "tenant_id": TENANT_A.value}]),
        ]

        row = await data.scoped_insert(
            "pedidos", TENANT_A, {"numero": "P1", "contrato_id": 42}
        )

        assert row["contrato_id"] == 42
        sql = compile_pg(mock_session.execute.await_args_list[0].args[0])
        assert "contratos.id = 42" in sql
        assert f"contratos.tenant_id = '{TENANT_A.value}'" in sql

    @pytest.mark.asyncio
    async def test_insert_referencing_other_tenant_is_violation(
        self, data, mock_session, mock_audit_log
    ):
        """A contrato of another tenant is invisible to the parent check."""
        check = MagicMock()
        check.scalar_one_or_none.return_value = None
        mock_session.execute.return_value = check

        with pytest.raises(CrossTenantViolationError) as exc_info:
            await data.scoped_insert(
                "pedidos", TENANT_A, {"numero": "P1", "contrato_id": 42}
            )

        assert exc_info.value.table == "pedidos"
        mock_session.execute.assert_awaited_once()
        audit = mock_audit_log.record.await_args.kwargs
        assert audit["event_type"] == "cross_tenant_violation"
        assert "contrato_id=42" in audit["detail"]["detail"]

    @pytest.mark.asyncio
    async def test_update_repointing_reference_is_checked(
        self, data, mock_session
    ):
        check = MagicMock()
        check.scalar_one_or_none.return_value = None
        mock_session.execute.return_value = check

        with pytest.raises(CrossTenantViolationError):
            await data.scoped_update(
                "estoque_escolas", TENANT_A, {"id": 3}, {"escola_id": 8}
            )

        mock_session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_null_reference_is_not_checked(self, data, mock_session):
        mock_session.execute.return_value = _result(
            [{"id": 5, "escola_id": None, "tenant_id": TENANT_A.value}]
        )

        await data.scoped_update("pedidos", TENANT_A, {"id": 5}, {"escola_id": None})

        mock_session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_delete_returns_count(self, data, mock_session):
        mock_session.execute.return_value = _result(
            [{"id": 1, "tenant_id": TENANT_A.value}]
        )

        assert await data.scoped_delete("escolas", TENANT_A, {"id": 1}) == 1


@pytest.fixture
def scope_session():
    """Session whose ``await begin()`` yields a mock transaction."""
    session = Mock(spec=AsyncSession)
    transaction = Mock()
    transaction.commit = AsyncMock()
    transaction.rollback = AsyncMock()
    session.begin = AsyncMock(return_value=transaction)
    session.execute = AsyncMock()
    session.transaction = transaction
    return session


class TestTenantScope:
    """One transaction with the tenant setting asserted inside it."""

    @pytest.mark.asyncio
    async def test_asserts_setting_and_commits(
        self, scope_session, mock_audit_log, mock_probe, compile_pg
    ):
        scope = TenantScope(scope_session, TENANT_A, mock_audit_log, mock_probe)

        async with scope as data:
            assert isinstance(data, TenantScopedDataAccess)

        statement = scope_session.execute.await_args_list[0].args[0]
        sql = compile_pg(statement)
        assert f"set_config('app.current_tenant_id', '{TENANT_A.value}', true)" in sql
        scope_session.transaction.commit.assert_awaited_once()
        scope_session.transaction.rollback.assert_not_awaited()
        mock_probe.scope_opened.assert_called_once_with(TENANT_A.value)

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self, scope_session, mock_audit_log, mock_probe):
        scope = TenantScope(scope_session, TENANT_A, mock_audit_log, mock_probe)

        with pytest.raises(RuntimeError):
            async with scope:
                raise RuntimeError("boom")

        scope_session.transaction.rollback.assert_awaited_once()
        scope_session.transaction.commit.assert_not_awaited()
        mock_probe.scope_rolled_back.assert_called_once_with(
            TENANT_A.value, "RuntimeError"
        )

    @pytest.mark.asyncio
    async def test_missing_tenant_never_opens_transaction(
        self, scope_session, mock_audit_log, mock_probe
    ):
        scope = TenantScope(scope_session, None, mock_audit_log, mock_probe)

        with pytest.raises(MissingTenantContextError):
            async with scope:
                pass

        scope_session.begin.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_setting_failure_rolls_back(
        self, scope_session, mock_audit_log, mock_probe
    ):
        scope_session.execute.side_effect = RuntimeError("connection lost")
        scope = TenantScope(scope_session, TENANT_A, mock_audit_log, mock_probe)

        with pytest.raises(RuntimeError):
            async with scope:
                pass

        scope_session.transaction.rollback.assert_awaited_once()
        mock_probe.scope_opened.assert_not_called()

    @pytest.mark.asyncio
    async def test_scope_data_is_bound_to_its_tenant(
        self, scope_session, mock_audit_log, mock_probe
    ):
        scope = TenantScope(scope_session, TENANT_A, mock_audit_log, mock_probe)

        with pytest.raises(CrossTenantViolationError):
            async with scope as data:
                await data.scoped_select("escolas", TENANT_B)

        scope_session.transaction.rollback.assert_awaited_once()


@pytest.fixture
def admin_session():
    session = Mock(spec=AsyncSession)
    transaction = MagicMock()
    transaction.__aenter__ = AsyncMock(return_value=None)
    transaction.__aexit__ = AsyncMock(return_value=False)
    session.begin = Mock(return_value=transaction)
    session.execute = AsyncMock()
    return session


class TestAdminDataAccess:
    """Audited cross-tenant reads."""

    def test_requires_system_scope(self, admin_session, mock_audit_log, mock_probe):
        context = TenantContext(
            tenant_id=TENANT_A.value,
            institution_id=None,
            role="admin",
            user_id="user-ana",
            source="header",
        )

        with pytest.raises(SystemAdminRequiredError):
            AdminDataAccess(admin_session, context, mock_audit_log, mock_probe)

    @pytest.mark.asyncio
    async def test_select_is_audited_before_reading(
        self, admin_session, mock_audit_log, mock_probe, compile_pg
    ):
        admin_session.execute.side_effect = [
            MagicMock(),
            _result([{"id": 1, "tenant_id": TENANT_B.value}]),
        ]
        data = AdminDataAccess(
            admin_session, SYSTEM, mock_audit_log, mock_probe
        )

        rows = await data.select("escolas", tenant_id=TENANT_B, limit=5)

        assert rows == [{"id": 1, "tenant_id": TENANT_B.value}]
        mock_audit_log.record.assert_awaited_once_with(
            event_type="admin_data_access",
            actor="admin-root",
            tenant_id=TENANT_B.value,
            detail={"table": "escolas", "operation": "select"},
        )
        bypass = compile_pg(admin_session.execute.await_args_list[0].args[0])
        assert "set_config('app.admin_bypass', 'on', true)" in bypass
        query = compile_pg(admin_session.execute.await_args_list[1].args[0])
        assert f"escolas.tenant_id = '{TENANT_B.value}'" in query
        mock_probe.admin_access.assert_called_once_with(
            "admin-root", "escolas", "select", TENANT_B.value
        )

    @pytest.mark.asyncio
    async def test_audit_failure_blocks_read(
        self, admin_session, mock_audit_log, mock_probe
    ):
        mock_audit_log.record.side_effect = RuntimeError("audit down")
        data = AdminDataAccess(
            admin_session, SYSTEM, mock_audit_log, mock_probe
        )

        with pytest.raises(RuntimeError):
            await data.select("escolas")

        admin_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_count_by_tenant(self, admin_session, mock_audit_log, mock_probe):
        admin_session.execute.side_effect = [
            MagicMock(),
            _result([(TENANT_A.value, 3), (None, 2)]),
        ]
        data = AdminDataAccess(
            admin_session, SYSTEM, mock_audit_log, mock_probe
        )

        counts = await data.count_by_tenant("produtos")

        assert counts == {TENANT_A.value: 3, "unassigned": 2}

    @pytest.mark.asyncio
    async def test_audit_trail_read_is_itself_audited(
        self, admin_session, mock_audit_log, mock_probe
    ):
        entries = [Mock(event_type="cross_tenant_violation")]
        mock_audit_log.list_entries.return_value = entries
        data = AdminDataAccess(
            admin_session, SYSTEM, mock_audit_log, mock_probe
        )

        result = await data.audit_entries(
            tenant_id=TENANT_A, event_type="cross_tenant_violation", limit=10
        )

        assert result == entries
        mock_audit_log.record.assert_awaited_once_with(
            event_type="admin_data_access",
            actor="admin-root",
            tenant_id=TENANT_A.value,
            detail={"table": "tenant_audit_log", "operation": "select"},
        )
        mock_audit_log.list_entries.assert_awaited_once_with(
            tenant_id=TENANT_A.value, event_type="cross_tenant_violation", limit=10
        )
        admin_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_audit_trail_unread_when_recording_fails(
        self, admin_session, mock_audit_log, mock_probe
    ):
        mock_audit_log.record.side_effect = RuntimeError("audit down")
        data = AdminDataAccess(
            admin_session, SYSTEM, mock_audit_log, mock_probe
        )

        with pytest.raises(RuntimeError):
            await data.audit_entries()

        mock_audit_log.list_entries.assert_not_called()
