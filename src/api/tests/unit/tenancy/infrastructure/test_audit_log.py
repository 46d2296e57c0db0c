"""Unit tests for reading the audit trail."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from tenancy.infrastructure.audit_log import SqlAuditLog, build_audit_query


def test_query_is_newest_first(compile_pg):
    sql = compile_pg(build_audit_query(limit=5))

    assert "WHERE" not in sql
    assert (
        "ORDER BY tenant_audit_log.occurred_at DESC, tenant_audit_log.id DESC"
        in sql
    )
    assert "LIMIT 5" in sql


def test_query_filters(compile_pg):
    sql = compile_pg(
        build_audit_query(tenant_id="01TENANT", event_type="admin_data_access")
    )

    assert "tenant_audit_log.tenant_id = '01TENANT'" in sql
    assert "tenant_audit_log.event_type = 'admin_data_access'" in sql
    assert "LIMIT 100" in sql


@pytest.mark.asyncio
async def test_list_entries_reads_without_recording(compile_pg):
    session = MagicMock()
    entries = [MagicMock(), MagicMock()]
    session.execute = AsyncMock(
        return_value=MagicMock(
            scalars=MagicMock(
                return_value=MagicMock(all=MagicMock(return_value=entries))
            )
        )
    )
    context = MagicMock()
    context.__aenter__.return_value = session
    context.__aexit__.return_value = False
    log = SqlAuditLog(MagicMock(return_value=context))

    result = await log.list_entries(tenant_id="01TENANT", limit=3)

    assert result == entries
    session.add.assert_not_called()
    sql = compile_pg(session.execute.await_args.args[0])
    assert "tenant_audit_log.tenant_id = '01TENANT'" in sql
    assert "LIMIT 3" in sql
