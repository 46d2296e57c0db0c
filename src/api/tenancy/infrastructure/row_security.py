"""Storage-level tenant isolation (PostgreSQL row level security).

The policy compares each row's tenant_id with the transaction-local
current-tenant setting. With FORCE ROW LEVEL SECURITY the table owner is
filtered too. A connection without the setting sees no rows at all.
"""

from __future__ import annotations

import re

from sqlalchemy import TextClause, text

_SETTING_PATTERN = re.compile(r"^[a-z_][a-z0-9_]*\.[a-z_][a-z0-9_]*$")
_IDENTIFIER_PATTERN = re.compile(r"^[a-z_][a-z0-9_]*$")


def policy_name(table: str) -> str:
    return f"tenant_isolation_{table}"


def _checked(value: str, pattern: re.Pattern[str], kind: str) -> str:
    if not pattern.match(value):
        raise ValueError(f"Invalid {kind}: {value!r}")
    return value


def policy_expression(tenant_setting: str, bypass_setting: str) -> str:
    """Boolean SQL expression used for both USING and WITH CHECK."""
    tenant_setting = _checked(tenant_setting, _SETTING_PATTERN, "setting name")
    bypass_setting = _checked(bypass_setting, _SETTING_PATTERN, "setting name")
    return (
        f"tenant_id = NULLIF(current_setting('{tenant_setting}', true), '') "
        f"OR current_setting('{bypass_setting}', true) = 'on'"
    )


def enable_statements(table: str) -> list[TextClause]:
    table = _checked(table, _IDENTIFIER_PATTERN, "table name")
    return [
        text(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY"),
        text(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY"),
    ]


def create_policy_statement(
    table: str, tenant_setting: str, bypass_setting: str
) -> TextClause:
    table = _checked(table, _IDENTIFIER_PATTERN, "table name")
    expression = policy_expression(tenant_setting, bypass_setting)
    return text(
        f"CREATE POLICY {policy_name(table)} ON {table} "
        f"USING ({expression}) WITH CHECK ({expression})"
    )


def policy_exists_statement(table: str) -> TextClause:
    return text(
        "SELECT EXISTS (SELECT 1 FROM pg_policies "
        "WHERE schemaname = current_schema() "
        "AND tablename = :table AND policyname = :policy)"
    ).bindparams(table=table, policy=policy_name(table))


def row_security_enabled_statement(table: str) -> TextClause:
    return text(
        "SELECT c.relrowsecurity AND c.relforcerowsecurity "
        "FROM pg_class c JOIN pg_namespace n ON n.oid = c.relnamespace "
        "WHERE n.nspname = current_schema() AND c.relname = :table"
    ).bindparams(table=table)
