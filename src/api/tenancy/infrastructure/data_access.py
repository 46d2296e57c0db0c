"""Tenant-scoped data access guard.

All reads and writes against tenant-owned tables go through here. Two
layers cooperate:

* Application level: every statement is built with a mandatory
  ``tenant_id = :tenant`` clause ANDed with the caller's predicate, inserts
  have their tenant column forced, and every returned row is re-checked.
* Storage level: ``TenantScope`` asserts the current-tenant setting inside
  the transaction so the row security policies filter anything the first
  layer missed.

Cross-tenant administration uses ``AdminDataAccess``, which requires a
system-admin context and audits every access.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

from sqlalchemy import ColumnElement, Table, delete, func, insert, select, update
from sqlalchemy.sql import Delete, Insert, Select, Update

from infrastructure.database.tenant_binding import assert_setting_statement
from shared_kernel.middleware import TenantContext
from tenancy.domain.value_objects import TenantId
from tenancy.infrastructure.tenant_owned_tables import (
    TENANT_COLUMN,
    Reference,
    TenantOwnedTable,
    get_tenant_owned,
)
from tenancy.ports.exceptions import (
    CrossTenantViolationError,
    MissingTenantContextError,
    SystemAdminRequiredError,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

    from tenancy.infrastructure.observability import DataAccessProbe
    from tenancy.ports.repositories import IAuditLog

Predicate = Union[
    Mapping[str, Any],
    Callable[[Table], ColumnElement[bool]],
    None,
]

Row = dict[str, Any]

AUDIT_TABLE = "tenant_audit_log"


def predicate_clauses(table: Table, predicate: Predicate) -> list[ColumnElement[bool]]:
    """Translate a caller predicate into WHERE clauses.

    Mappings compare column to value (sequences become IN, None becomes
    IS NULL); callables receive the table and return an expression.

    Raises:
        ValueError: If a mapping names a column the table does not have
    """
    if predicate is None:
        return []
    if isinstance(predicate, Mapping):
        clauses: list[ColumnElement[bool]] = []
        for name, value in predicate.items():
            if name not in table.c:
                raise ValueError(f"Unknown column '{name}' on {table.name}")
            column = table.c[name]
            if value is None:
                clauses.append(column.is_(None))
            elif isinstance(value, (list, tuple, set, frozenset)):
                clauses.append(column.in_(list(value)))
            else:
                clauses.append(column == value)
        return clauses
    return [predicate(table)]


def _require_tenant(tenant_id: Optional[TenantId]) -> TenantId:
    if tenant_id is None:
        raise MissingTenantContextError("Tenant-scoped access requires a tenant")
    if not isinstance(tenant_id, TenantId):
        raise TypeError("tenant_id must be a TenantId")
    return tenant_id


def build_scoped_select(
    entry: TenantOwnedTable,
    tenant_id: TenantId,
    predicate: Predicate = None,
    limit: Optional[int] = None,
) -> Select[Any]:
    """SELECT restricted to one tenant; the predicate can only narrow it."""
    table = entry.table
    stmt = (
        select(table)
        .where(table.c[TENANT_COLUMN] == tenant_id.value)
        .where(*predicate_clauses(table, predicate))
        .order_by(table.c.id)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return stmt


def build_scoped_insert(
    entry: TenantOwnedTable, tenant_id: TenantId, record: Mapping[str, Any]
) -> Insert:
    """INSERT with the tenant column forced to ``tenant_id``."""
    table = entry.table
    values = {k: v for k, v in record.items() if k != TENANT_COLUMN}
    unknown = [name for name in values if name not in table.c]
    if unknown:
        raise ValueError(f"Unknown columns on {table.name}: {', '.join(unknown)}")
    values[TENANT_COLUMN] = tenant_id.value
    return insert(table).values(**values).returning(table)


def build_scoped_update(
    entry: TenantOwnedTable,
    tenant_id: TenantId,
    predicate: Predicate,
    values: Mapping[str, Any],
) -> Update:
    """UPDATE restricted to one tenant. ``values`` must not touch tenant_id."""
    table = entry.table
    unknown = [name for name in values if name not in table.c]
    if unknown:
        raise ValueError(f"Unknown columns on {table.name}: {', '.join(unknown)}")
    return (
        update(table)
        .where(table.c[TENANT_COLUMN] == tenant_id.value)
        .where(*predicate_clauses(table, predicate))
        .values(**dict(values))
        .returning(table)
    )


def build_scoped_delete(
    entry: TenantOwnedTable, tenant_id: TenantId, predicate: Predicate
) -> Delete:
    """DELETE restricted to one tenant."""
    table = entry.table
    return (
        delete(table)
        .where(table.c[TENANT_COLUMN] == tenant_id.value)
        .where(*predicate_clauses(table, predicate))
        .returning(table.c.id, table.c[TENANT_COLUMN])
    )


def build_reference_check(
    reference: Reference, tenant_id: TenantId, value: Any
) -> Select[Any]:
    """SELECT of the referenced parent row, if it belongs to ``tenant_id``."""
    parent = get_tenant_owned(reference.parent).table
    return select(parent.c.id).where(
        parent.c.id == value, parent.c[TENANT_COLUMN] == tenant_id.value
    )


class TenantScopedDataAccess:
    """Guarded CRUD over registered tenant-owned tables.

    Every operation takes the tenant explicitly. When created by
    ``TenantScope`` the instance is bound to the tenant asserted on the
    connection, and any other tenant is refused.
    """

    def __init__(
        self,
        session: AsyncSession,
        audit: IAuditLog,
        probe: DataAccessProbe,
        actor: Optional[str] = None,
        bound_tenant: Optional[TenantId] = None,
    ):
        self._session = session
        self._audit = audit
        self._probe = probe
        self._actor = actor
        self._bound_tenant = bound_tenant

    async def scoped_select(
        self,
        table: str,
        tenant_id: TenantId,
        predicate: Predicate = None,
        limit: Optional[int] = None,
    ) -> list[Row]:
        entry, tenant = await self._prepare(table, tenant_id, "select")
        result = await self._session.execute(
            build_scoped_select(entry, tenant, predicate, limit)
        )
        rows = [dict(row) for row in result.mappings().all()]
        await self._verify_rows(table, tenant, rows)
        self._probe.scoped_operation(table, "select", tenant.value, len(rows))
        return rows

    async def scoped_insert(
        self, table: str, tenant_id: TenantId, record: Mapping[str, Any]
    ) -> Row:
        entry, tenant = await self._prepare(table, tenant_id, "insert")
        supplied = record.get(TENANT_COLUMN)
        if supplied is not None and supplied != tenant.value:
            self._probe.tenant_override_ignored(table, tenant.value, str(supplied))
        await self._verify_references(entry, tenant, record)
        result = await self._session.execute(
            build_scoped_insert(entry, tenant, record)
        )
        row = dict(result.mappings().one())
        await self._verify_rows(table, tenant, [row])
        self._probe.scoped_operation(table, "insert", tenant.value, 1)
        return row

    async def scoped_update(
        self,
        table: str,
        tenant_id: TenantId,
        predicate: Predicate,
        values: Mapping[str, Any],
    ) -> list[Row]:
        entry, tenant = await self._prepare(table, tenant_id, "update")
        values = dict(values)
        if TENANT_COLUMN in values:
            if values[TENANT_COLUMN] != tenant.value:
                await self._violation(
                    table, tenant, "update attempted to change tenant_id"
                )
            del values[TENANT_COLUMN]
        if not values:
            raise ValueError(f"Update of {table} sets no columns")
        await self._verify_references(entry, tenant, values)
        result = await self._session.execute(
            build_scoped_update(entry, tenant, predicate, values)
        )
        rows = [dict(row) for row in result.mappings().all()]
        await self._verify_rows(table, tenant, rows)
        self._probe.scoped_operation(table, "update", tenant.value, len(rows))
        return rows

    async def scoped_delete(
        self, table: str, tenant_id: TenantId, predicate: Predicate
    ) -> int:
        entry, tenant = await self._prepare(table, tenant_id, "delete")
        result = await self._session.execute(
            build_scoped_delete(entry, tenant, predicate)
        )
        rows = [dict(row) for row in result.mappings().all()]
        await self._verify_rows(table, tenant, rows)
        self._probe.scoped_operation(table, "delete", tenant.value, len(rows))
        return len(rows)

    async def _prepare(
        self, table: str, tenant_id: Optional[TenantId], operation: str
    ) -> tuple[TenantOwnedTable, TenantId]:
        entry = get_tenant_owned(table)
        try:
            tenant = _require_tenant(tenant_id)
        except MissingTenantContextError:
            self._probe.missing_tenant_context(table, operation)
            raise
        if self._bound_tenant is not None and tenant != self._bound_tenant:
            await self._violation(
                table,
                tenant,
                f"{operation} for tenant {tenant} inside scope of "
                f"{self._bound_tenant}",
            )
        return entry, tenant

    async def _verify_references(
        self, entry: TenantOwnedTable, tenant: TenantId, values: Mapping[str, Any]
    ) -> None:
        for reference in entry.references:
            value = values.get(reference.column)
            if value is None:
                continue
            result = await self._session.execute(
                build_reference_check(reference, tenant, value)
            )
            if result.scalar_one_or_none() is None:
                await self._violation(
                    entry.name,
                    tenant,
                    f"{reference.column}={value} is not a {reference.parent} "
                    "record of this tenant",
                )

    async def _verify_rows(self, table: str, tenant: TenantId, rows: list[Row]) -> None:
        foreign = [row for row in rows if row.get(TENANT_COLUMN) != tenant.value]
        if foreign:
            await self._violation(
                table,
                tenant,
                f"{len(foreign)} returned row(s) belong to another tenant",
            )

    async def _violation(self, table: str, tenant: TenantId, detail: str) -> None:
        self._probe.cross_tenant_violation(table, tenant.value, detail)
        error = CrossTenantViolationError(table, tenant.value, detail)
        try:
            await self._audit.record(
                event_type="cross_tenant_violation",
                actor=self._actor,
                tenant_id=tenant.value,
                detail={"table": table, "detail": detail},
            )
        except Exception as e:
            self._probe.audit_failed(table, e)
            raise error from e
        raise error


class TenantScope:
    """One tenant-scoped transaction on a session.

    Usage::

        async with TenantScope(session, tenant_id, audit, probe) as data:
            rows = await data.scoped_select("escolas", tenant_id)

    Opens the transaction, asserts the current-tenant setting locally to
    it, commits on success and rolls back on any exception (including
    cancellation). The setting ends with the transaction, and the pool
    listeners blank it again on checkin.
    """

    def __init__(
        self,
        session: AsyncSession,
        tenant_id: Optional[TenantId],
        audit: IAuditLog,
        probe: DataAccessProbe,
        setting: str = "app.current_tenant_id",
        actor: Optional[str] = None,
    ):
        self._session = session
        self._tenant_id = tenant_id
        self._audit = audit
        self._probe = probe
        self._setting = setting
        self._actor = actor
        self._transaction: Optional[AsyncSessionTransaction] = None

    async def __aenter__(self) -> TenantScopedDataAccess:
        try:
            tenant = _require_tenant(self._tenant_id)
        except MissingTenantContextError:
            self._probe.missing_tenant_context("*", "scope")
            raise

        self._transaction = await self._session.begin()
        try:
            await self._session.execute(
                assert_setting_statement(self._setting, tenant.value)
            )
        except BaseException:
            await self._transaction.rollback()
            raise

        self._probe.scope_opened(tenant.value)
        return TenantScopedDataAccess(
            self._session,
            self._audit,
            self._probe,
            actor=self._actor,
            bound_tenant=tenant,
        )

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        assert self._transaction is not None
        if exc_type is None:
            await self._transaction.commit()
            return False

        tenant = self._tenant_id.value if self._tenant_id else "-"
        self._probe.scope_rolled_back(tenant, exc_type.__name__)
        await self._transaction.rollback()
        return False


class AdminDataAccess:
    """Audited cross-tenant reads for system administrators.

    Not reachable from tenant routes: construction requires a system-scope
    context. Each call writes an audit entry before touching data and runs
    in its own transaction with the admin bypass setting asserted.
    """

    def __init__(
        self,
        session: AsyncSession,
        context: TenantContext,
        audit: IAuditLog,
        probe: DataAccessProbe,
        bypass_setting: str = "app.admin_bypass",
    ):
        if not context.is_system_scope:
            raise SystemAdminRequiredError("Admin data access requires system scope")
        self._session = session
        self._context = context
        self._audit = audit
        self._probe = probe
        self._bypass_setting = bypass_setting

    async def select(
        self,
        table: str,
        tenant_id: Optional[TenantId] = None,
        predicate: Predicate = None,
        limit: int = 100,
    ) -> list[Row]:
        """Read rows across tenants, optionally narrowed to one tenant."""
        entry = get_tenant_owned(table)
        tenant_value = tenant_id.value if tenant_id is not None else None
        await self._record_access(table, "select", tenant_value)

        stmt = select(entry.table).where(*predicate_clauses(entry.table, predicate))
        if tenant_value is not None:
            stmt = stmt.where(entry.table.c[TENANT_COLUMN] == tenant_value)
        stmt = stmt.order_by(entry.table.c.id).limit(limit)

        async with self._session.begin():
            await self._session.execute(
                assert_setting_statement(self._bypass_setting, "on")
            )
            result = await self._session.execute(stmt)
            return [dict(row) for row in result.mappings().all()]

    async def count_by_tenant(self, table: str) -> dict[str, int]:
        """Row counts per tenant for one table."""
        entry = get_tenant_owned(table)
        await self._record_access(table, "count_by_tenant", None)

        column = entry.table.c[TENANT_COLUMN]
        stmt = (
            select(column, func.count())
            .group_by(column)
            .order_by(column)
        )
        async with self._session.begin():
            await self._session.execute(
                assert_setting_statement(self._bypass_setting, "on")
            )
            result = await self._session.execute(stmt)
            return {
                (tenant if tenant is not None else "unassigned"): int(count)
                for tenant, count in result.all()
            }

    async def audit_entries(
        self,
        tenant_id: Optional[TenantId] = None,
        event_type: Optional[str] = None,
        limit: int = 100,
    ) -> list[Any]:
        """Read the audit trail, newest first. The read itself is audited."""
        tenant_value = tenant_id.value if tenant_id is not None else None
        await self._record_access(AUDIT_TABLE, "select", tenant_value)
        return await self._audit.list_entries(
            tenant_id=tenant_value, event_type=event_type, limit=limit
        )

    async def _record_access(
        self, table: str, operation: str, tenant_id: Optional[str]
    ) -> None:
        self._probe.admin_access(self._context.user_id, table, operation, tenant_id)
        await self._audit.record(
            event_type="admin_data_access",
            actor=self._context.user_id,
            tenant_id=tenant_id,
            detail={"table": table, "operation": operation},
        )
