"""Three-phase migration adding tenant ownership to a business table.

Phases:
1. ``add_column``: add a nullable ``tenant_id``.
2. ``backfill``: fill NULL tenant ids in batches, one commit per batch,
   from the owner inferable through the table's references. Rows whose
   owner cannot be inferred are never guessed; the phase fails while any
   remain NULL.
3. ``tighten``: NOT NULL, foreign key to ``tenants``, natural keys
   redefined as composite ``(*key, tenant_id)`` uniques, lookup index.

Every phase inspects the catalog first and skips work that is already
done, so the operation can be re-run after a failure at any point.
Row security is a separate operation (``enable_row_security``) since it
changes what every non-admin connection can see.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import Select, Update, func, literal, select, text, update

from tenancy.domain.value_objects import TenantId
from tenancy.infrastructure.lifecycle.runner import LifecycleRunner
from tenancy.infrastructure.row_security import (
    create_policy_statement,
    enable_statements,
    policy_exists_statement,
    row_security_enabled_statement,
)
from tenancy.infrastructure.schema_inspection import (
    column_nullable,
    constraint_exists,
    global_unique_constraints,
    index_exists,
)
from tenancy.infrastructure.tenant_owned_tables import (
    TENANT_COLUMN,
    Reference,
    TenantOwnedTable,
    all_references,
    get_tenant_owned,
    inferred_owner,
)
from tenancy.ports.exceptions import MigrationPhaseError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


def foreign_key_name(table: str) -> str:
    return f"fk_{table}_{TENANT_COLUMN}_tenants"


def composite_unique_name(table: str, key: tuple[str, ...]) -> str:
    return "uq_{}_{}".format(table, "_".join((*key, TENANT_COLUMN)))


def tenant_index_name(table: str) -> str:
    return f"ix_{table}_{TENANT_COLUMN}"


def tenant_key_name(table: str) -> str:
    return f"uq_{table}_id_{TENANT_COLUMN}"


def reference_key_name(table: str, column: str) -> str:
    return f"fk_{table}_{column}_tenant"


def build_backfill_batch(
    entry: TenantOwnedTable,
    batch_size: int,
    legacy_tenant_id: Optional[TenantId] = None,
) -> Update:
    """UPDATE assigning an owner to at most ``batch_size`` NULL rows.

    With an inference path, only rows whose owner is known are picked and
    each gets its own inferred tenant. Without one, ``legacy_tenant_id`` is
    assigned to every NULL row.
    """
    table = entry.table
    candidate = table.alias("candidate")
    pick = select(candidate.c.id).where(candidate.c[TENANT_COLUMN].is_(None))

    owner = inferred_owner(entry)
    if owner is not None:
        pick = pick.where(inferred_owner(entry, candidate).is_not(None))
        value: Any = owner
    elif legacy_tenant_id is not None:
        value = literal(legacy_tenant_id.value)
    else:
        raise ValueError(f"{entry.name} has no owner path; a legacy tenant is required")

    pick = pick.order_by(candidate.c.id).limit(batch_size)
    return (
        update(table)
        .where(table.c.id.in_(pick))
        .where(table.c[TENANT_COLUMN].is_(None))
        .values({TENANT_COLUMN: value})
    )


def build_misattributed_select(
    entry: TenantOwnedTable, limit: int = 1000
) -> Optional[Select[Any]]:
    """Rows whose tenant differs from the tenant inferred from their owner."""
    owner = inferred_owner(entry)
    if owner is None:
        return None
    table = entry.table
    return (
        select(
            table.c.id,
            table.c[TENANT_COLUMN].label("tenant_id"),
            owner.label("expected_tenant_id"),
        )
        .where(table.c[TENANT_COLUMN].is_not(None))
        .where(table.c[TENANT_COLUMN] != owner)
        .order_by(table.c.id)
        .limit(limit)
    )


class OwnershipMigration:
    """Adds, backfills and enforces ``tenant_id`` on registered tables."""

    OPERATION = "add_ownership"
    ROW_SECURITY_OPERATION = "enable_row_security"

    def __init__(
        self,
        runner: LifecycleRunner,
        batch_size: int = 1000,
        tenant_setting: str = "app.current_tenant_id",
        bypass_setting: str = "app.admin_bypass",
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._runner = runner
        self._batch_size = batch_size
        self._tenant_setting = tenant_setting
        self._bypass_setting = bypass_setting

    async def run(
        self, table: str, legacy_tenant_id: Optional[TenantId] = None
    ) -> dict[str, int]:
        """Run all three phases for ``table``.

        Args:
            table: Registered tenant-owned table name
            legacy_tenant_id: Owner for tables without an inference path

        Returns:
            Affected count per phase (0 for skipped phases)

        Raises:
            NotTenantOwnedError: If the table is not registered
            MigrationPhaseError: Naming the phase that failed
            LifecycleLockedError: If the table is being migrated elsewhere
        """
        entry = get_tenant_owned(table)
        results: dict[str, int] = {}
        async with self._runner.run(
            self.OPERATION, entry.name, f"ownership:{entry.name}"
        ) as run:
            results["add_column"] = await run.phase(
                "add_column", lambda: self.add_column(entry)
            )
            results["backfill"] = await run.phase(
                "backfill", lambda: self.backfill(entry, legacy_tenant_id)
            )
            results["tighten"] = await run.phase(
                "tighten", lambda: self.tighten(entry)
            )
        return results

    async def add_column(self, entry: TenantOwnedTable) -> Optional[int]:
        async with self._runner.transaction() as session:
            if await column_nullable(session, entry.name, TENANT_COLUMN) is not None:
                return None
            await session.execute(
                text(
                    f"ALTER TABLE {entry.name} "
                    f"ADD COLUMN IF NOT EXISTS {TENANT_COLUMN} VARCHAR(26)"
                )
            )
        return 1

    async def backfill(
        self, entry: TenantOwnedTable, legacy_tenant_id: Optional[TenantId] = None
    ) -> Optional[int]:
        """Fill NULL owners batch by batch.

        Raises:
            MigrationPhaseError: If NULL rows remain afterwards
        """
        remaining = await self._count_unowned(entry)
        if remaining == 0:
            return None
        if inferred_owner(entry) is None and legacy_tenant_id is None:
            raise MigrationPhaseError(
                self.OPERATION,
                "backfill",
                f"{remaining} row(s) in {entry.name} have no inferable owner; "
                "supply a legacy tenant",
            )

        total = 0
        stmt = build_backfill_batch(entry, self._batch_size, legacy_tenant_id)
        while True:
            async with self._runner.transaction() as session:
                updated = (await session.execute(stmt)).rowcount
            self._runner.probe.backfill_batch(entry.name, updated)
            total += updated
            if updated < self._batch_size:
                break

        remaining = await self._count_unowned(entry)
        if remaining:
            raise MigrationPhaseError(
                self.OPERATION,
                "backfill",
                f"{remaining} row(s) in {entry.name} still have no tenant; "
                "their owner cannot be inferred",
            )
        return total

    async def tighten(self, entry: TenantOwnedTable) -> Optional[int]:
        name = entry.name
        changed = 0
        async with self._runner.transaction() as session:
            nullable = await column_nullable(session, name, TENANT_COLUMN)
            if nullable is None:
                raise MigrationPhaseError(
                    self.OPERATION, "tighten", f"{name}.{TENANT_COLUMN} does not exist"
                )
            if nullable:
                unowned = await self._count_unowned_in(session, entry)
                if unowned:
                    raise MigrationPhaseError(
                        self.OPERATION,
                        "tighten",
                        f"{unowned} row(s) in {name} still have no tenant",
                    )
                await session.execute(
                    text(
                        f"ALTER TABLE {name} ALTER COLUMN {TENANT_COLUMN} SET NOT NULL"
                    )
                )
                changed += 1

            fk_name = foreign_key_name(name)
            if not await constraint_exists(session, name, fk_name):
                await session.execute(
                    text(
                        f"ALTER TABLE {name} ADD CONSTRAINT {fk_name} "
                        f"FOREIGN KEY ({TENANT_COLUMN}) REFERENCES tenants (id) "
                        "ON DELETE RESTRICT"
                    )
                )
                changed += 1

            for key in entry.natural_keys:
                uq_name = composite_unique_name(name, key)
                if not await constraint_exists(session, name, uq_name):
                    columns = ", ".join((*key, TENANT_COLUMN))
                    await session.execute(
                        text(
                            f"ALTER TABLE {name} ADD CONSTRAINT {uq_name} "
                            f"UNIQUE ({columns})"
                        )
                    )
                    changed += 1
                for old in await global_unique_constraints(session, name, key):
                    await session.execute(
                        text(f'ALTER TABLE {name} DROP CONSTRAINT "{old}"')
                    )
                    changed += 1

            ix_name = tenant_index_name(name)
            if not await index_exists(session, ix_name):
                await session.execute(
                    text(
                        f"CREATE INDEX IF NOT EXISTS {ix_name} "
                        f"ON {name} ({TENANT_COLUMN})"
                    )
                )
                changed += 1

            for child, reference in all_references():
                if child.name == name or reference.parent == name:
                    changed += await self._ensure_reference_key(
                        session, child, reference
                    )
        return changed or None

    @staticmethod
    async def _ensure_reference_key(
        session: AsyncSession, child: TenantOwnedTable, reference: Reference
    ) -> int:
        """Composite foreign key keeping a reference inside one tenant.

        Added once both tables carry a NOT NULL owner column. Deferred to
        commit so repoint and merge can move parents before children.
        """
        parent = reference.parent
        for table in (child.name, parent):
            if await column_nullable(session, table, TENANT_COLUMN) is not False:
                return 0

        changed = 0
        key_name = tenant_key_name(parent)
        if not await constraint_exists(session, parent, key_name):
            await session.execute(
                text(
                    f"ALTER TABLE {parent} ADD CONSTRAINT {key_name} "
                    f"UNIQUE (id, {TENANT_COLUMN})"
                )
            )
            changed += 1

        fk_name = reference_key_name(child.name, reference.column)
        if not await constraint_exists(session, child.name, fk_name):
            await session.execute(
                text(
                    f"ALTER TABLE {child.name} ADD CONSTRAINT {fk_name} "
                    f"FOREIGN KEY ({reference.column}, {TENANT_COLUMN}) "
                    f"REFERENCES {parent} (id, {TENANT_COLUMN}) "
                    "DEFERRABLE INITIALLY DEFERRED"
                )
            )
            changed += 1
        return changed

    async def enable_row_security(self, table: str) -> dict[str, int]:
        """Install the storage-level isolation policy on ``table``.

        Requires the ownership migration to have tightened the column: with
        NULL owners, rows would silently disappear from every tenant.
        """
        entry = get_tenant_owned(table)
        results: dict[str, int] = {}
        async with self._runner.run(
            self.ROW_SECURITY_OPERATION, entry.name, f"ownership:{entry.name}"
        ) as run:
            results["enable"] = await run.phase(
                "enable", lambda: self._enable(entry)
            )
            results["policy"] = await run.phase(
                "policy", lambda: self._create_policy(entry)
            )
        return results

    async def _enable(self, entry: TenantOwnedTable) -> Optional[int]:
        async with self._runner.transaction() as session:
            if await column_nullable(session, entry.name, TENANT_COLUMN) is not False:
                raise MigrationPhaseError(
                    self.ROW_SECURITY_OPERATION,
                    "enable",
                    f"{entry.name}.{TENANT_COLUMN} must exist and be NOT NULL; "
                    "run the ownership migration first",
                )
            enabled = (
                await session.execute(row_security_enabled_statement(entry.name))
            ).scalar_one_or_none()
            if enabled:
                return None
            for statement in enable_statements(entry.name):
                await session.execute(statement)
        return 1

    async def _create_policy(self, entry: TenantOwnedTable) -> Optional[int]:
        async with self._runner.transaction() as session:
            exists = (
                await session.execute(policy_exists_statement(entry.name))
            ).scalar_one()
            if exists:
                return None
            await session.execute(
                create_policy_statement(
                    entry.name, self._tenant_setting, self._bypass_setting
                )
            )
        return 1

    async def find_misattributed(
        self, table: str, limit: int = 1000
    ) -> list[dict[str, Any]]:
        """Rows whose tenant contradicts the owner inferred through references.

        Uses the same join path as the backfill. Read-only; repair with
        the repoint operation.
        """
        entry = get_tenant_owned(table)
        stmt = build_misattributed_select(entry, limit)
        if stmt is None:
            return []
        async with self._runner.transaction() as session:
            rows = [dict(row) for row in (await session.execute(stmt)).mappings()]
        if rows:
            self._runner.probe.misattributed_records_found(entry.name, len(rows))
        return rows

    async def _count_unowned(self, entry: TenantOwnedTable) -> int:
        async with self._runner.transaction() as session:
            return await self._count_unowned_in(session, entry)

    @staticmethod
    async def _count_unowned_in(
        session: AsyncSession, entry: TenantOwnedTable
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(entry.table)
            .where(entry.table.c[TENANT_COLUMN].is_(None))
        )
        return int((await session.execute(stmt)).scalar_one())
