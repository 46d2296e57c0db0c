"""Tenant lifecycle command line.

Runs the out-of-band tenant operations against the database directly:
institution and tenant provisioning, the per-table ownership migration,
row security, record repointing, deprovisioning, status changes, orphan
linking and tenant settings. Reads of the audit trail are themselves
audited. Every command takes an advisory lock and is recorded in
the lifecycle run log, so it is safe to re-run after a failure.

Usage:
    merenda-tenancy provision --institution 01J... --slug escola-norte \\
        --name "Escola Norte" --admin-user u-123
    merenda-tenancy add-ownership escolas
    merenda-tenancy deprovision 01J... --merge-into 01K...
    merenda-tenancy audit-log --tenant 01J... --event-type admin_data_access
    merenda-tenancy settings 01J... --set ciclo_cardapio_semanas=4 --unset tema

Exit codes:
    0  success
    1  any other failure
    2  a lifecycle phase failed (the phase is printed; re-run to resume)

Environment Variables:
    MERENDA_DB_*: Database connection (see DatabaseSettings)
    MERENDA_TENANCY_*: Setting names and batch size (see TenancySettings)
    MERENDA_AUTH_*: Token signing for issue-token (see AuthSettings)
"""

from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional, Sequence

from rich import box
from rich.console import Console
from rich.table import Table
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from infrastructure.database.engines import create_lifecycle_engine
from infrastructure.logging import configure_logging
from infrastructure.settings import get_database_settings, get_tenancy_settings
from shared_kernel.auth import TokenKind
from shared_kernel.middleware import TenantContext
from tenancy.application.tenant_settings_service import TenantSettingsService
from tenancy.dependencies.authentication import get_token_verifier
from tenancy.dependencies.lifecycle import build_lifecycle_manager
from tenancy.domain.value_objects import (
    InstitutionId,
    ResourceLimits,
    TenantId,
    TenantStatus,
    UserId,
)
from tenancy.infrastructure.audit_log import SqlAuditLog
from tenancy.infrastructure.data_access import AdminDataAccess
from tenancy.infrastructure.directory import SqlTenantDirectory
from tenancy.infrastructure.lifecycle import TenantLifecycleManager
from tenancy.infrastructure.lifecycle_run_log import SqlLifecycleRunLog
from tenancy.infrastructure.observability import DefaultDataAccessProbe
from tenancy.infrastructure.tenant_repository import TenantRepository
from tenancy.ports.exceptions import (
    MigrationPhaseError,
    TenantNotFoundError,
    UserNotFoundError,
)

console = Console()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PHASE_FAILED = 2


@dataclass
class CommandEnv:
    """What a subcommand handler works with."""

    engine: AsyncEngine
    manager: TenantLifecycleManager
    session_factory: async_sessionmaker[AsyncSession]


Handler = Callable[[argparse.Namespace, CommandEnv], Awaitable[None]]


def print_results(title: str, results: dict[str, Any]) -> None:
    """Render a key/value result table."""
    table = Table(title=title, box=box.ROUNDED, padding=(0, 2))
    table.add_column("Step", style="dim")
    table.add_column("Affected", justify="right", style="bold")
    for key, value in results.items():
        table.add_row(key, str(value))
    console.print(table)


async def _create_institution(args: argparse.Namespace, env: CommandEnv) -> None:
    institution = await env.manager.provisioning.create_institution(
        slug=args.slug,
        name=args.name,
        legal_name=args.legal_name,
        document=args.document,
        contact_email=args.contact_email,
        plan=args.plan,
        limits=ResourceLimits(max_tenants=args.max_tenants),
    )
    console.print(
        f"[green]✓[/green] Institution [bold]{institution.slug}[/bold] "
        f"created: {institution.id}"
    )


async def _provision(args: argparse.Namespace, env: CommandEnv) -> None:
    settings = json.loads(args.settings) if args.settings else None
    tenant = await env.manager.provisioning.provision_tenant(
        InstitutionId.from_string(args.institution),
        slug=args.slug,
        name=args.name,
        admin_user_id=UserId.from_string(args.admin_user),
        settings=settings,
    )
    console.print(
        f"[green]✓[/green] Tenant [bold]{tenant.slug}[/bold] provisioned: "
        f"{tenant.id} ({tenant.status.value})"
    )


async def _add_ownership(args: argparse.Namespace, env: CommandEnv) -> None:
    legacy = TenantId.from_string(args.legacy_tenant) if args.legacy_tenant else None
    results = await env.manager.ownership.run(args.table, legacy_tenant_id=legacy)
    print_results(f"Ownership migration: {args.table}", results)


async def _enable_row_security(args: argparse.Namespace, env: CommandEnv) -> None:
    results = await env.manager.ownership.enable_row_security(args.table)
    print_results(f"Row security: {args.table}", results)


async def _find_misattributed(args: argparse.Namespace, env: CommandEnv) -> None:
    rows = await env.manager.ownership.find_misattributed(args.table, args.limit)
    if not rows:
        console.print(f"[green]✓[/green] No misattributed rows in {args.table}")
        return
    table = Table(title=f"Misattributed rows: {args.table}", box=box.ROUNDED)
    for column in rows[0]:
        table.add_column(column)
    for row in rows:
        table.add_row(*(str(value) for value in row.values()))
    console.print(table)


async def _repoint(args: argparse.Namespace, env: CommandEnv) -> None:
    moved = await env.manager.repoint.repoint(
        args.table,
        args.record_id,
        TenantId.from_string(args.to_tenant),
        TenantId.from_string(args.from_tenant) if args.from_tenant else None,
    )
    if not moved:
        console.print(
            f"[yellow]{args.table} {args.record_id} already belongs to "
            f"{args.to_tenant}[/yellow]"
        )
        return
    print_results(f"Repointed {args.table} {args.record_id}", moved)


async def _deprovision(args: argparse.Namespace, env: CommandEnv) -> None:
    results = await env.manager.deprovisioning.deprovision(
        TenantId.from_string(args.tenant),
        merge_into=TenantId.from_string(args.merge_into) if args.merge_into else None,
        reason=args.reason,
    )
    if not results:
        console.print(
            f"[yellow]Tenant {args.tenant} was already deprovisioned[/yellow]"
        )
        return
    print_results(f"Deprovisioned {args.tenant}", results)


async def _link_orphans(args: argparse.Namespace, env: CommandEnv) -> None:
    linked = await env.manager.institutions.link_orphan_tenants(
        InstitutionId.from_string(args.institution),
        [TenantId.from_string(t) for t in args.tenant],
    )
    console.print(
        f"[green]✓[/green] Linked {len(linked)} tenant(s) to {args.institution}"
    )
    for tenant_id in linked:
        console.print(f"  {tenant_id}")


async def _set_status(args: argparse.Namespace, env: CommandEnv) -> None:
    tenant_id = TenantId.from_string(args.tenant)
    if args.status == TenantStatus.SUSPENDED.value:
        tenant = await env.manager.status.suspend(tenant_id, args.reason)
    else:
        tenant = await env.manager.status.activate(tenant_id)
    console.print(
        f"[green]✓[/green] Tenant [bold]{tenant.slug}[/bold] is now "
        f"{tenant.status.value}"
    )


async def _runs(args: argparse.Namespace, env: CommandEnv) -> None:
    runs = await SqlLifecycleRunLog(env.session_factory).list_runs(
        target=args.target, limit=args.limit
    )
    table = Table(title="Lifecycle runs", box=box.ROUNDED)
    table.add_column("Started", style="dim")
    table.add_column("Operation")
    table.add_column("Target")
    table.add_column("Status")
    table.add_column("Phases")
    table.add_column("Detail", overflow="fold")
    styles = {"completed": "green", "failed": "red", "running": "yellow"}
    for run in runs:
        style = styles.get(run.status, "white")
        table.add_row(
            run.started_at.isoformat(timespec="seconds"),
            run.operation,
            run.target,
            f"[{style}]{run.status}[/{style}]",
            ", ".join(run.phases or []),
            run.detail or "",
        )
    console.print(table)


async def _audit_log(args: argparse.Namespace, env: CommandEnv) -> None:
    tenant_id = TenantId.from_string(args.tenant) if args.tenant else None
    async with env.session_factory() as session:
        data = AdminDataAccess(
            session,
            TenantContext.system(args.actor),
            SqlAuditLog(env.session_factory),
            DefaultDataAccessProbe(),
            bypass_setting=get_tenancy_settings().admin_bypass_setting,
        )
        entries = await data.audit_entries(
            tenant_id=tenant_id, event_type=args.event_type, limit=args.limit
        )
    table = Table(title="Audit log", box=box.ROUNDED)
    table.add_column("Occurred", style="dim")
    table.add_column("Event")
    table.add_column("Actor")
    table.add_column("Tenant")
    table.add_column("Detail", overflow="fold")
    for entry in entries:
        table.add_row(
            entry.occurred_at.isoformat(timespec="seconds"),
            entry.event_type,
            entry.actor or "",
            entry.tenant_id or "",
            json.dumps(entry.detail, sort_keys=True, default=str),
        )
    console.print(table)


def parse_setting(text: str) -> tuple[str, Any]:
    """Split ``key=value``; the value is JSON when it parses, else a string."""
    key, sep, raw = text.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"Expected key=value, got '{text}'")
    try:
        return key, json.loads(raw)
    except json.JSONDecodeError:
        return key, raw


async def _settings(args: argparse.Namespace, env: CommandEnv) -> None:
    tenant_id = TenantId.from_string(args.tenant)
    changes: dict[str, Any] = dict(args.set)
    changes.update({key: None for key in args.unset})
    async with env.session_factory() as session:
        service = TenantSettingsService(
            TenantRepository(session, actor=args.actor), session
        )
        if changes:
            tenant = await service.update_settings(
                tenant_id, changes, changed_by=args.actor
            )
        else:
            tenant = await service.get_settings(tenant_id)
    console.print_json(json.dumps(tenant.settings, sort_keys=True, default=str))


async def _issue_token(args: argparse.Namespace, env: CommandEnv) -> None:
    """Mint a token for local use.

    A user's token carries the legacy single-tenant pointer as its default
    tenant, plus the active memberships as a hint. The resolver re-checks
    both on every request.
    """
    directory = SqlTenantDirectory(env.session_factory)
    verifier = get_token_verifier()
    expires_in = timedelta(minutes=args.expires_minutes)

    if args.system_admin:
        if await directory.get_system_admin(args.subject) is None:
            raise UserNotFoundError(f"System admin {args.subject} not found")
        token = verifier.issue(
            args.subject, kind=TokenKind.SYSTEM_ADMIN, expires_in=expires_in
        )
    else:
        user = await directory.get_user(args.subject)
        if user is None:
            raise UserNotFoundError(f"User {args.subject} not found")
        memberships = await directory.list_active_memberships(args.subject)
        default_tenant = args.tenant or (
            user.legacy_tenant_id.value if user.legacy_tenant_id else None
        )
        if args.tenant and args.tenant not in {
            m.tenant_id.value for m in memberships
        }:
            raise TenantNotFoundError(
                f"User {args.subject} has no active membership in {args.tenant}"
            )
        token = verifier.issue(
            args.subject,
            default_tenant_id=default_tenant,
            tenant_ids=[m.tenant_id.value for m in memberships],
            expires_in=expires_in,
        )
    # Plain print so the token can be piped.
    print(token)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per operation."""
    parser = argparse.ArgumentParser(
        prog="merenda-tenancy",
        description="Tenant lifecycle operations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s create-institution --slug sme-recife --name "SME Recife"
  %(prog)s provision --institution 01J... --slug escola-norte \\
      --name "Escola Norte" --admin-user u-123
  %(prog)s add-ownership cardapios
  %(prog)s enable-row-security cardapios
  %(prog)s set-status 01J... suspended --reason "contract ended"
  %(prog)s runs --target 01J...
  %(prog)s audit-log --tenant 01J... --limit 20
  %(prog)s settings 01J... --set estoque_alerta_dias=7
        """,
    )
    parser.add_argument(
        "--actor",
        default="cli",
        help="Identity recorded on audit entries (default: cli)",
    )
    parser.add_argument("--log-level", default=None, help="Log level (default: info)")
    parser.add_argument(
        "--json", action="store_true", help="Emit logs as JSON lines"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    p = commands.add_parser("create-institution", help="Register an institution")
    p.add_argument("--slug", required=True)
    p.add_argument("--name", required=True)
    p.add_argument("--legal-name")
    p.add_argument("--document")
    p.add_argument("--contact-email")
    p.add_argument("--plan", default="basic")
    p.add_argument("--max-tenants", type=int)
    p.set_defaults(handler=_create_institution)

    p = commands.add_parser("provision", help="Provision a tenant")
    p.add_argument("--institution", required=True, help="Institution ID")
    p.add_argument("--slug", required=True)
    p.add_argument("--name", required=True)
    p.add_argument("--admin-user", required=True, help="First admin's user ID")
    p.add_argument("--settings", help="Tenant settings as a JSON object")
    p.set_defaults(handler=_provision)

    p = commands.add_parser(
        "add-ownership", help="Add, backfill and enforce tenant_id on a table"
    )
    p.add_argument("table")
    p.add_argument(
        "--legacy-tenant",
        help="Owner for rows whose tenant cannot be inferred",
    )
    p.set_defaults(handler=_add_ownership)

    p = commands.add_parser(
        "enable-row-security", help="Install the row-level isolation policy"
    )
    p.add_argument("table")
    p.set_defaults(handler=_enable_row_security)

    p = commands.add_parser(
        "find-misattributed",
        help="List rows whose tenant contradicts their references",
    )
    p.add_argument("table")
    p.add_argument("--limit", type=int, default=100)
    p.set_defaults(handler=_find_misattributed)

    p = commands.add_parser(
        "repoint", help="Move a record and its owned children to another tenant"
    )
    p.add_argument("table")
    p.add_argument("record_id", type=int)
    p.add_argument("--to", dest="to_tenant", required=True, help="Target tenant")
    p.add_argument("--from", dest="from_tenant", help="Expected current tenant")
    p.set_defaults(handler=_repoint)

    p = commands.add_parser("deprovision", help="Purge or merge, then delete a tenant")
    p.add_argument("tenant")
    p.add_argument("--merge-into", help="Tenant receiving the data")
    p.add_argument("--reason")
    p.set_defaults(handler=_deprovision)

    p = commands.add_parser(
        "link-orphans", help="Attach tenants without an institution"
    )
    p.add_argument("institution")
    p.add_argument(
        "--tenant",
        action="append",
        default=[],
        help="Only this tenant (repeatable; all orphans when omitted)",
    )
    p.set_defaults(handler=_link_orphans)

    p = commands.add_parser("set-status", help="Activate or suspend a tenant")
    p.add_argument("tenant")
    p.add_argument(
        "status",
        choices=[TenantStatus.ACTIVE.value, TenantStatus.SUSPENDED.value],
    )
    p.add_argument("--reason")
    p.set_defaults(handler=_set_status)

    p = commands.add_parser("runs", help="Show recent lifecycle runs")
    p.add_argument("--target")
    p.add_argument("--limit", type=int, default=20)
    p.set_defaults(handler=_runs)

    p = commands.add_parser("audit-log", help="Show audit trail entries (audited)")
    p.add_argument("--tenant", help="Tenant ID")
    p.add_argument("--event-type")
    p.add_argument("--limit", type=int, default=50)
    p.set_defaults(handler=_audit_log)

    p = commands.add_parser("settings", help="Show or change tenant settings")
    p.add_argument("tenant")
    p.add_argument(
        "--set",
        action="append",
        default=[],
        type=parse_setting,
        metavar="KEY=VALUE",
        help="Set a setting; VALUE is parsed as JSON when possible",
    )
    p.add_argument("--unset", action="append", default=[], metavar="KEY")
    p.set_defaults(handler=_settings)

    p = commands.add_parser("issue-token", help="Mint an identity token")
    p.add_argument("subject", help="User ID, or system-admin ID")
    p.add_argument("--system-admin", action="store_true")
    p.add_argument("--tenant", help="Default tenant (must be an active membership)")
    p.add_argument("--expires-minutes", type=int, default=60)
    p.set_defaults(handler=_issue_token)

    return parser


async def run_command(args: argparse.Namespace) -> None:
    """Run one parsed subcommand on a dedicated lifecycle engine."""
    engine = create_lifecycle_engine(get_database_settings(), get_tenancy_settings())
    try:
        env = CommandEnv(
            engine=engine,
            manager=build_lifecycle_manager(engine, actor=args.actor),
            session_factory=async_sessionmaker(
                engine, expire_on_commit=False, class_=AsyncSession
            ),
        )
        handler: Handler = args.handler
        await handler(args, env)
    finally:
        await engine.dispose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the ``merenda-tenancy`` console script."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, force_json=args.json)

    try:
        asyncio.run(run_command(args))
    except MigrationPhaseError as e:
        console.print(
            f"[bold red]Phase '{e.phase}' of {e.operation} failed:[/bold red] {e}"
        )
        console.print("Completed phases stay committed; re-run to resume.")
        return EXIT_PHASE_FAILED
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        return EXIT_FAILED
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
