"""Per-connection tenant setting management.

Row security policies read the current tenant from a PostgreSQL custom
setting. The setting is only ever asserted transaction-locally
(``set_config(..., is_local => true)``) for one logical operation, and the
pool listeners installed here blank it whenever a connection is checked out
or returned, so a pooled connection can never carry one request's tenant
into another request.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import event, func, select
from sqlalchemy.sql import Select

from infrastructure.database.exceptions import TenantBindingError
from infrastructure.observability.probes import (
    DefaultTenantBindingProbe,
    TenantBindingProbe,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

__all__ = [
    "assert_setting_statement",
    "install_tenant_reset_listeners",
    "reset_settings",
]


def assert_setting_statement(setting: str, value: str) -> Select[Any]:
    """Build the statement that sets ``setting`` for the current transaction only.

    Args:
        setting: Custom setting name, e.g. ``app.current_tenant_id``
        value: Value to assign

    Returns:
        ``SELECT set_config(:setting, :value, true)``
    """
    return select(func.set_config(setting, value, True))


def reset_settings(dbapi_connection: Any, settings: tuple[str, ...]) -> None:
    """Blank the given settings at session level on a raw DBAPI connection.

    Args:
        dbapi_connection: The (adapted) DBAPI connection from a pool event
        settings: Setting names to blank

    Raises:
        TenantBindingError: If the reset statement fails
    """
    try:
        cursor = dbapi_connection.cursor()
        try:
            for setting in settings:
                cursor.execute("SELECT set_config($1, '', false)", (setting,))
        finally:
            cursor.close()
    except Exception as e:
        raise TenantBindingError(f"Failed to reset tenant settings: {e}") from e


def install_tenant_reset_listeners(
    engine: AsyncEngine,
    settings: tuple[str, ...],
    probe: TenantBindingProbe | None = None,
) -> None:
    """Reset tenant settings on every pool checkout and checkin.

    A connection whose reset fails is invalidated so the pool discards it
    instead of lending it out again.

    Args:
        engine: Async engine whose pool should be guarded
        settings: Setting names to blank (current tenant, admin bypass)
        probe: Optional observability probe
    """
    probe = probe or DefaultTenantBindingProbe()
    pool = engine.sync_engine.pool

    def _on_checkout(dbapi_connection, connection_record, connection_proxy):
        try:
            reset_settings(dbapi_connection, settings)
        except TenantBindingError as e:
            probe.reset_failed(stage="checkout", error=e)
            connection_record.invalidate(e)
            raise

    def _on_checkin(dbapi_connection, connection_record):
        # Already invalidated or closed connections have nothing to reset
        if dbapi_connection is None:
            return
        try:
            reset_settings(dbapi_connection, settings)
        except TenantBindingError as e:
            probe.reset_failed(stage="checkin", error=e)
            connection_record.invalidate(e)

    event.listen(pool, "checkout", _on_checkout)
    event.listen(pool, "checkin", _on_checkin)
    probe.listeners_installed(settings=list(settings))
