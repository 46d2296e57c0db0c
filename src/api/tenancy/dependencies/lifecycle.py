"""Lifecycle manager wiring for system-admin routes and the CLI."""

from __future__ import annotations

from typing import Annotated, Callable, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from infrastructure.database.dependencies import (
    get_read_sessionmaker,
    get_write_engine,
)
from infrastructure.settings import get_tenancy_settings
from shared_kernel.middleware import TenantContext
from shared_kernel.observability_context import ObservationContext
from tenancy.application.directory_cache import CachedTenantDirectory
from tenancy.dependencies.tenant_context import (
    get_system_context,
    get_tenant_directory,
)
from tenancy.infrastructure.advisory_lock import AdvisoryLock
from tenancy.infrastructure.lifecycle import LifecycleRunner, TenantLifecycleManager
from tenancy.infrastructure.lifecycle_run_log import SqlLifecycleRunLog
from tenancy.infrastructure.observability import (
    DefaultLifecycleProbe,
    LifecycleProbe,
)


def build_lifecycle_manager(
    engine: AsyncEngine,
    actor: Optional[str] = None,
    on_tenant_changed: Optional[Callable[[str], None]] = None,
    probe: Optional[LifecycleProbe] = None,
) -> TenantLifecycleManager:
    """Assemble a lifecycle manager on ``engine``.

    Args:
        engine: Engine used for phase transactions and advisory locks
        actor: Identity recorded on audit entries
        on_tenant_changed: Directory cache invalidation hook
        probe: Optional domain probe for observability
    """
    settings = get_tenancy_settings()
    probe = probe or DefaultLifecycleProbe().with_context(
        ObservationContext(user_id=actor)
    )
    session_factory = async_sessionmaker(
        engine, expire_on_commit=False, class_=AsyncSession
    )
    runner = LifecycleRunner(
        session_factory=session_factory,
        lock_factory=lambda name: AdvisoryLock(engine, name, probe),
        run_log=SqlLifecycleRunLog(session_factory),
        probe=probe,
        bypass_setting=settings.admin_bypass_setting,
        actor=actor,
    )
    return TenantLifecycleManager(
        runner,
        batch_size=settings.backfill_batch_size,
        tenant_setting=settings.current_tenant_setting,
        bypass_setting=settings.admin_bypass_setting,
        on_tenant_changed=on_tenant_changed,
    )


def get_lifecycle_manager(
    context: Annotated[TenantContext, Depends(get_system_context)],
    directory: Annotated[CachedTenantDirectory, Depends(get_tenant_directory)],
) -> TenantLifecycleManager:
    """Lifecycle manager acting as the calling system administrator."""
    return build_lifecycle_manager(
        get_write_engine(),
        actor=context.user_id,
        on_tenant_changed=directory.invalidate_tenant,
    )


def get_lifecycle_run_log(
    context: Annotated[TenantContext, Depends(get_system_context)],
) -> SqlLifecycleRunLog:
    """Run history, readable by system administrators only."""
    return SqlLifecycleRunLog(get_read_sessionmaker())
