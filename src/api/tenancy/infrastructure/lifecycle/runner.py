"""Shared machinery for resumable lifecycle operations.

An operation runs under an advisory lock, is recorded in the lifecycle run
log, and is split into phases. Each phase commits on its own, so a failure
leaves every earlier phase committed and the run can simply be repeated.
Phase work runs with the admin bypass setting asserted for its transaction
only; request sessions never see it.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Awaitable, Callable, Optional

from infrastructure.database.tenant_binding import assert_setting_statement
from tenancy.infrastructure.lifecycle_run_log import COMPLETED, FAILED
from tenancy.infrastructure.observability import (
    DefaultLifecycleProbe,
    LifecycleProbe,
)
from tenancy.ports.exceptions import MigrationPhaseError, TenancyError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from tenancy.ports.repositories import ILifecycleRunLog

LockFactory = Callable[[str], AbstractAsyncContextManager[object]]
PhaseWork = Callable[[], Awaitable[Optional[int]]]


class LifecycleRunner:
    """Runs lifecycle operations against the write database."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        lock_factory: LockFactory,
        run_log: ILifecycleRunLog,
        probe: LifecycleProbe | None = None,
        bypass_setting: str = "app.admin_bypass",
        actor: Optional[str] = None,
    ):
        """Initialize the runner.

        Args:
            session_factory: Write sessionmaker; each phase gets a new session
            lock_factory: Builds the advisory lock for a lock name
            run_log: Where runs and completed phases are recorded
            probe: Optional domain probe for observability
            bypass_setting: Setting that lets lifecycle SQL see every tenant
            actor: Identity recorded on audit entries (CLI user, admin id)
        """
        self._session_factory = session_factory
        self._lock_factory = lock_factory
        self._run_log = run_log
        self.probe = probe or DefaultLifecycleProbe()
        self._bypass_setting = bypass_setting
        self.actor = actor

    @property
    def run_log(self) -> ILifecycleRunLog:
        return self._run_log

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session in a transaction with the admin bypass asserted locally."""
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    assert_setting_statement(self._bypass_setting, "on")
                )
                yield session

    @asynccontextmanager
    async def run(
        self, operation: str, target: str, lock_name: str
    ) -> AsyncIterator[LifecycleRun]:
        """Hold ``lock_name`` and record the operation for its duration.

        Raises:
            LifecycleLockedError: If the lock is held elsewhere
        """
        async with self._lock_factory(lock_name):
            run_id = await self._run_log.start(operation, target)
            self.probe.operation_started(operation, target, run_id)
            run = LifecycleRun(self, operation, target, run_id)
            try:
                yield run
            except BaseException as e:
                detail = str(e) or type(e).__name__
                await self._run_log.finish(run_id, FAILED, detail)
                raise
            await self._run_log.finish(run_id, COMPLETED)
            self.probe.operation_completed(operation, target)


class LifecycleRun:
    """One recorded invocation of a lifecycle operation."""

    def __init__(
        self, runner: LifecycleRunner, operation: str, target: str, run_id: str
    ):
        self._runner = runner
        self.operation = operation
        self.target = target
        self.run_id = run_id

    async def phase(self, name: str, work: PhaseWork) -> int:
        """Run one phase and record it once it has committed.

        ``work`` returns the number of affected rows/objects, or None when it
        found its target state already in place.

        Tenancy errors (missing tenant, invalid transition, ...) propagate
        unchanged; any other failure is reported as a MigrationPhaseError
        naming this phase.
        """
        probe = self._runner.probe
        try:
            affected = await work()
        except TenancyError as e:
            probe.phase_failed(self.operation, name, self.target, e)
            raise
        except Exception as e:
            probe.phase_failed(self.operation, name, self.target, e)
            raise MigrationPhaseError(self.operation, name, str(e)) from e

        await self._runner.run_log.phase_completed(self.run_id, name)
        if affected is None:
            probe.phase_skipped(self.operation, name, self.target)
            return 0
        probe.phase_completed(self.operation, name, self.target, affected)
        return affected

