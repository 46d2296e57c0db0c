"""Fixtures for lifecycle tests: a real LifecycleRunner over mocked storage."""

from __future__ import annotations

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from tenancy.infrastructure.lifecycle.runner import LifecycleRunner
from tenancy.infrastructure.observability import LifecycleProbe
from tenancy.ports.exceptions import LifecycleLockedError


class FakeLocks:
    """Lock factory that records names and can refuse one of them."""

    def __init__(self) -> None:
        self.acquired: list[str] = []
        self.released: list[str] = []
        self.held: set[str] = set()

    @asynccontextmanager
    async def __call__(self, name: str):
        if name in self.held:
            raise LifecycleLockedError(name)
        self.acquired.append(name)
        try:
            yield self
        finally:
            self.released.append(name)


@pytest.fixture
def locks() -> FakeLocks:
    return FakeLocks()


@pytest.fixture
def run_log():
    log = Mock()
    log.start = AsyncMock(return_value="run-1")
    log.phase_completed = AsyncMock()
    log.finish = AsyncMock()
    log.completed_phases = AsyncMock(return_value=[])
    return log


@pytest.fixture
def lifecycle_probe():
    return Mock(spec=LifecycleProbe)


@pytest.fixture
def lifecycle_session():
    """Session shared by every phase transaction."""
    session = MagicMock()
    session.execute = AsyncMock()
    session.begin.return_value.__aenter__.return_value = None
    session.begin.return_value.__aexit__.return_value = False
    return session


@pytest.fixture
def session_factory(lifecycle_session):
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = lifecycle_session
    factory.return_value.__aexit__.return_value = False
    return factory


@pytest.fixture
def runner(session_factory, locks, run_log, lifecycle_probe) -> LifecycleRunner:
    return LifecycleRunner(
        session_factory=session_factory,
        lock_factory=locks,
        run_log=run_log,
        probe=lifecycle_probe,
        actor="cli:maria",
    )


@pytest.fixture
def executed_sql(lifecycle_session, compile_pg):
    """Statements the phases executed, rendered for PostgreSQL."""

    def _executed() -> list[str]:
        return [
            compile_pg(call.args[0])
            for call in lifecycle_session.execute.await_args_list
        ]

    return _executed
