"""PostgreSQL implementation of the lifecycle run log port.

Each lifecycle invocation gets a row in ``tenant_lifecycle_runs``; every
phase that commits is appended to it in a separate short transaction, so
the record of progress survives a failure in a later phase.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import select, update
from ulid import ULID

from tenancy.infrastructure.models import LifecycleRunModel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"


class SqlLifecycleRunLog:
    """Stores lifecycle runs and the phases they reached."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def start(self, operation: str, target: str) -> str:
        run_id = str(ULID())
        async with self._session_factory() as session, session.begin():
            session.add(
                LifecycleRunModel(
                    id=run_id,
                    operation=operation,
                    target=target,
                    status=RUNNING,
                    phases=[],
                )
            )
        return run_id

    async def phase_completed(self, run_id: str, phase: str) -> None:
        async with self._session_factory() as session, session.begin():
            model = await session.get(LifecycleRunModel, run_id, with_for_update=True)
            if model is None:
                return
            # Reassign so the JSONB column is flagged dirty.
            model.phases = [*model.phases, phase]

    async def finish(
        self, run_id: str, status: str, detail: Optional[str] = None
    ) -> None:
        stmt = (
            update(LifecycleRunModel)
            .where(LifecycleRunModel.id == run_id)
            .values(status=status, detail=detail, finished_at=datetime.now(UTC))
        )
        async with self._session_factory() as session, session.begin():
            await session.execute(stmt)

    async def completed_phases(self, operation: str, target: str) -> list[str]:
        stmt = select(LifecycleRunModel.phases).where(
            LifecycleRunModel.operation == operation,
            LifecycleRunModel.target == target,
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        seen: list[str] = []
        for phases in rows:
            for phase in phases:
                if phase not in seen:
                    seen.append(phase)
        return seen

    async def list_runs(
        self, target: Optional[str] = None, limit: int = 20
    ) -> list[LifecycleRunModel]:
        """Most recent runs first, optionally filtered by target."""
        stmt = select(LifecycleRunModel).order_by(LifecycleRunModel.started_at.desc())
        if target is not None:
            stmt = stmt.where(LifecycleRunModel.target == target)
        async with self._session_factory() as session:
            return list((await session.execute(stmt.limit(limit))).scalars().all())
