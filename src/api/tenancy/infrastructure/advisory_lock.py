"""Session-level PostgreSQL advisory locks for lifecycle operations.

The lock is held on a dedicated connection for the whole operation, so
phases can commit independently on other connections while a second
runner for the same target is refused.
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING, Optional

from sqlalchemy import func, select

from tenancy.ports.exceptions import LifecycleLockedError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

    from tenancy.infrastructure.observability import LifecycleProbe


def lock_key(name: str) -> int:
    """Stable signed 64-bit key for ``name`` (bigint advisory lock space)."""
    digest = hashlib.blake2b(name.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class AdvisoryLock:
    """``async with AdvisoryLock(engine, "provision:<institution>"):``

    Raises:
        LifecycleLockedError: If another session holds the lock
    """

    def __init__(
        self,
        engine: AsyncEngine,
        name: str,
        probe: Optional[LifecycleProbe] = None,
    ):
        self._engine = engine
        self.name = name
        self.key = lock_key(name)
        self._probe = probe
        self._connection: Optional[AsyncConnection] = None

    async def __aenter__(self) -> AdvisoryLock:
        connection = await self._engine.connect()
        try:
            acquired = (
                await connection.execute(select(func.pg_try_advisory_lock(self.key)))
            ).scalar_one()
            # Session-level lock: it outlives this transaction.
            await connection.commit()
        except BaseException:
            await connection.close()
            raise

        if not acquired:
            await connection.close()
            if self._probe is not None:
                self._probe.lock_contended(self.name)
            raise LifecycleLockedError(self.name)

        self._connection = connection
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        connection = self._connection
        self._connection = None
        if connection is None:
            return False
        try:
            await connection.execute(select(func.pg_advisory_unlock(self.key)))
            await connection.commit()
        except BaseException:
            # Discarding the physical connection ends its session and the lock.
            await connection.invalidate()
            raise
        finally:
            await connection.close()
        return False
