"""Per-process TTL cache in front of the tenant directory.

Membership revocation is a security control, so entries live for seconds
only (``MERENDA_TENANCY_DIRECTORY_CACHE_TTL_SECONDS``). Writers in this
process invalidate explicitly; other processes observe changes once the
TTL elapses.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Optional

if TYPE_CHECKING:
    from tenancy.application.observability import DirectoryProbe
    from tenancy.domain.aggregates import (
        SystemAdmin,
        Tenant,
        TenantMembership,
        User,
    )
    from tenancy.ports.repositories import TenantDirectory


class _KeyLocks:
    """One asyncio lock per key, dropped once nobody holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


class CachedTenantDirectory:
    """TenantDirectory decorator that caches lookups for ``ttl_seconds``.

    A TTL of 0 disables caching. Concurrent misses for the same key share
    one load. Expired entries are swept at most once per TTL, and the
    oldest entries are dropped beyond ``max_entries``. Invalidation bumps a
    generation counter so a load that was already in flight cannot
    repopulate the cache with stale data.
    """

    def __init__(
        self,
        inner: TenantDirectory,
        ttl_seconds: float,
        probe: DirectoryProbe,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 10_000,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self._inner = inner
        self._ttl = ttl_seconds
        self._probe = probe
        self._clock = clock
        self._max_entries = max_entries
        self._entries: dict[str, tuple[float, Any]] = {}
        self._locks = _KeyLocks()
        self._generation = 0
        self._next_sweep = 0.0

    async def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        return await self._cached(
            f"tenant:{tenant_id}", lambda: self._inner.get_tenant(tenant_id)
        )

    async def get_tenant_by_slug(self, slug: str) -> Optional[Tenant]:
        return await self._cached(
            f"slug:{slug}", lambda: self._inner.get_tenant_by_slug(slug)
        )

    async def get_membership(
        self, user_id: str, tenant_id: str
    ) -> Optional[TenantMembership]:
        return await self._cached(
            f"membership:{user_id}:{tenant_id}",
            lambda: self._inner.get_membership(user_id, tenant_id),
        )

    async def list_active_memberships(self, user_id: str) -> list[TenantMembership]:
        return await self._cached(
            f"memberships:{user_id}",
            lambda: self._inner.list_active_memberships(user_id),
        )

    async def get_user(self, user_id: str) -> Optional[User]:
        return await self._cached(
            f"user:{user_id}", lambda: self._inner.get_user(user_id)
        )

    async def get_system_admin(self, admin_id: str) -> Optional[SystemAdmin]:
        return await self._cached(
            f"admin:{admin_id}", lambda: self._inner.get_system_admin(admin_id)
        )

    def invalidate_user(self, user_id: str) -> None:
        """Drop every entry describing ``user_id`` and its memberships."""
        self._drop(
            lambda key: key in (f"memberships:{user_id}", f"user:{user_id}")
            or key.startswith(f"membership:{user_id}:"),
        )
        self._probe.cache_invalidated(scope="user", key=user_id)

    def invalidate_tenant(self, tenant_id: str) -> None:
        """Drop the tenant, its slug entries and all membership entries."""
        # "tenant:<id>" and "membership:<user>:<id>" both end with ":<id>".
        self._drop(
            lambda key: key.endswith(f":{tenant_id}")
            or key.startswith(("slug:", "memberships:")),
        )
        self._probe.cache_invalidated(scope="tenant", key=tenant_id)

    def clear(self) -> None:
        self._drop(lambda key: True)
        self._probe.cache_invalidated(scope="all", key="*")

    def _drop(self, matches: Callable[[str], bool]) -> None:
        self._generation += 1
        for key in [k for k in self._entries if matches(k)]:
            del self._entries[key]

    async def _cached(self, key: str, load: Callable[[], Awaitable[Any]]) -> Any:
        if self._ttl <= 0:
            return await load()

        entry = self._entries.get(key)
        if entry is not None and entry[0] > self._clock():
            self._probe.cache_hit(key)
            return entry[1]

        async with self._locks.hold(key):
            entry = self._entries.get(key)
            if entry is not None and entry[0] > self._clock():
                self._probe.cache_hit(key)
                return entry[1]

            self._probe.cache_miss(key)
            generation = self._generation
            value = await load()
            if generation == self._generation:
                self._store(key, value)
            return value

    def _store(self, key: str, value: Any) -> None:
        now = self._clock()
        if now >= self._next_sweep:
            expired = [k for k, (expires, _) in self._entries.items() if expires <= now]
            for stale in expired:
                del self._entries[stale]
            self._next_sweep = now + self._ttl

        self._entries.pop(key, None)
        while len(self._entries) >= self._max_entries:
            del self._entries[next(iter(self._entries))]
        self._entries[key] = (now + self._ttl, value)
