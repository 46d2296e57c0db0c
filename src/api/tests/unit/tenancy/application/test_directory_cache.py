"""Unit tests for CachedTenantDirectory."""

from __future__ import annotations

import asyncio
from unittest.mock import Mock

import pytest

from tenancy.application.directory_cache import CachedTenantDirectory
from tenancy.application.observability import DirectoryProbe
from tenancy.domain.value_objects import MembershipStatus


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_probe():
    return Mock(spec=DirectoryProbe)


@pytest.fixture
def cached(directory, mock_probe, clock) -> CachedTenantDirectory:
    return CachedTenantDirectory(
        directory, ttl_seconds=5, probe=mock_probe, clock=clock
    )


class TestCaching:
    """Lookups are served from cache until the TTL elapses."""

    @pytest.mark.asyncio
    async def test_second_lookup_is_cached(self, cached, directory, mock_probe):
        tenant = directory.add_tenant("semed-belem")

        first = await cached.get_tenant(tenant.id.value)
        second = await cached.get_tenant(tenant.id.value)

        assert first is second is tenant
        assert directory.calls.count(f"get_tenant:{tenant.id.value}") == 1
        mock_probe.cache_hit.assert_called_once_with(f"tenant:{tenant.id.value}")

    @pytest.mark.asyncio
    async def test_negative_results_are_cached(self, cached, directory):
        assert await cached.get_tenant_by_slug("ghost") is None
        assert await cached.get_tenant_by_slug("ghost") is None

        assert directory.calls.count("get_tenant_by_slug:ghost") == 1

    @pytest.mark.asyncio
    async def test_entries_expire_after_ttl(self, cached, directory, clock):
        """Membership revocation becomes visible once the TTL elapses."""
        tenant = directory.add_tenant("semed-belem")
        membership = directory.add_membership("user-ana", tenant)
        assert len(await cached.list_active_memberships("user-ana")) == 1

        membership.status = MembershipStatus.REVOKED
        assert len(await cached.list_active_memberships("user-ana")) == 1

        clock.now += 5.1
        assert await cached.list_active_memberships("user-ana") == []

    @pytest.mark.asyncio
    async def test_zero_ttl_disables_caching(self, directory, mock_probe):
        cached = CachedTenantDirectory(directory, ttl_seconds=0, probe=mock_probe)

        await cached.get_user("user-ana")
        await cached.get_user("user-ana")

        assert directory.calls.count("get_user:user-ana") == 2
        mock_probe.cache_hit.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_load(self, cached, directory):
        tenant = directory.add_tenant("semed-belem")

        results = await asyncio.gather(
            *(cached.get_tenant(tenant.id.value) for _ in range(5))
        )

        assert all(result is tenant for result in results)
        assert directory.calls.count(f"get_tenant:{tenant.id.value}") == 1


class TestInvalidation:
    """Writers in this process drop stale entries immediately."""

    @pytest.mark.asyncio
    async def test_invalidate_user(self, cached, directory, mock_probe):
        tenant = directory.add_tenant("semed-belem")
        membership = directory.add_membership("user-ana", tenant)
        directory.add_membership("user-bia", tenant)
        await cached.get_membership("user-ana", tenant.id.value)
        await cached.list_active_memberships("user-ana")
        await cached.list_active_memberships("user-bia")

        membership.status = MembershipStatus.REVOKED
        cached.invalidate_user("user-ana")

        assert await cached.list_active_memberships("user-ana") == []
        assert directory.calls.count("list_active_memberships:user-ana") == 2
        await cached.list_active_memberships("user-bia")
        assert directory.calls.count("list_active_memberships:user-bia") == 1
        mock_probe.cache_invalidated.assert_called_once_with(
            scope="user", key="user-ana"
        )

    @pytest.mark.asyncio
    async def test_invalidate_tenant(self, cached, directory):
        tenant = directory.add_tenant("semed-belem")
        directory.add_membership("user-ana", tenant)
        await cached.get_tenant(tenant.id.value)
        await cached.get_tenant_by_slug("semed-belem")
        await cached.get_membership("user-ana", tenant.id.value)

        cached.invalidate_tenant(tenant.id.value)
        await cached.get_tenant(tenant.id.value)
        await cached.get_tenant_by_slug("semed-belem")
        await cached.get_membership("user-ana", tenant.id.value)

        assert directory.calls.count(f"get_tenant:{tenant.id.value}") == 2
        assert directory.calls.count("get_tenant_by_slug:semed-belem") == 2
        assert (
            directory.calls.count(f"get_membership:user-ana:{tenant.id.value}") == 2
        )

    @pytest.mark.asyncio
    async def test_clear(self, cached, directory):
        directory.add_admin("admin-root")
        await cached.get_system_admin("admin-root")

        cached.clear()
        await cached.get_system_admin("admin-root")

        assert directory.calls.count("get_system_admin:admin-root") == 2

    @pytest.mark.asyncio
    async def test_load_in_flight_during_invalidation_is_not_cached(
        self, directory, mock_probe
    ):
        """A lookup that started before invalidation must not repopulate the cache."""
        tenant = directory.add_tenant("semed-belem")
        cached = CachedTenantDirectory(directory, ttl_seconds=5, probe=mock_probe)
        original = directory.get_tenant

        async def slow_get_tenant(tenant_id: str):
            result = await original(tenant_id)
            cached.invalidate_tenant(tenant_id)
            return result

        directory.get_tenant = slow_get_tenant

        await cached.get_tenant(tenant.id.value)
        await cached.get_tenant(tenant.id.value)

        assert directory.calls.count(f"get_tenant:{tenant.id.value}") == 2


class TestBoundedSize:
    """Entries and per-key locks do not outlive their use."""

    @pytest.mark.asyncio
    async def test_expired_entries_are_swept(self, cached, clock):
        for n in range(50):
            await cached.list_active_memberships(f"user-{n}")
        assert len(cached._entries) == 50

        clock.now += 3600
        await cached.list_active_memberships("user-late")

        assert list(cached._entries) == ["memberships:user-late"]

    @pytest.mark.asyncio
    async def test_locks_are_released_after_load(self, cached):
        for n in range(50):
            await cached.get_user(f"user-{n}")

        assert len(cached._locks) == 0

    @pytest.mark.asyncio
    async def test_lock_survives_while_awaited(self, directory, mock_probe):
        cached = CachedTenantDirectory(directory, ttl_seconds=5, probe=mock_probe)
        release = asyncio.Event()
        original = directory.get_user

        async def slow_get_user(user_id: str):
            await release.wait()
            return await original(user_id)

        directory.get_user = slow_get_user
        first = asyncio.create_task(cached.get_user("user-ana"))
        second = asyncio.create_task(cached.get_user("user-ana"))
        await asyncio.sleep(0)
        assert len(cached._locks) == 1

        release.set()
        await asyncio.gather(first, second)

        assert len(cached._locks) == 0
        assert directory.calls.count("get_user:user-ana") == 1

    @pytest.mark.asyncio
    async def test_oldest_entries_dropped_beyond_limit(
        self, directory, mock_probe, clock
    ):
        cached = CachedTenantDirectory(
            directory, ttl_seconds=5, probe=mock_probe, clock=clock, max_entries=3
        )

        for n in range(5):
            await cached.get_user(f"user-{n}")

        assert list(cached._entries) == ["user:user-2", "user:user-3", "user:user-4"]

    def test_limit_must_be_positive(self, directory, mock_probe):
        with pytest.raises(ValueError):
            CachedTenantDirectory(
                directory, ttl_seconds=5, probe=mock_probe, max_entries=0
            )
