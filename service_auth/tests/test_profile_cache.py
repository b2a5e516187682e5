"""
Unit tests for the profile cache in shared and degraded modes.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from service_auth.app.caching import (
    CacheMode,
    InMemoryProfileCache,
    ProfileCache,
    RedisProfileCache,
    create_profile_cache,
    profile_key,
)
from service_auth.app.errors import CacheError
from service_auth.app.models import UserIdentity


class FakeClock:
    """Settable monotonic clock."""

    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_user(user_id: int = 1, username: str = "alice") -> UserIdentity:
    return UserIdentity(
        id=user_id,
        username=username,
        email=f"{username}@example.com",
        role="user",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_profile_key_format():
    assert profile_key(42) == "user:42"


class TestInMemoryProfileCache:
    """Test cases for the degraded, in-process cache."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def cache(self, clock):
        return InMemoryProfileCache(ttl_seconds=300, clock=clock)

    def test_implements_protocol(self, cache):
        assert isinstance(cache, ProfileCache)
        assert cache.mode == CacheMode.DEGRADED

    @pytest.mark.asyncio
    async def test_put_then_get(self, cache):
        user = make_user()

        await cache.put("user:1", user)
        value, found = await cache.get("user:1")

        assert found is True
        assert value == user
        await cache.close()

    @pytest.mark.asyncio
    async def test_get_absent_key_is_miss(self, cache):
        assert await cache.get("user:404") == (None, False)

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self, cache, clock):
        await cache.put("user:1", make_user())

        clock.now += 299
        assert (await cache.get("user:1"))[1] is True

        clock.now += 1
        assert await cache.get("user:1") == (None, False)
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_expiry_timer_removes_entry(self):
        cache = InMemoryProfileCache(ttl_seconds=0.01)

        await cache.put("user:1", make_user())
        await asyncio.sleep(0.05)

        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_overwrite_replaces_value_and_cancels_old_timer(self, cache):
        await cache.put("user:1", make_user(username="alice"))
        first_entry = cache._entries["user:1"]

        await cache.put("user:1", make_user(username="alicia"))

        value, found = await cache.get("user:1")
        assert found and value.username == "alicia"
        assert first_entry.timer.cancelled()
        await cache.close()

    @pytest.mark.asyncio
    async def test_stale_timer_does_not_evict_newer_entry(self, cache):
        await cache.put("user:1", make_user(username="alice"))
        stale = cache._entries["user:1"]
        await cache.put("user:1", make_user(username="alicia"))

        cache._expire(stale)

        assert (await cache.get("user:1"))[1] is True
        await cache.close()

    @pytest.mark.asyncio
    async def test_invalidate(self, cache):
        await cache.put("user:1", make_user())
        timer = cache._entries["user:1"].timer

        await cache.invalidate("user:1")

        assert await cache.get("user:1") == (None, False)
        assert timer.cancelled()

    @pytest.mark.asyncio
    async def test_close_cancels_all_timers(self, cache):
        await cache.put("user:1", make_user(1))
        await cache.put("user:2", make_user(2, "bob"))
        timers = [entry.timer for entry in cache._entries.values()]

        await cache.close()

        assert len(cache) == 0
        assert all(timer.cancelled() for timer in timers)


class TestRedisProfileCache:
    """Test cases for the shared, Redis-backed cache."""

    @pytest.fixture
    def client(self):
        return AsyncMock()

    @pytest.fixture
    def cache(self, client):
        return RedisProfileCache(client, ttl_seconds=300)

    def test_implements_protocol(self, cache):
        assert isinstance(cache, ProfileCache)
        assert cache.mode == CacheMode.SHARED

    @pytest.mark.asyncio
    async def test_get_hit(self, cache, client):
        user = make_user()
        client.get.return_value = user.model_dump_json()

        value, found = await cache.get("user:1")

        assert found is True
        assert value == user
        client.get.assert_awaited_once_with("user:1")

    @pytest.mark.asyncio
    async def test_get_miss(self, cache, client):
        client.get.return_value = None

        assert await cache.get("user:1") == (None, False)

    @pytest.mark.asyncio
    async def test_undecodable_entry_is_miss(self, cache, client):
        client.get.return_value = "{not json"

        assert await cache.get("user:1") == (None, False)

    @pytest.mark.asyncio
    async def test_get_backend_failure_raises_cache_error(self, cache, client):
        client.get.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(CacheError):
            await cache.get("user:1")

    @pytest.mark.asyncio
    async def test_put_sets_with_ttl(self, cache, client):
        user = make_user()

        await cache.put("user:1", user)

        client.set.assert_awaited_once_with("user:1", user.model_dump_json(), ex=300)

    @pytest.mark.asyncio
    async def test_put_backend_failure_raises_cache_error(self, cache, client):
        client.set.side_effect = RedisConnectionError("connection reset")

        with pytest.raises(CacheError):
            await cache.put("user:1", make_user())

    @pytest.mark.asyncio
    async def test_invalidate_deletes_key(self, cache, client):
        await cache.invalidate("user:1")

        client.delete.assert_awaited_once_with("user:1")

    @pytest.mark.asyncio
    async def test_health_check(self, cache, client):
        client.ping.return_value = True
        assert await cache.health_check() is True

        client.ping.side_effect = RedisConnectionError("down")
        assert await cache.health_check() is False

    @pytest.mark.asyncio
    async def test_close(self, cache, client):
        await cache.close()

        client.aclose.assert_awaited_once()


class TestCreateProfileCache:
    """Test cases for startup mode selection."""

    @pytest.mark.asyncio
    async def test_no_url_selects_degraded_mode(self):
        cache = await create_profile_cache("", ttl_seconds=60)

        assert isinstance(cache, InMemoryProfileCache)
        assert cache.ttl_seconds == 60

    @pytest.mark.asyncio
    async def test_unreachable_redis_selects_degraded_mode(self):
        client = MagicMock()
        client.ping = AsyncMock(side_effect=RedisConnectionError("connection refused"))
        client.aclose = AsyncMock()

        with patch("service_auth.app.caching.profile_cache.redis.from_url", return_value=client):
            cache = await create_profile_cache("redis://localhost:6390/0", connect_timeout=0.1)

        assert cache.mode == CacheMode.DEGRADED
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_hanging_redis_selects_degraded_mode(self):
        async def never_answers():
            await asyncio.sleep(10)

        client = MagicMock()
        client.ping = MagicMock(side_effect=lambda: never_answers())
        client.aclose = AsyncMock()

        with patch("service_auth.app.caching.profile_cache.redis.from_url", return_value=client):
            cache = await create_profile_cache("redis://10.255.255.1:6379/0", connect_timeout=0.05)

        assert cache.mode == CacheMode.DEGRADED

    @pytest.mark.asyncio
    async def test_reachable_redis_selects_shared_mode(self):
        client = MagicMock()
        client.ping = AsyncMock(return_value=True)

        with patch("service_auth.app.caching.profile_cache.redis.from_url", return_value=client) as from_url:
            cache = await create_profile_cache("redis://localhost:6379/0", ttl_seconds=120)

        assert isinstance(cache, RedisProfileCache)
        assert cache.ttl_seconds == 120
        assert from_url.call_args.kwargs["decode_responses"] is True
