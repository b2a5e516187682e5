"""
Read-through profile cache for the Auth service.

Two interchangeable implementations of one small interface:

- RedisProfileCache (shared mode): entries live in Redis with a
  server-enforced TTL and are visible to every process.
- InMemoryProfileCache (degraded mode): entries live in this process only;
  every insertion schedules its own expiry callback after the TTL.

create_profile_cache() probes Redis once at startup and picks the mode. The
choice holds for the life of the process: a degraded cache is never upgraded
and a shared cache never falls back.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Protocol, Tuple, runtime_checkable

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from shared.logging import get_logger
from ..errors import CacheError
from ..models import UserIdentity

DEFAULT_PROFILE_TTL = 300
PROFILE_KEY_PREFIX = "user:"

logger = get_logger("auth.cache")


def profile_key(user_id: int) -> str:
    """Cache key for a user's profile."""
    return f"{PROFILE_KEY_PREFIX}{user_id}"


class CacheMode(str, Enum):
    """Operating mode chosen at construction."""
    SHARED = "shared"
    DEGRADED = "degraded"


@runtime_checkable
class ProfileCache(Protocol):
    """Interface the orchestrator depends on."""

    mode: CacheMode
    ttl_seconds: float

    async def get(self, key: str) -> Tuple[Optional[UserIdentity], bool]:
        ...

    async def put(self, key: str, value: UserIdentity) -> None:
        ...

    async def invalidate(self, key: str) -> None:
        ...

    async def close(self) -> None:
        ...


@dataclass
class CacheEntry:
    """A cached profile and the moment it was inserted."""
    key: str
    value: UserIdentity
    inserted_at: float
    timer: Optional[asyncio.TimerHandle] = field(default=None, repr=False)


class InMemoryProfileCache:
    """Process-local cache used when Redis is unreachable.

    TTL is approximated: each put schedules a callback that deletes that
    exact entry, and reads also compare the entry's age against ``clock`` so
    an expired entry is never served even if its callback is late. Access
    happens on the event loop thread, so the dict needs no lock.
    """

    mode = CacheMode.DEGRADED

    def __init__(self, ttl_seconds: float = DEFAULT_PROFILE_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    async def get(self, key: str) -> Tuple[Optional[UserIdentity], bool]:
        entry = self._entries.get(key)
        if entry is None:
            return None, False
        if self._clock() - entry.inserted_at >= self.ttl_seconds:
            self._evict(entry)
            return None, False
        return entry.value, True

    async def put(self, key: str, value: UserIdentity) -> None:
        previous = self._entries.get(key)
        if previous is not None:
            self._evict(previous)

        entry = CacheEntry(key=key, value=value, inserted_at=self._clock())
        loop = asyncio.get_running_loop()
        entry.timer = loop.call_later(self.ttl_seconds, self._expire, entry)
        self._entries[key] = entry

    async def invalidate(self, key: str) -> None:
        entry = self._entries.get(key)
        if entry is not None:
            self._evict(entry)

    async def close(self) -> None:
        for entry in list(self._entries.values()):
            self._evict(entry)

    def __len__(self) -> int:
        return len(self._entries)

    def _expire(self, entry: CacheEntry) -> None:
        # A newer put for the same key replaced this entry; leave it alone.
        if self._entries.get(entry.key) is entry:
            del self._entries[entry.key]

    def _evict(self, entry: CacheEntry) -> None:
        if entry.timer is not None:
            entry.timer.cancel()
        if self._entries.get(entry.key) is entry:
            del self._entries[entry.key]


class RedisProfileCache:
    """Shared cache tier backed by Redis."""

    mode = CacheMode.SHARED

    def __init__(self, client: redis.Redis, ttl_seconds: float = DEFAULT_PROFILE_TTL):
        self._redis = client
        self.ttl_seconds = ttl_seconds

    async def get(self, key: str) -> Tuple[Optional[UserIdentity], bool]:
        try:
            raw = await self._redis.get(key)
        except (RedisError, OSError) as e:
            raise CacheError(f"get failed: {e}") from e

        if raw is None:
            return None, False

        try:
            return UserIdentity.model_validate_json(raw), True
        except ValidationError:
            logger.warning("Discarding undecodable cache entry", key=key)
            return None, False

    async def put(self, key: str, value: UserIdentity) -> None:
        try:
            await self._redis.set(key, value.model_dump_json(), ex=max(1, int(self.ttl_seconds)))
        except (RedisError, OSError) as e:
            raise CacheError(f"set failed: {e}") from e

    async def invalidate(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except (RedisError, OSError) as e:
            raise CacheError(f"delete failed: {e}") from e

    async def health_check(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except (RedisError, OSError):
            return False

    async def close(self) -> None:
        await self._redis.aclose()


async def create_profile_cache(
    redis_url: str,
    ttl_seconds: float = DEFAULT_PROFILE_TTL,
    connect_timeout: float = 2.0,
    clock: Callable[[], float] = time.monotonic,
) -> ProfileCache:
    """Probe Redis once and return the cache for the chosen mode."""
    if not redis_url:
        logger.warning("No Redis URL configured, using in-process profile cache")
        return InMemoryProfileCache(ttl_seconds, clock)

    client = redis.from_url(
        redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=connect_timeout,
        socket_timeout=5,
        health_check_interval=30,
    )

    try:
        await asyncio.wait_for(client.ping(), timeout=connect_timeout)
    except Exception as e:
        logger.warning("Redis unavailable, using in-process profile cache", error=str(e))
        await client.aclose()
        return InMemoryProfileCache(ttl_seconds, clock)

    logger.info("Profile cache using Redis", ttl_seconds=ttl_seconds)
    return RedisProfileCache(client, ttl_seconds)
