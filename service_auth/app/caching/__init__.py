"""
Profile caching package.

Exposes the ProfileCache interface, its shared (Redis) and degraded
(in-process) implementations, and the startup factory that chooses between
them.
"""

from .profile_cache import (
    CacheEntry,
    CacheMode,
    InMemoryProfileCache,
    ProfileCache,
    RedisProfileCache,
    create_profile_cache,
    profile_key,
)

__all__ = [
    "CacheEntry",
    "CacheMode",
    "InMemoryProfileCache",
    "ProfileCache",
    "RedisProfileCache",
    "create_profile_cache",
    "profile_key",
]
