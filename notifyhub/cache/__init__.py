"""
Cache layer for the last known durable notification list.
"""

from notifyhub.cache.local_cache import (
    InMemoryLocalCache,
    LocalCache,
    RedisLocalCache,
    build_local_cache,
)

__all__ = [
    "InMemoryLocalCache",
    "LocalCache",
    "RedisLocalCache",
    "build_local_cache",
]
