"""
Local cache for the last known durable notification list.

Read when a session becomes active so the UI can paint before the live
subscription catches up; written on every durable-list mutation.

Cache failures never propagate: a failed load behaves like an empty cache and
a failed save is logged.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Sequence

import structlog
from pydantic import TypeAdapter, ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from notifyhub.config import Settings
from notifyhub.models.notification import NotificationRecord

logger = structlog.get_logger(__name__)

_records_adapter = TypeAdapter(list[NotificationRecord])


class LocalCache(ABC):
    """Per-owner key-value cache of notification records."""

    @abstractmethod
    async def load(self, owner_id: str) -> list[NotificationRecord]:
        """Return cached records for an owner (empty list on miss or failure)."""

    @abstractmethod
    async def save(self, owner_id: str, records: Sequence[NotificationRecord]) -> None:
        """Replace the cached records for an owner."""

    @abstractmethod
    async def clear(self, owner_id: str) -> None:
        """Drop the cached records for an owner."""

    async def aclose(self) -> None:
        """Release backend connections."""


class InMemoryLocalCache(LocalCache):
    """
    Process-local cache.

    Stores serialized JSON so cached records are detached copies, matching the
    Redis backend's behavior.
    """

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    async def load(self, owner_id: str) -> list[NotificationRecord]:
        payload = self._entries.get(owner_id)
        if payload is None:
            logger.debug("cache_miss", owner_id=owner_id)
            return []
        try:
            return _records_adapter.validate_json(payload)
        except ValidationError as e:
            logger.warning("cache_entry_invalid", owner_id=owner_id, error=str(e))
            del self._entries[owner_id]
            return []

    async def save(self, owner_id: str, records: Sequence[NotificationRecord]) -> None:
        self._entries[owner_id] = _records_adapter.dump_json(
            list(records), by_alias=True
        ).decode()

    async def clear(self, owner_id: str) -> None:
        self._entries.pop(owner_id, None)


class RedisLocalCache(LocalCache):
    """
    Redis-backed notification list cache.

    Example:
        ```python
        cache = RedisLocalCache(redis_client, ttl=3600)
        records = await cache.load("user-1")
        await cache.save("user-1", records)
        ```
    """

    def __init__(self, redis: Redis, ttl: int = 7 * 24 * 3600, prefix: str = "notifications"):
        """
        Initialize cache with Redis client.

        Args:
            redis: Async Redis client
            ttl: Time-to-live in seconds
            prefix: Key prefix
        """
        self.redis = redis
        self.ttl = ttl
        self.prefix = prefix

    def _make_cache_key(self, owner_id: str) -> str:
        """Format: {prefix}:{owner_id}"""
        return f"{self.prefix}:{owner_id}"

    async def load(self, owner_id: str) -> list[NotificationRecord]:
        key = self._make_cache_key(owner_id)
        try:
            cached = await self.redis.get(key)
        except RedisError as e:
            logger.error("cache_get_error", key=key, error=str(e))
            return []

        if cached is None:
            logger.debug("cache_miss", key=key)
            return []

        try:
            records = _records_adapter.validate_python(json.loads(cached))
        except (ValueError, ValidationError) as e:
            logger.warning("cache_entry_invalid", key=key, error=str(e))
            return []

        logger.debug("cache_hit", key=key, record_count=len(records))
        return records

    async def save(self, owner_id: str, records: Sequence[NotificationRecord]) -> None:
        key = self._make_cache_key(owner_id)
        payload = _records_adapter.dump_json(list(records), by_alias=True)
        try:
            await self.redis.setex(key, self.ttl, payload)
        except RedisError as e:
            logger.error("cache_set_error", key=key, error=str(e))

    async def clear(self, owner_id: str) -> None:
        key = self._make_cache_key(owner_id)
        try:
            await self.redis.delete(key)
        except RedisError as e:
            logger.error("cache_delete_error", key=key, error=str(e))

    async def aclose(self) -> None:
        try:
            await self.redis.aclose()
        except RedisError as e:
            logger.error("cache_close_error", error=str(e))


def build_local_cache(settings: Settings) -> LocalCache:
    """Create the cache backend selected by settings."""
    if settings.cache_backend == "redis":
        redis = Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
        )
        return RedisLocalCache(
            redis,
            ttl=settings.cache_ttl_seconds,
            prefix=settings.cache_key_prefix,
        )
    return InMemoryLocalCache()
