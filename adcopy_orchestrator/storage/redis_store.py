"""
Redis Key-Value Store

Redis-backed implementation of the KeyValueStore port. This is the store
used in deployments: breaker and idempotency state must be shared across
every instance of a horizontally scaled service.

Reference Documents:
- GUIDELINES pp. 2153: "production systems often require external state stores (Redis)"
- GUIDELINES pp. 2309: Redis caching patterns with connection pooling

Pattern: Repository pattern (Percival & Gregory pp. 86)
Pattern: Dependency injection for Redis client (Sinha pp. 89-90)
"""

from typing import Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from adcopy_orchestrator.core.exceptions import StoreError
from adcopy_orchestrator.storage.base import KeyValueStore


def _ttl(ttl_seconds: Optional[int]) -> Optional[int]:
    if ttl_seconds is None:
        return None
    return max(int(ttl_seconds), 1)


class RedisKeyValueStore(KeyValueStore):
    """
    KeyValueStore over ``redis.asyncio``.

    Every Redis failure is wrapped in StoreError so callers handle one
    exception type regardless of backend.

    Example:
        >>> store = RedisKeyValueStore.from_url("redis://localhost:6379")
        >>> await store.set("circuit_breaker:openai", "{...}", ttl_seconds=3600)
    """

    def __init__(self, redis_client: Redis) -> None:
        """
        Initialize with an async Redis client.

        Args:
            redis_client: Client created with ``decode_responses=True``.
        """
        self._redis: Redis = redis_client

    @classmethod
    def from_url(cls, redis_url: str) -> "RedisKeyValueStore":
        """Create a store with its own connection pool."""
        return cls(aioredis.from_url(redis_url, decode_responses=True))

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._redis.get(key)
        except RedisError as e:
            raise StoreError(f"Failed to get {key}: {e}") from e

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        try:
            await self._redis.set(key, value, ex=_ttl(ttl_seconds))
        except RedisError as e:
            raise StoreError(f"Failed to set {key}: {e}") from e

    async def set_if_absent(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        try:
            created = await self._redis.set(key, value, ex=_ttl(ttl_seconds), nx=True)
        except RedisError as e:
            raise StoreError(f"Failed to set {key}: {e}") from e
        return bool(created)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(await self._redis.delete(*keys))
        except RedisError as e:
            raise StoreError(f"Failed to delete {keys}: {e}") from e

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._redis.exists(key))
        except RedisError as e:
            raise StoreError(f"Failed to check {key}: {e}") from e

    async def incr(self, key: str, amount: int = 1) -> int:
        try:
            return int(await self._redis.incrby(key, amount))
        except RedisError as e:
            raise StoreError(f"Failed to increment {key}: {e}") from e

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        try:
            return int(await self._redis.hincrby(key, field, amount))
        except RedisError as e:
            raise StoreError(f"Failed to increment {key}.{field}: {e}") from e

    async def hset(self, key: str, field: str, value: str) -> None:
        try:
            await self._redis.hset(key, field, value)
        except RedisError as e:
            raise StoreError(f"Failed to set {key}.{field}: {e}") from e

    async def hdel(self, key: str, *fields: str) -> int:
        if not fields:
            return 0
        try:
            return int(await self._redis.hdel(key, *fields))
        except RedisError as e:
            raise StoreError(f"Failed to delete fields of {key}: {e}") from e

    async def hgetall(self, key: str) -> dict[str, str]:
        try:
            return dict(await self._redis.hgetall(key))
        except RedisError as e:
            raise StoreError(f"Failed to read {key}: {e}") from e

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        try:
            return bool(await self._redis.expire(key, max(int(ttl_seconds), 1)))
        except RedisError as e:
            raise StoreError(f"Failed to expire {key}: {e}") from e

    async def ttl(self, key: str) -> int:
        try:
            return int(await self._redis.ttl(key))
        except RedisError as e:
            raise StoreError(f"Failed to read TTL of {key}: {e}") from e

    async def keys(self, prefix: str) -> list[str]:
        """Collect keys with SCAN so large keyspaces never block Redis."""
        try:
            return [key async for key in self._redis.scan_iter(match=f"{prefix}*", count=100)]
        except RedisError as e:
            raise StoreError(f"Failed to scan {prefix}*: {e}") from e

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            raise StoreError(f"Redis ping failed: {e}") from e

    async def close(self) -> None:
        await self._redis.aclose()
