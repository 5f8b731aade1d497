"""
Key-Value Store Port

This module defines the narrow storage interface every resilience component
talks to. Breaker state, fallback cache, idempotency records, dead letters
and job records all live behind it, so orchestration logic stays
storage-agnostic and can be tested against the in-memory fake.

Reference Documents:
- GUIDELINES pp. 793-795: Repository pattern and ABC patterns
- GUIDELINES pp. 949: Repository pattern - "hides the boring details of data access"
- GUIDELINES p. 953: @abstractmethod decorator usage

Pattern: Ports and Adapters (Hexagonal Architecture)
Pattern: Dependency injection for the store (Sinha pp. 89-90)
"""

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStore(ABC):
    """
    Abstract async key-value store with TTL and atomic counters.

    Values are strings; callers serialize records as JSON. TTLs are whole
    seconds. ``ttl`` follows Redis conventions: -2 for a missing key,
    -1 for a key without expiry.

    Implementations:
        - RedisKeyValueStore: shared store for multi-instance deployments
        - InMemoryKeyValueStore: single-process fake for tests
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value stored at ``key`` or None."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """
        Store ``value`` at ``key``, replacing any previous value.

        Args:
            key: Store key.
            value: Serialized value.
            ttl_seconds: Expiry in seconds; None keeps the key forever.
        """
        pass

    @abstractmethod
    async def set_if_absent(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        """
        Atomically store ``value`` only when ``key`` does not exist.

        Returns:
            True if this call created the key, False if it already existed.
        """
        pass

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether ``key`` exists."""
        pass

    @abstractmethod
    async def incr(self, key: str, amount: int = 1) -> int:
        """Atomically add ``amount`` to an integer value, returning the new value."""
        pass

    @abstractmethod
    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        """Atomically add ``amount`` to a hash field, returning the new value."""
        pass

    @abstractmethod
    async def hset(self, key: str, field: str, value: str) -> None:
        """Set a single hash field."""
        pass

    @abstractmethod
    async def hdel(self, key: str, *fields: str) -> int:
        """Delete hash fields, returning how many existed."""
        pass

    @abstractmethod
    async def hgetall(self, key: str) -> dict[str, str]:
        """Return all fields of a hash (empty dict when missing)."""
        pass

    @abstractmethod
    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set a TTL on an existing key. Returns False if the key is missing."""
        pass

    @abstractmethod
    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds (-2 missing, -1 no expiry)."""
        pass

    @abstractmethod
    async def keys(self, prefix: str) -> list[str]:
        """Return every key starting with ``prefix``."""
        pass

    async def close(self) -> None:
        """Release connections held by the store."""
        return None
