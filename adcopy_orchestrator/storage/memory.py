"""
In-Memory Key-Value Store

Single-process implementation of the KeyValueStore port, used by tests and
local development. Expiry is evaluated lazily against an injectable clock,
so tests can move time forward without sleeping.

Pattern: FakeRepository (Percival & Gregory p. 157)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from adcopy_orchestrator.core.clock import Clock, utc_now
from adcopy_orchestrator.core.exceptions import StoreError
from adcopy_orchestrator.storage.base import KeyValueStore


@dataclass
class _Entry:
    value: Union[str, dict[str, str]]
    expires_at: Optional[datetime] = None


class InMemoryKeyValueStore(KeyValueStore):
    """
    Dict-backed KeyValueStore.

    Every operation completes without awaiting, so each call is atomic with
    respect to other coroutines on the same event loop.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._data: dict[str, _Entry] = {}

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _live(self, key: str) -> Optional[_Entry]:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            del self._data[key]
            return None
        return entry

    def _expiry(self, ttl_seconds: Optional[int]) -> Optional[datetime]:
        if ttl_seconds is None:
            return None
        return self._clock() + timedelta(seconds=max(int(ttl_seconds), 1))

    def _string(self, key: str) -> Optional[_Entry]:
        entry = self._live(key)
        if entry is not None and not isinstance(entry.value, str):
            raise StoreError(f"Key {key} holds a hash, not a string")
        return entry

    def _hash(self, key: str) -> dict[str, str]:
        entry = self._live(key)
        if entry is None:
            entry = _Entry(value={})
            self._data[key] = entry
        if not isinstance(entry.value, dict):
            raise StoreError(f"Key {key} holds a string, not a hash")
        return entry.value

    # =========================================================================
    # KeyValueStore
    # =========================================================================

    async def get(self, key: str) -> Optional[str]:
        entry = self._string(key)
        return entry.value if entry is not None else None  # type: ignore[return-value]

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        self._data[key] = _Entry(value=value, expires_at=self._expiry(ttl_seconds))

    async def set_if_absent(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        if self._live(key) is not None:
            return False
        self._data[key] = _Entry(value=value, expires_at=self._expiry(ttl_seconds))
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                del self._data[key]
                removed += 1
        return removed

    async def exists(self, key: str) -> bool:
        return self._live(key) is not None

    async def incr(self, key: str, amount: int = 1) -> int:
        entry = self._string(key)
        if entry is None:
            entry = _Entry(value="0")
            self._data[key] = entry
        try:
            current = int(entry.value)  # type: ignore[arg-type]
        except ValueError as e:
            raise StoreError(f"Key {key} does not hold an integer") from e
        entry.value = str(current + amount)
        return current + amount

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        fields = self._hash(key)
        new_value = int(fields.get(field, "0")) + amount
        fields[field] = str(new_value)
        return new_value

    async def hset(self, key: str, field: str, value: str) -> None:
        fields = self._hash(key)
        fields[field] = value

    async def hdel(self, key: str, *fields: str) -> int:
        entry = self._live(key)
        if entry is None or not isinstance(entry.value, dict):
            return 0
        removed = 0
        for field in fields:
            if entry.value.pop(field, None) is not None:
                removed += 1
        if not entry.value:
            del self._data[key]
        return removed

    async def hgetall(self, key: str) -> dict[str, str]:
        entry = self._live(key)
        if entry is None or not isinstance(entry.value, dict):
            return {}
        return dict(entry.value)

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        entry = self._live(key)
        if entry is None:
            return False
        entry.expires_at = self._expiry(ttl_seconds)
        return True

    async def ttl(self, key: str) -> int:
        entry = self._live(key)
        if entry is None:
            return -2
        if entry.expires_at is None:
            return -1
        return max(int((entry.expires_at - self._clock()).total_seconds()), 0)

    async def keys(self, prefix: str) -> list[str]:
        return [key for key in list(self._data) if key.startswith(prefix) and self._live(key) is not None]
