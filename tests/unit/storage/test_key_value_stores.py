"""
Tests for the KeyValueStore adapters.

The same behaviour is checked against the in-memory fake and the Redis
adapter (over fakeredis), so components tested against the fake behave
the same in production.

Reference Documents:
- GUIDELINES pp. 157: FakeRepository pattern
- GUIDELINES pp. 2153: External state stores (Redis)
"""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from adcopy_orchestrator.core.exceptions import StoreError
from adcopy_orchestrator.storage.memory import InMemoryKeyValueStore
from adcopy_orchestrator.storage.redis_store import RedisKeyValueStore


@pytest.fixture(params=["memory", "redis"])
def kv_store(request, clock, fake_redis):
    """Each test runs once per adapter."""
    if request.param == "memory":
        return InMemoryKeyValueStore(clock=clock)
    return RedisKeyValueStore(fake_redis)


# =============================================================================
# Shared behaviour
# =============================================================================


class TestStringOperations:
    """get / set / set_if_absent / delete / exists."""

    @pytest.mark.asyncio
    async def test_set_then_get(self, kv_store):
        """A stored value reads back unchanged."""
        await kv_store.set("k", "v")

        assert await kv_store.get("k") == "v"

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, kv_store):
        """Missing keys read as None."""
        assert await kv_store.get("missing") is None

    @pytest.mark.asyncio
    async def test_set_if_absent_only_first_wins(self, kv_store):
        """Insert-if-absent succeeds once."""
        assert await kv_store.set_if_absent("k", "first", ttl_seconds=60) is True
        assert await kv_store.set_if_absent("k", "second", ttl_seconds=60) is False
        assert await kv_store.get("k") == "first"

    @pytest.mark.asyncio
    async def test_delete_counts_removed_keys(self, kv_store):
        """delete returns how many keys existed."""
        await kv_store.set("a", "1")
        await kv_store.set("b", "2")

        assert await kv_store.delete("a", "b", "c") == 2
        assert await kv_store.exists("a") is False

    @pytest.mark.asyncio
    async def test_incr(self, kv_store):
        """Counters start at zero."""
        assert await kv_store.incr("counter") == 1
        assert await kv_store.incr("counter", 4) == 5


class TestHashOperations:
    """hincrby / hset / hdel / hgetall."""

    @pytest.mark.asyncio
    async def test_hincrby_and_hgetall(self, kv_store):
        """Hash counters are returned as strings."""
        await kv_store.hincrby("stats", "total")
        await kv_store.hincrby("stats", "total", 2)
        await kv_store.hset("stats", "label", "x")

        assert await kv_store.hgetall("stats") == {"total": "3", "label": "x"}

    @pytest.mark.asyncio
    async def test_hgetall_missing_is_empty(self, kv_store):
        """A missing hash reads as empty."""
        assert await kv_store.hgetall("nothing") == {}

    @pytest.mark.asyncio
    async def test_hdel_last_field_removes_key(self, kv_store):
        """An emptied hash no longer exists."""
        await kv_store.hset("h", "a", "1")
        await kv_store.hset("h", "b", "2")

        assert await kv_store.hdel("h", "a", "zzz") == 1
        assert await kv_store.hdel("h", "b") == 1
        assert await kv_store.exists("h") is False


class TestExpiry:
    """ttl / expire / keys."""

    @pytest.mark.asyncio
    async def test_ttl_conventions(self, kv_store):
        """-2 for missing keys, -1 for keys without expiry."""
        await kv_store.set("forever", "v")
        await kv_store.set("brief", "v", ttl_seconds=100)

        assert await kv_store.ttl("missing") == -2
        assert await kv_store.ttl("forever") == -1
        assert 0 < await kv_store.ttl("brief") <= 100

    @pytest.mark.asyncio
    async def test_expire_sets_ttl(self, kv_store):
        """expire adds a TTL to an existing key."""
        await kv_store.set("k", "v")

        assert await kv_store.expire("k", 50) is True
        assert 0 < await kv_store.ttl("k") <= 50
        assert await kv_store.expire("missing", 50) is False

    @pytest.mark.asyncio
    async def test_keys_by_prefix(self, kv_store):
        """keys returns only keys with the prefix."""
        await kv_store.set("dlq:1", "a")
        await kv_store.set("dlq:2", "b")
        await kv_store.set("other:1", "c")

        assert sorted(await kv_store.keys("dlq:")) == ["dlq:1", "dlq:2"]


# =============================================================================
# In-memory specifics
# =============================================================================


class TestInMemoryStore:
    """Clock-driven expiry and type checks of the fake."""

    @pytest.mark.asyncio
    async def test_entries_expire_with_clock(self, clock):
        """Entries vanish once the clock passes their TTL."""
        store = InMemoryKeyValueStore(clock=clock)
        await store.set("k", "v", ttl_seconds=10)

        clock.advance(9)
        assert await store.get("k") == "v"

        clock.advance(1)
        assert await store.get("k") is None
        assert await store.keys("k") == []

    @pytest.mark.asyncio
    async def test_set_if_absent_after_expiry(self, clock):
        """An expired marker can be claimed again."""
        store = InMemoryKeyValueStore(clock=clock)
        await store.set_if_absent("claim", "1", ttl_seconds=5)
        clock.advance(5)

        assert await store.set_if_absent("claim", "2", ttl_seconds=5) is True

    @pytest.mark.asyncio
    async def test_wrong_type_raises_store_error(self, clock):
        """Reading a hash as a string raises StoreError."""
        store = InMemoryKeyValueStore(clock=clock)
        await store.hset("h", "f", "v")

        with pytest.raises(StoreError):
            await store.get("h")

    @pytest.mark.asyncio
    async def test_incr_non_integer_raises_store_error(self, clock):
        """Incrementing a non-integer string raises StoreError."""
        store = InMemoryKeyValueStore(clock=clock)
        await store.set("k", "abc")

        with pytest.raises(StoreError):
            await store.incr("k")

    @pytest.mark.asyncio
    async def test_hash_ops_on_string_raise_store_error(self, clock):
        """Writing hash fields into a string key raises StoreError."""
        store = InMemoryKeyValueStore(clock=clock)
        await store.set("k", "v")

        with pytest.raises(StoreError):
            await store.hincrby("k", "total")
        with pytest.raises(StoreError):
            await store.hset("k", "label", "x")
        assert await store.get("k") == "v"


# =============================================================================
# Redis specifics
# =============================================================================


class TestRedisStore:
    """Error wrapping of the Redis adapter."""

    @pytest.mark.asyncio
    async def test_redis_errors_become_store_errors(self):
        """Connection failures surface as StoreError."""
        client = AsyncMock()
        client.get.side_effect = RedisConnectionError("Connection refused")
        store = RedisKeyValueStore(client)

        with pytest.raises(StoreError, match="Connection refused"):
            await store.get("k")

    @pytest.mark.asyncio
    async def test_ping(self, redis_store):
        """ping answers True against a live server."""
        assert await redis_store.ping() is True

    @pytest.mark.asyncio
    async def test_delete_without_keys(self, redis_store):
        """Deleting nothing is a no-op."""
        assert await redis_store.delete() == 0
