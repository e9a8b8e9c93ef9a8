"""
Unit tests for the in-memory cache client.

Tests cover:
- Conditional storage commands (add, replace, set, delete)
- append/prepend on present and absent keys
- incr/decr counters
- Key validation, expiry, and testing helpers
"""

import time

import pytest

from cachebank.cache import (
    CacheConnectionError,
    CacheError,
    CacheNotStoredError,
    InMemoryCacheClient,
)


@pytest.fixture
async def cache():
    client = InMemoryCacheClient()
    await client.connect()
    yield client
    await client.close()


class TestStorageCommands:
    """Tests for add, replace, set, delete and get."""

    @pytest.mark.asyncio
    async def test_add_only_when_absent(self, cache):
        assert await cache.add("k", "1") is True
        assert await cache.add("k", "2") is False
        assert await cache.get("k") == b"1"

    @pytest.mark.asyncio
    async def test_replace_only_when_present(self, cache):
        assert await cache.replace("k", "1") is False
        await cache.set("k", "1")
        assert await cache.replace("k", "2") is True
        assert await cache.get("k") == b"2"

    @pytest.mark.asyncio
    async def test_delete(self, cache):
        assert await cache.delete("k") is False
        await cache.set("k", "1")
        assert await cache.delete("k") is True
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_get_multi_omits_misses(self, cache):
        await cache.set("a", "1")
        await cache.set("c", "3")
        assert await cache.get_multi(["a", "b", "c"]) == {"a": b"1", "c": b"3"}

    @pytest.mark.asyncio
    async def test_expired_entries_are_misses(self, cache):
        await cache.set("k", "1", expire=int(time.time()) - 10 + 60 * 60 * 24 * 365)
        await cache.set("old", "1", expire=int(time.time()) - 10)
        assert await cache.get("k") == b"1"
        assert await cache.get("old") is None


class TestListCommands:
    """Tests for append and prepend."""

    @pytest.mark.asyncio
    async def test_append_and_prepend(self, cache):
        await cache.set("k", "b")
        await cache.append("k", "c")
        await cache.prepend("k", "a")
        assert await cache.get("k") == b"abc"

    @pytest.mark.asyncio
    async def test_absent_key_not_stored(self, cache):
        with pytest.raises(CacheNotStoredError) as exc_info:
            await cache.append("k", "x")
        assert exc_info.value.not_stored is True
        with pytest.raises(CacheNotStoredError):
            await cache.prepend("k", "x")
        assert await cache.get("k") is None


class TestCounters:
    """Tests for incr and decr."""

    @pytest.mark.asyncio
    async def test_incr_decr(self, cache):
        await cache.set("n", "5")
        assert await cache.incr("n") == 6
        assert await cache.decr("n", 2) == 4
        assert await cache.get("n") == b"4"

    @pytest.mark.asyncio
    async def test_decr_floors_at_zero(self, cache):
        await cache.set("n", "1")
        assert await cache.decr("n", 5) == 0

    @pytest.mark.asyncio
    async def test_missing_counter(self, cache):
        assert await cache.incr("n") is None

    @pytest.mark.asyncio
    async def test_non_numeric(self, cache):
        await cache.set("n", "abc")
        with pytest.raises(CacheError):
            await cache.incr("n")


class TestClientState:
    """Tests for connection state, key rules and testing helpers."""

    @pytest.mark.asyncio
    async def test_requires_connection(self):
        client = InMemoryCacheClient()
        with pytest.raises(CacheConnectionError):
            await client.get("k")

    @pytest.mark.asyncio
    async def test_data_survives_reconnect(self, cache):
        await cache.set("k", "1")
        await cache.close()
        await cache.connect()
        assert await cache.get("k") == b"1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["", "has space", "x" * 251, "tab\tkey"])
    async def test_illegal_keys(self, cache, key):
        with pytest.raises(CacheError):
            await cache.set(key, "1")

    @pytest.mark.asyncio
    async def test_inject_failure_is_queued(self, cache):
        cache.inject_failure("get", CacheError("boom"))
        cache.inject_failure("get", CacheError("again"))
        with pytest.raises(CacheError, match="boom"):
            await cache.get("k")
        with pytest.raises(CacheError, match="again"):
            await cache.get("k")
        assert await cache.get("k") is None
        assert cache.calls["get"] == 3

    @pytest.mark.asyncio
    async def test_evict(self, cache):
        await cache.set("k", "1")
        assert cache.evict("k") is True
        assert cache.raw("k") is None
        assert cache.keys() == []
