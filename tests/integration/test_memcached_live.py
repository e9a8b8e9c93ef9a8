"""
Integration tests against a running memcached.

Skipped unless CACHEBANK_MEMCACHED_TESTS=1. MEMCACHED_SERVERS selects the
server (default 127.0.0.1:11211). Every test uses its own record type so
runs do not interfere.

Tests cover:
- Record lifecycle over the wire
- append/prepend and counters
- Indexed search
"""

import os
import uuid

import pytest

from cachebank import BankConfig, CacheBank, NoSuchThingError

pytestmark = [
    pytest.mark.memcached,
    pytest.mark.skipif(
        os.getenv("CACHEBANK_MEMCACHED_TESTS") != "1",
        reason="set CACHEBANK_MEMCACHED_TESTS=1 to run against memcached",
    ),
]


@pytest.fixture
def type_name():
    return f"widget{uuid.uuid4().hex[:8]}"


@pytest.fixture
async def bank(type_name):
    config = BankConfig.from_params(
        {
            "serverLocations": os.getenv("MEMCACHED_SERVERS", "127.0.0.1:11211"),
            "expire": 60,
            "schema": {type_name: {"indices": ["a"]}},
        }
    )
    async with CacheBank(config) as b:
        yield b


class TestMemcachedLive:
    """Round trips through a real server."""

    @pytest.mark.asyncio
    async def test_lifecycle(self, bank, type_name):
        await bank.create(type_name, "1", {"a": 1, "name": "café"})
        assert await bank.read(type_name, "1") == {"a": 1, "name": "café"}
        await bank.update(type_name, "1", {"a": 2})
        await bank.delete(type_name, "1")
        with pytest.raises(NoSuchThingError):
            await bank.read(type_name, "1")

    @pytest.mark.asyncio
    async def test_lists_and_counters(self, bank, type_name):
        await bank.append(type_name, "log", "b")
        await bank.append(type_name, "log", "c")
        await bank.prepend(type_name, "log", "a")
        assert await bank.read(type_name, "log") == ["a", "b", "c"]

        await bank.create(type_name, "hits", 1)
        assert await bank.incr(type_name, "hits") == 2

    @pytest.mark.asyncio
    async def test_search(self, bank, type_name):
        for i, a in enumerate([1, 1, 2]):
            await bank.create(type_name, str(i), {"a": a})
        results = []
        assert await bank.search(type_name, {"a": 1}, results.append) == 2
        assert await bank.search(type_name, {"a": 3}, results.append) == 0
