"""
In-memory cache client implementation for testing.

This module provides a simple in-memory cache backend for:
- Unit tests
- Integration tests
- Local development without a memcached server

Invariants:
    - All data is lost on process exit
    - Same return conventions and key rules as memcached
    - Every command is atomic with respect to other coroutines

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep behavior compatible with MemcachedCacheClient
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional
import logging

from .base import (
    CacheConnectionError,
    CacheError,
    CacheNotStoredError,
    Value,
    to_bytes,
)

logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 250
# memcached treats expirations beyond 30 days as absolute unix timestamps
RELATIVE_EXPIRE_LIMIT = 60 * 60 * 24 * 30


@dataclass
class InMemoryEntry:
    """A stored value and its expiry deadline (0 = never)."""
    value: bytes
    expires_at: float = 0.0


class InMemoryCacheClient:
    """In-memory implementation of CacheClient for testing.

    Attributes:
        calls: Counter of commands issued, by name (testing helper)

    Thread safety:
        Uses an asyncio lock. Safe to use from multiple coroutines.

    Example:
        >>> cache = InMemoryCacheClient()
        >>> await cache.connect()
        >>> await cache.add("widget:1", b"1")
        True
        >>> await cache.add("widget:1", b"2")
        False
    """

    def __init__(self) -> None:
        self._data: Dict[str, InMemoryEntry] = {}
        self._connected = False
        self._lock = asyncio.Lock()
        self._failures: Dict[str, List[Exception]] = {}
        self.calls: Counter = Counter()

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryCacheClient connected")

    async def close(self) -> None:
        """Disconnect. Stored data survives so a bank can reconnect."""
        self._connected = False
        logger.debug("InMemoryCacheClient closed")

    def _check(self, command: str, *keys: str) -> None:
        if not self._connected:
            raise CacheConnectionError("Not connected")
        self.calls[command] += 1
        pending = self._failures.get(command)
        if pending:
            raise pending.pop(0)
        for key in keys:
            if (
                not key
                or len(key) > MAX_KEY_LENGTH
                or any(not (0x21 <= ord(c) <= 0x7E) for c in key)
            ):
                raise CacheError(f"Illegal memcached key: {key!r}")

    def _live(self, key: str) -> Optional[InMemoryEntry]:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expires_at and entry.expires_at <= time.time():
            del self._data[key]
            return None
        return entry

    @staticmethod
    def _deadline(expire: int) -> float:
        if not expire:
            return 0.0
        if expire > RELATIVE_EXPIRE_LIMIT:
            return float(expire)
        return time.time() + expire

    async def get(self, key: str) -> Optional[bytes]:
        async with self._lock:
            self._check("get", key)
            entry = self._live(key)
            return entry.value if entry else None

    async def get_multi(self, keys: List[str]) -> Dict[str, bytes]:
        async with self._lock:
            self._check("get_multi", *keys)
            found = {}
            for key in keys:
                entry = self._live(key)
                if entry is not None:
                    found[key] = entry.value
            return found

    async def add(self, key: str, value: Value, expire: int = 0) -> bool:
        async with self._lock:
            self._check("add", key)
            if self._live(key) is not None:
                return False
            self._data[key] = InMemoryEntry(to_bytes(value), self._deadline(expire))
            return True

    async def replace(self, key: str, value: Value, expire: int = 0) -> bool:
        async with self._lock:
            self._check("replace", key)
            if self._live(key) is None:
                return False
            self._data[key] = InMemoryEntry(to_bytes(value), self._deadline(expire))
            return True

    async def set(self, key: str, value: Value, expire: int = 0) -> bool:
        async with self._lock:
            self._check("set", key)
            self._data[key] = InMemoryEntry(to_bytes(value), self._deadline(expire))
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            self._check("delete", key)
            if self._live(key) is None:
                return False
            del self._data[key]
            return True

    async def append(self, key: str, value: Value) -> None:
        async with self._lock:
            self._check("append", key)
            entry = self._live(key)
            if entry is None:
                raise CacheNotStoredError(key, "append")
            entry.value = entry.value + to_bytes(value)

    async def prepend(self, key: str, value: Value) -> None:
        async with self._lock:
            self._check("prepend", key)
            entry = self._live(key)
            if entry is None:
                raise CacheNotStoredError(key, "prepend")
            entry.value = to_bytes(value) + entry.value

    async def incr(self, key: str, delta: int = 1) -> Optional[int]:
        async with self._lock:
            self._check("incr", key)
            return self._bump(key, delta)

    async def decr(self, key: str, delta: int = 1) -> Optional[int]:
        async with self._lock:
            self._check("decr", key)
            return self._bump(key, -delta)

    def _bump(self, key: str, delta: int) -> Optional[int]:
        entry = self._live(key)
        if entry is None:
            return None
        try:
            current = int(entry.value.strip())
        except ValueError:
            raise CacheError(
                "CLIENT_ERROR cannot increment or decrement non-numeric value"
            )
        # memcached counters are unsigned 64-bit; decr floors at zero
        new = max(current + delta, 0) % (1 << 64)
        entry.value = str(new).encode("ascii")
        return new

    # Testing helpers

    def inject_failure(self, command: str, exception: Exception) -> None:
        """Make the next call of `command` raise `exception`.

        Failures queue up: injecting twice fails the next two calls.
        """
        self._failures.setdefault(command, []).append(exception)

    def evict(self, key: str) -> bool:
        """Drop a key as if the cache had evicted it."""
        return self._data.pop(key, None) is not None

    def raw(self, key: str) -> Optional[bytes]:
        """Stored bytes for a key, bypassing the connection check."""
        entry = self._live(key)
        return entry.value if entry else None

    def keys(self) -> List[str]:
        """All live keys, in insertion order."""
        return [k for k in list(self._data) if self._live(k) is not None]

    def clear(self) -> None:
        """Remove all stored data."""
        self._data.clear()
