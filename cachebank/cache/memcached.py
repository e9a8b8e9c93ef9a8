"""
memcached cache client implementation.

This module provides the production backend for the record store. It
talks the memcached text protocol through pymemcache and exposes it as
an async CacheClient.

pymemcache is a blocking client, so every command runs on a dedicated
thread pool. A PooledClient (or a pooled HashClient when several servers
are configured) gives each worker thread its own socket.

Invariants:
    - Every storage command is sent with noreply=False so the store sees
      STORED / NOT_STORED / NOT_FOUND
    - pymemcache and socket errors surface as CacheError subclasses
    - The thread pool never has more workers than the socket pool

How to change safely:
    - Test against a real memcached (CACHEBANK_MEMCACHED_TESTS=1)
    - Keep key validation in the key codec; pymemcache rejects illegal
      keys with MemcacheIllegalInputError
"""

from __future__ import annotations

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

from pymemcache.client.base import PooledClient
from pymemcache.client.hash import HashClient
from pymemcache.exceptions import MemcacheError

from .base import (
    CacheConnectionError,
    CacheError,
    CacheNotStoredError,
    Value,
    to_bytes,
)

logger = logging.getLogger(__name__)


DEFAULT_PORT = 11211


def parse_server(location: str) -> Tuple[str, int]:
    """Split a "host:port" server location.

    A bare host uses the default memcached port.

    >>> parse_server("10.0.0.5:11212")
    ('10.0.0.5', 11212)
    """
    host, sep, port = location.strip().rpartition(":")
    if not sep:
        return location.strip(), DEFAULT_PORT
    if not host:
        raise ValueError(f"Invalid memcached server location: {location!r}")
    return host, int(port)


class MemcachedCacheClient:
    """memcached implementation of the CacheClient protocol.

    Attributes:
        config: MemcachedConfig with server list and client tuning

    Example:
        >>> client = MemcachedCacheClient(MemcachedConfig())
        >>> await client.connect()
        >>> await client.set("widget:1", '{"a":1}', expire=60)
        True
    """

    def __init__(self, config: Any) -> None:
        """Initialize the memcached client.

        Args:
            config: MemcachedConfig instance with connection settings
        """
        self.config = config
        self._client: Optional[Any] = None
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def is_connected(self) -> bool:
        """Whether the client pool has been created."""
        return self._client is not None

    async def connect(self) -> None:
        """Create the pymemcache client pool.

        memcached connections are opened lazily by pymemcache on the first
        command, so this never blocks on the network.

        Raises:
            CacheConnectionError: If the server list is invalid
        """
        if self._client is not None:
            return

        try:
            servers = [parse_server(loc) for loc in self.config.server_locations]
        except ValueError as e:
            raise CacheConnectionError(str(e)) from e
        if not servers:
            raise CacheConnectionError("No memcached servers configured")

        client_kwargs: Dict[str, Any] = {
            "connect_timeout": self.config.connect_timeout,
            "timeout": self.config.timeout,
            "no_delay": self.config.no_delay,
            "max_pool_size": self.config.max_pool_size,
        }
        client_kwargs.update(self.config.options)

        if len(servers) == 1:
            self._client = PooledClient(servers[0], **client_kwargs)
        else:
            self._client = HashClient(servers, use_pooling=True, **client_kwargs)

        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_pool_size,
            thread_name_prefix="cachebank-memcached",
        )

        logger.info(
            "memcached client created",
            extra={
                "servers": [f"{h}:{p}" for h, p in servers],
                "pool_size": self.config.max_pool_size,
            },
        )

    async def close(self) -> None:
        """Close all pooled sockets and stop the worker threads."""
        client, executor = self._client, self._executor
        self._client = None
        self._executor = None
        if executor is not None:
            # Let in-flight commands finish without blocking the event loop
            await asyncio.get_running_loop().run_in_executor(None, executor.shutdown)
        if client is not None:
            client.close()
            logger.info("memcached client closed")

    async def _call(self, name: str, key: Any, *args: Any, **kwargs: Any) -> Any:
        """Run one blocking pymemcache command on the worker pool."""
        if self._client is None or self._executor is None:
            raise CacheConnectionError("Not connected")
        fn = getattr(self._client, name)

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                self._executor, functools.partial(fn, *args, **kwargs)
            )
        except MemcacheError as e:
            raise CacheError(f"memcached {name} failed for key {key}: {e}") from e
        except OSError as e:
            raise CacheConnectionError(
                f"memcached {name} failed for key {key}: {e}"
            ) from e

    async def get(self, key: str) -> Optional[bytes]:
        value = await self._call("get", key, key)
        logger.debug("memcached %s: %s", "HIT" if value is not None else "MISS", key)
        return value

    async def get_multi(self, keys: List[str]) -> Dict[str, bytes]:
        if not keys:
            return {}
        found = await self._call("get_many", keys[0], keys)
        logger.debug(
            "memcached get_many",
            extra={"requested": len(keys), "found": len(found)},
        )
        return dict(found)

    async def add(self, key: str, value: Value, expire: int = 0) -> bool:
        return bool(
            await self._call(
                "add", key, key, to_bytes(value), expire=expire, noreply=False
            )
        )

    async def replace(self, key: str, value: Value, expire: int = 0) -> bool:
        return bool(
            await self._call(
                "replace", key, key, to_bytes(value), expire=expire, noreply=False
            )
        )

    async def set(self, key: str, value: Value, expire: int = 0) -> bool:
        return bool(
            await self._call(
                "set", key, key, to_bytes(value), expire=expire, noreply=False
            )
        )

    async def delete(self, key: str) -> bool:
        return bool(await self._call("delete", key, key, noreply=False))

    async def append(self, key: str, value: Value) -> None:
        stored = await self._call(
            "append", key, key, to_bytes(value), noreply=False
        )
        if not stored:
            raise CacheNotStoredError(key, "append")

    async def prepend(self, key: str, value: Value) -> None:
        stored = await self._call(
            "prepend", key, key, to_bytes(value), noreply=False
        )
        if not stored:
            raise CacheNotStoredError(key, "prepend")

    async def incr(self, key: str, delta: int = 1) -> Optional[int]:
        return await self._call("incr", key, key, delta, noreply=False)

    async def decr(self, key: str, delta: int = 1) -> Optional[int]:
        return await self._call("decr", key, key, delta, noreply=False)
