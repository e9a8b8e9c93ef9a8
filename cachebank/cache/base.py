"""
Base protocol and types for the cache client abstraction.

This module defines the CacheClient protocol that all cache backends must
implement, along with the error types for transport and protocol failures.

The protocol mirrors the memcached primitives the record store is built
from. Every call is atomic at the single-key level; nothing spans keys.

Invariants:
    - add() succeeds only if the key is absent, replace() only if present
    - append()/prepend() raise CacheNotStoredError when the key is absent
    - get() and incr()/decr() return None on a miss, never raise
    - get_multi() omits missing keys from its result

How to change safely:
    - Protocol changes require updating all implementations
    - Keep return conventions identical across backends; the store relies
      on them to tell "missing" from "failed"
"""

from __future__ import annotations

from abc import abstractmethod
from typing import (
    TYPE_CHECKING,
    Dict,
    List,
    Optional,
    Protocol,
    Union,
    runtime_checkable,
)
import logging

if TYPE_CHECKING:
    from ..config import BankConfig

logger = logging.getLogger(__name__)

Value = Union[str, bytes]


class CacheError(Exception):
    """Base exception for cache transport/protocol failures."""
    pass


class CacheConnectionError(CacheError):
    """Connection to the cache backend failed or is not open."""
    pass


class CacheNotStoredError(CacheError):
    """The cache refused to store the value (NOT_STORED).

    For append/prepend this means the key does not exist.

    Attributes:
        key: The cache key the command targeted
        command: The memcached command that was refused
    """

    def __init__(self, key: str, command: str) -> None:
        super().__init__(f"{command} not stored for key {key}")
        self.key = key
        self.command = command
        self.not_stored = True


@runtime_checkable
class CacheClient(Protocol):
    """Protocol for cache backends.

    Values are stored as byte strings. Callers may pass str values; they
    are stored UTF-8 encoded. Reads always return bytes.

    Example:
        >>> client = MemcachedCacheClient(config.memcached)
        >>> await client.connect()
        >>> await client.add("widget:1", b'{"a":1}', expire=60)
        True
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection (or connection pool).

        Raises:
            CacheConnectionError: If the backend cannot be reached
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the connection and release resources."""
        ...

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Return the stored value, or None on a miss."""
        ...

    @abstractmethod
    async def get_multi(self, keys: List[str]) -> Dict[str, bytes]:
        """Return a mapping of the keys that were found to their values."""
        ...

    @abstractmethod
    async def add(self, key: str, value: Value, expire: int = 0) -> bool:
        """Store only if absent. Returns False if the key exists."""
        ...

    @abstractmethod
    async def replace(self, key: str, value: Value, expire: int = 0) -> bool:
        """Store only if present. Returns False if the key is absent."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Value, expire: int = 0) -> bool:
        """Store unconditionally. Returns True when stored."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete the key. Returns False if it was not found."""
        ...

    @abstractmethod
    async def append(self, key: str, value: Value) -> None:
        """Append bytes to an existing value.

        Raises:
            CacheNotStoredError: If the key does not exist
        """
        ...

    @abstractmethod
    async def prepend(self, key: str, value: Value) -> None:
        """Prepend bytes to an existing value.

        Raises:
            CacheNotStoredError: If the key does not exist
        """
        ...

    @abstractmethod
    async def incr(self, key: str, delta: int = 1) -> Optional[int]:
        """Increment a decimal counter. Returns None if the key is absent."""
        ...

    @abstractmethod
    async def decr(self, key: str, delta: int = 1) -> Optional[int]:
        """Decrement a decimal counter (floors at 0). None if absent."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected to the backend."""
        ...


def to_bytes(value: Value) -> bytes:
    """Encode a str value for storage."""
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def create_cache_client(config: "BankConfig") -> CacheClient:
    """Factory function to create a cache client from configuration.

    Args:
        config: Bank configuration

    Returns:
        Appropriate CacheClient implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import CacheBackend
    from .memcached import MemcachedCacheClient
    from .memory import InMemoryCacheClient

    if config.cache_backend == CacheBackend.MEMCACHED:
        return MemcachedCacheClient(config.memcached)
    elif config.cache_backend == CacheBackend.MEMORY:
        return InMemoryCacheClient()
    else:
        raise ValueError(f"Unsupported cache backend: {config.cache_backend}")
