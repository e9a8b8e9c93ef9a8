"""
Cache client abstraction for cachebank.

This module provides a pluggable cache backend interface supporting:
- memcached (production, via pymemcache)
- In-memory (for testing)

The record store only ever talks to a CacheClient; everything above raw
key/value storage is synthesized on top of its primitives.

Invariants:
    - Each command is atomic for a single key, and only for a single key
    - Misses are reported as None / False / CacheNotStoredError, never as
      generic CacheError

How to change safely:
    - New backends must implement the CacheClient protocol
    - Match memcached's NOT_STORED / NOT_FOUND semantics exactly
"""

from .base import (
    CacheClient,
    CacheConnectionError,
    CacheError,
    CacheNotStoredError,
    create_cache_client,
)
from .memcached import MemcachedCacheClient
from .memory import InMemoryCacheClient

__all__ = [
    # Protocol and types
    "CacheClient",
    "CacheError",
    "CacheConnectionError",
    "CacheNotStoredError",
    # Factory
    "create_cache_client",
    # Implementations
    "MemcachedCacheClient",
    "InMemoryCacheClient",
]
