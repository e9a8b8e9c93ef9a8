"""
cachebank - a secondary-indexed record store on top of memcached.

memcached only knows flat keys and byte strings. This package synthesizes
records, typed key lists, per-property indexes and field-equality search
out of its single-key primitives (add, replace, set, delete, append,
prepend, get_multi, incr, decr).

Architecture:
    ┌─────────────┐     ┌──────────────┐     ┌──────────────────┐
    │   Caller    │────▶│  CacheBank   │────▶│   QueryEngine    │
    │             │     │ (record CRUD)│     │ (index intersect)│
    └─────────────┘     └──────┬───────┘     └────────┬─────────┘
                               │                      │
                               ▼                      ▼
                        ┌──────────────┐     ┌──────────────────┐
                        │  Bookkeeper  │◀────│  keys / values   │
                        │ (key/index   │     │  (key + freeze/  │
                        │   sets)      │     │   melt codecs)   │
                        └──────┬───────┘     └──────────────────┘
                               │
                               ▼
                 ┌──────────────────────────────────┐
                 │  CacheClient (memcached/memory)  │
                 └──────────────────────────────────┘

Invariants:
    - A record lives under exactly one cache key derived from (type, id)
    - melt(freeze(v)) == v for every JSON-representable value
    - Bookkeeping records use the reserved "_databank_" type prefix and are
      never indexed or enlisted themselves
    - Bookkeeping sets are eventually consistent, never transactional

How to change safely:
    - The key scheme and the freeze format are persisted in live caches;
      changing either orphans existing data
    - New cache primitives must be added to the CacheClient protocol and
      to every backend
"""

from ._version import __version__
from .cache import CacheClient, CacheError, InMemoryCacheClient, MemcachedCacheClient
from .config import BankConfig, BookkeepingMode
from .errors import (
    AlreadyConnectedError,
    AlreadyExistsError,
    BookkeepingError,
    DatabankError,
    NoSuchThingError,
    NotConnectedError,
    NotInListError,
)
from .schema import Schema, TypeDescriptor, load_schema
from .store import CacheBank

__all__ = [
    "__version__",
    # Store
    "CacheBank",
    "BankConfig",
    "BookkeepingMode",
    # Schema
    "Schema",
    "TypeDescriptor",
    "load_schema",
    # Cache clients
    "CacheClient",
    "CacheError",
    "InMemoryCacheClient",
    "MemcachedCacheClient",
    # Errors
    "DatabankError",
    "NotConnectedError",
    "AlreadyConnectedError",
    "AlreadyExistsError",
    "NoSuchThingError",
    "NotInListError",
    "BookkeepingError",
]
