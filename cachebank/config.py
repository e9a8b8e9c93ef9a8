"""
Configuration management for cachebank.

Configuration comes either from environment variables (BankConfig.from_env)
or from a parameter mapping using the store's traditional option names
(BankConfig.from_params):

    serverLocations   "host:port", a list of them, or a {server: weight} map
    options           passed through to the memcached client
    expire            TTL in seconds for every stored record (default 30 days)
    schema            {type: {"indices": [property paths]}}

Invariants:
    - All settings have sensible defaults for local development
    - The schema is immutable once the config is built

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep from_params() accepting every option name it ever accepted
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from .retry import BackoffPolicy
from .schema import Schema, load_schema

logger = logging.getLogger(__name__)

DEFAULT_SERVER = "127.0.0.1:11211"
DEFAULT_EXPIRE = 2592000  # 30 days


class CacheBackend(Enum):
    """Supported cache backends."""

    MEMCACHED = "memcached"
    MEMORY = "memory"


class BookkeepingMode(Enum):
    """Consistency mode for key-of-type and index sets.

    BEST_EFFORT appends blindly (duplicates possible) and removes the first
    matching entry. STRICT skips keys already present and removes every
    matching entry, at the cost of an extra read per append.
    """

    BEST_EFFORT = "best_effort"
    STRICT = "strict"


def parse_server_locations(value: Any) -> Tuple[str, ...]:
    """Normalize a server location option to a tuple of "host:port" strings."""
    if value is None:
        return (DEFAULT_SERVER,)
    if isinstance(value, str):
        servers = [s.strip() for s in value.split(",")]
    elif isinstance(value, Mapping):
        servers = [str(s) for s in value]
    else:
        servers = [str(s).strip() for s in value]
    servers = [s for s in servers if s]
    return tuple(servers) or (DEFAULT_SERVER,)


@dataclass(frozen=True)
class MemcachedConfig:
    """memcached client configuration.

    Attributes:
        server_locations: Server addresses (host:port)
        connect_timeout: Socket connect timeout in seconds (None = blocking)
        timeout: Socket read/write timeout in seconds (None = blocking)
        no_delay: Set TCP_NODELAY on client sockets
        max_pool_size: Sockets per server, and worker threads
        options: Extra keyword arguments for the pymemcache client
    """

    server_locations: Tuple[str, ...] = (DEFAULT_SERVER,)
    connect_timeout: Optional[float] = None
    timeout: Optional[float] = None
    no_delay: bool = True
    max_pool_size: int = 8
    options: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> MemcachedConfig:
        """Load configuration from environment variables."""
        connect_timeout = os.getenv("MEMCACHED_CONNECT_TIMEOUT")
        timeout = os.getenv("MEMCACHED_TIMEOUT")
        return cls(
            server_locations=parse_server_locations(os.getenv("MEMCACHED_SERVERS", DEFAULT_SERVER)),
            connect_timeout=float(connect_timeout) if connect_timeout else None,
            timeout=float(timeout) if timeout else None,
            no_delay=os.getenv("MEMCACHED_NO_DELAY", "true").lower() == "true",
            max_pool_size=int(os.getenv("MEMCACHED_MAX_POOL_SIZE", "8")),
        )


@dataclass(frozen=True)
class StoreConfig:
    """Record store configuration.

    Attributes:
        expire: TTL in seconds applied to every stored record
        bookkeeping_mode: Consistency mode for key and index sets
        search_batch_size: Maximum keys per multi-get during search
        schema_file: Optional YAML/JSON schema file
        append_max_attempts: Attempt limit for append/prepend (None = unbounded)
        append_retry_delay_ms: Initial backoff between append/prepend attempts
    """

    expire: int = DEFAULT_EXPIRE
    bookkeeping_mode: BookkeepingMode = BookkeepingMode.BEST_EFFORT
    search_batch_size: int = 128
    schema_file: Optional[str] = None
    append_max_attempts: Optional[int] = None
    append_retry_delay_ms: int = 0

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load configuration from environment variables."""
        max_attempts = os.getenv("CACHEBANK_APPEND_MAX_ATTEMPTS")
        mode_str = os.getenv("CACHEBANK_BOOKKEEPING_MODE", "best_effort").lower()
        try:
            mode = BookkeepingMode(mode_str)
        except ValueError:
            raise ValueError(
                f"Invalid CACHEBANK_BOOKKEEPING_MODE '{mode_str}'. "
                "Must be one of: best_effort, strict"
            )
        return cls(
            expire=int(os.getenv("CACHEBANK_EXPIRE", str(DEFAULT_EXPIRE))),
            bookkeeping_mode=mode,
            search_batch_size=int(os.getenv("CACHEBANK_SEARCH_BATCH_SIZE", "128")),
            schema_file=os.getenv("CACHEBANK_SCHEMA_FILE"),
            append_max_attempts=int(max_attempts) if max_attempts else None,
            append_retry_delay_ms=int(os.getenv("CACHEBANK_APPEND_RETRY_DELAY_MS", "0")),
        )

    @property
    def append_policy(self) -> BackoffPolicy:
        """Backoff policy for the append/prepend create race."""
        return BackoffPolicy(
            max_attempts=self.append_max_attempts,
            initial_delay=self.append_retry_delay_ms / 1000.0,
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass
class BankConfig:
    """Complete record store configuration.

    Attributes:
        cache_backend: Which cache backend to use
        memcached: memcached client configuration
        store: Record store configuration
        observability: Logging configuration
        schema: Indexed properties per type
    """

    cache_backend: CacheBackend = CacheBackend.MEMCACHED
    memcached: MemcachedConfig = field(default_factory=MemcachedConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)
    schema: Schema = field(default_factory=Schema)

    @classmethod
    def from_env(cls) -> BankConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        backend_str = os.getenv("CACHEBANK_BACKEND", "memcached").lower()
        try:
            cache_backend = CacheBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid CACHEBANK_BACKEND '{backend_str}'. Must be one of: memcached, memory"
            )

        store = StoreConfig.from_env()
        schema = load_schema(store.schema_file) if store.schema_file else Schema()

        config = cls(
            cache_backend=cache_backend,
            memcached=MemcachedConfig.from_env(),
            store=store,
            observability=ObservabilityConfig.from_env(),
            schema=schema,
        )
        config.validate()
        return config

    @classmethod
    def from_params(cls, params: Optional[Mapping[str, Any]] = None) -> BankConfig:
        """Build configuration from a parameter mapping.

        Unknown keys are ignored.

        Raises:
            ValueError: If configuration is invalid.
        """
        params = params or {}
        options = dict(params.get("options") or {})
        expire = params.get("expire") or DEFAULT_EXPIRE
        schema = params.get("schema")

        config = cls(
            memcached=MemcachedConfig(
                server_locations=parse_server_locations(params.get("serverLocations")),
                options=options,
            ),
            store=StoreConfig(expire=int(expire)),
            schema=schema if isinstance(schema, Schema) else Schema.from_dict(schema),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.cache_backend == CacheBackend.MEMCACHED and not self.memcached.server_locations:
            raise ValueError("MEMCACHED_SERVERS is required when CACHEBANK_BACKEND=memcached")
        if self.memcached.max_pool_size < 1:
            raise ValueError("MEMCACHED_MAX_POOL_SIZE must be at least 1")
        if self.store.expire < 0:
            raise ValueError("expire must not be negative")
        if self.store.search_batch_size < 1:
            raise ValueError("CACHEBANK_SEARCH_BATCH_SIZE must be at least 1")
        if self.store.append_max_attempts is not None and self.store.append_max_attempts < 1:
            raise ValueError("CACHEBANK_APPEND_MAX_ATTEMPTS must be at least 1")

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "cachebank configuration loaded",
            extra={
                "cache_backend": self.cache_backend.value,
                "memcached_servers": list(self.memcached.server_locations)
                if self.cache_backend == CacheBackend.MEMCACHED
                else None,
                "expire": self.store.expire,
                "bookkeeping_mode": self.store.bookkeeping_mode.value,
                "indexed_types": sorted(self.schema.types),
                "log_level": self.observability.log_level,
            },
        )
