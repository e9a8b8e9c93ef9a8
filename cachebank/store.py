"""
Record store on top of a memcached-style cache.

CacheBank keeps typed records under derived keys and keeps their
bookkeeping (keys-of-type set, index sets) in step with every mutation.
Concurrency control comes solely from the cache's conditional commands:

    create   add                        fails if the key is live
    update   deindex, replace, index    fails if the key is absent
    delete   deindex, delist, delete    fails if the key is absent
    save     read, enlist|deindex, set, index
    append   append | create([item]) | retry

Invariants:
    - Every operation raises NotConnectedError outside connect()/disconnect()
    - A record is written before it is indexed and deindexed before it is
      overwritten or deleted
    - incr()/decr() do not maintain indices: a counter that is also an
      indexed property drifts out of its index set
    - append()/prepend() do not reindex the grown record
    - append()/prepend() retry only when their own create loses a race,
      never on a bookkeeping failure inside it

How to change safely:
    - Keep bookkeeping calls in the same order relative to the cache
      command; search relies on stale entries being skippable, not on
      entries being present
    - Test create/append races with InMemoryCacheClient.inject_failure
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

from .bookkeeping import Bookkeeper
from .cache.base import CacheClient, CacheNotStoredError, create_cache_client
from .config import BankConfig
from .errors import (
    AlreadyConnectedError,
    AlreadyExistsError,
    DatabankError,
    NoSuchThingError,
    NotConnectedError,
    NotInListError,
)
from .keys import to_key
from .query import QueryEngine, ResultCallback
from .retry import retry
from .schema import Schema
from .values import freeze, freeze_item, melt

logger = logging.getLogger(__name__)


class CacheBank:
    """Secondary-indexed record store backed by a CacheClient.

    The bank owns its connection handle and its schema; build one per
    configuration.

    Attributes:
        config: Bank configuration
        schema: Indexed properties per type

    Example:
        >>> bank = CacheBank(BankConfig.from_params({"schema": {"widget": {"indices": ["a"]}}}))
        >>> await bank.connect()
        >>> await bank.create("widget", "1", {"a": 1})
        {'a': 1}
        >>> await bank.search("widget", {"a": 1}, print)
        {'a': 1}
        1
    """

    def __init__(
        self,
        config: Union[BankConfig, Mapping[str, Any], None] = None,
        client: Optional[CacheClient] = None,
    ) -> None:
        """Initialize the bank.

        Args:
            config: BankConfig, or a parameter mapping for BankConfig.from_params
            client: Optional cache client (for testing or DI); by default one
                is created from the configuration on connect()
        """
        if config is None or not isinstance(config, BankConfig):
            config = BankConfig.from_params(config)
        self.config = config
        self.schema: Schema = config.schema
        self._injected_client = client
        self._client: Optional[CacheClient] = None
        self._bookkeeper = Bookkeeper(self, self.schema, config.store.bookkeeping_mode)
        self._query = QueryEngine(self, self._bookkeeper, config.store.search_batch_size)

    @property
    def expire(self) -> int:
        return self.config.store.expire

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def bookkeeper(self) -> Bookkeeper:
        return self._bookkeeper

    def _require_client(self) -> CacheClient:
        if self._client is None:
            raise NotConnectedError()
        return self._client

    # Lifecycle

    async def connect(self) -> None:
        """Connect to the cache.

        Raises:
            AlreadyConnectedError: If already connected
        """
        if self._client is not None:
            raise AlreadyConnectedError()
        client = self._injected_client or create_cache_client(self.config)
        await client.connect()
        self._client = client
        logger.info(
            "CacheBank connected",
            extra={"backend": type(client).__name__, "indexed_types": sorted(self.schema.types)},
        )

    async def disconnect(self) -> None:
        """Disconnect from the cache.

        Raises:
            NotConnectedError: If not connected
        """
        client = self._require_client()
        self._client = None
        await client.close()
        logger.info("CacheBank disconnected")

    async def __aenter__(self) -> CacheBank:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._client is not None:
            await self.disconnect()

    # Records

    async def create(self, type_name: str, id: Any, value: Any) -> Any:
        """Store a new record.

        Raises:
            AlreadyExistsError: If a record with this type and id is live
            BookkeepingError: If the record was stored but its key or index
                entry could not be added
        """
        client = self._require_client()
        key = to_key(type_name, id)
        if not await client.add(key, freeze(value), self.expire):
            raise AlreadyExistsError(type_name, id)
        await self._bookkeeper.enlist(type_name, id)
        await self._bookkeeper.index(type_name, id, value)
        logger.debug("Created %s", key)
        return value

    async def read(self, type_name: str, id: Any) -> Any:
        """Fetch a record's value.

        Raises:
            NoSuchThingError: If the record is absent (or evicted)
        """
        client = self._require_client()
        raw = await client.get(to_key(type_name, id))
        if raw is None:
            raise NoSuchThingError(type_name, id)
        return melt(raw)

    async def update(self, type_name: str, id: Any, value: Any) -> Any:
        """Replace an existing record's value.

        Raises:
            NoSuchThingError: If the record is absent
        """
        client = self._require_client()
        key = to_key(type_name, id)
        await self._bookkeeper.deindex(type_name, id)
        if not await client.replace(key, freeze(value), self.expire):
            raise NoSuchThingError(type_name, id)
        await self._bookkeeper.index(type_name, id, value)
        logger.debug("Updated %s", key)
        return value

    async def delete(self, type_name: str, id: Any) -> None:
        """Delete a record.

        Raises:
            NoSuchThingError: If the record is absent
        """
        client = self._require_client()
        key = to_key(type_name, id)
        await self._bookkeeper.deindex(type_name, id)
        await self._bookkeeper.delist(type_name, id)
        if not await client.delete(key):
            raise NoSuchThingError(type_name, id)
        logger.debug("Deleted %s", key)

    async def save(self, type_name: str, id: Any, value: Any) -> Any:
        """Create or replace a record.

        Raises:
            CacheNotStoredError: If the cache refused the value
        """
        client = self._require_client()
        key = to_key(type_name, id)
        try:
            current = await self.read(type_name, id)
        except NoSuchThingError:
            await self._bookkeeper.enlist(type_name, id)
        else:
            await self._bookkeeper.deindex(type_name, id, current=current)
        if not await client.set(key, freeze(value), self.expire):
            raise CacheNotStoredError(key, "set")
        await self._bookkeeper.index(type_name, id, value)
        logger.debug("Saved %s", key)
        return value

    async def read_all(self, type_name: str, ids: Iterable[Any]) -> Dict[Any, Any]:
        """Fetch many records of one type with a single multi-get.

        Returns:
            Mapping of each id to its value, or None for misses
        """
        client = self._require_client()
        ids = list(ids)
        keys = [to_key(type_name, id) for id in ids]
        raws = await client.get_multi(list(dict.fromkeys(keys)))
        return {
            id: melt(raws[key]) if key in raws else None
            for id, key in zip(ids, keys)
        }

    # Search

    async def search(
        self,
        type_name: str,
        criteria: Mapping[str, Any],
        on_result: ResultCallback,
    ) -> int:
        """Call on_result for every record of type_name matching criteria.

        Criteria map property paths to required values (equality only).

        Returns:
            Number of matching records
        """
        self._require_client()
        return await self._query.search(type_name, criteria, on_result)

    async def scan(self, type_name: str, on_result: ResultCallback) -> int:
        """Call on_result for every record of type_name."""
        return await self.search(type_name, {}, on_result)

    async def fetch_keys(self, keys: List[str]) -> Dict[str, bytes]:
        """Raw multi-get by cache key, for the query engine."""
        return await self._require_client().get_multi(keys)

    # Lists

    async def append(self, type_name: str, id: Any, item: Any) -> None:
        """Append an item to a stored list, creating ``[item]`` if absent."""
        await self._grow("append", type_name, id, item)

    async def prepend(self, type_name: str, id: Any, item: Any) -> None:
        """Prepend an item to a stored list, creating ``[item]`` if absent."""
        await self._grow("prepend", type_name, id, item)

    async def _grow(self, command: str, type_name: str, id: Any, item: Any) -> None:
        client = self._require_client()
        key = to_key(type_name, id)
        grow: Callable[[str, str], Awaitable[None]] = getattr(client, command)
        encoded = freeze_item(item)

        async def attempt() -> None:
            try:
                await grow(key, encoded)
            except CacheNotStoredError:
                await self.create(type_name, id, [item])

        def lost_create_race(e: BaseException) -> bool:
            return (
                isinstance(e, AlreadyExistsError)
                and e.type_name == type_name
                and e.id == id
            )

        await retry(
            attempt,
            retry_on=(AlreadyExistsError,),
            retry_if=lost_create_race,
            policy=self.config.store.append_policy,
            description=f"{command} to {key}",
        )

    async def remove(
        self,
        type_name: str,
        id: Any,
        item: Any,
        all_occurrences: bool = False,
    ) -> None:
        """Remove an item from a stored list.

        This is a read-modify-write; a concurrent append can be lost.

        Raises:
            NoSuchThingError: If the record is absent
            NotInListError: If the item is not in the list
            DatabankError: If the record is not a list
        """
        current = await self.read(type_name, id)
        if not isinstance(current, list):
            raise DatabankError(
                f"{type_name} with id {id} is not a list",
                code="NOT_A_LIST",
                details={"type": type_name, "id": id},
            )
        if item not in current:
            raise NotInListError(type_name, id, item)
        if all_occurrences:
            remaining = [x for x in current if x != item]
        else:
            remaining = list(current)
            remaining.remove(item)
        await self.update(type_name, id, remaining)

    # Counters

    async def incr(self, type_name: str, id: Any) -> int:
        """Atomically increment a counter record by one.

        Indices are not updated.

        Raises:
            NoSuchThingError: If the counter does not exist
        """
        return await self._bump("incr", type_name, id)

    async def decr(self, type_name: str, id: Any) -> int:
        """Atomically decrement a counter record by one (floors at zero).

        Indices are not updated.

        Raises:
            NoSuchThingError: If the counter does not exist
        """
        return await self._bump("decr", type_name, id)

    async def _bump(self, command: str, type_name: str, id: Any) -> int:
        client = self._require_client()
        result = await getattr(client, command)(to_key(type_name, id), 1)
        if result is None:
            raise NoSuchThingError(type_name, id)
        return result
