"""
Bookkeeping sets: keys-of-type and per-property index sets.

Both are ordinary list records stored through the bank itself, under
reserved internal types:

    ("_databank_keys",  "widget")          every key of type widget
    ("_databank_index", "widget:color:red") keys of widgets with color red

Entries are added with the bank's atomic append and removed with its
list removal. There is no transaction spanning a record and its
bookkeeping, so the sets are eventually consistent: a crash between the
two can leave a stale entry (pointing at a deleted record) or a missing
one. Search tolerates stale entries by skipping keys that no longer
resolve.

Invariants:
    - Internal types (prefix "_databank_") are never enlisted or indexed,
      which stops the recursion through bank.append()
    - A missing set reads as an empty list
    - Removing from a missing set, or removing an absent entry, is a no-op
    - A set entry that cannot be added raises BookkeepingError, never the
      AlreadyExistsError of the set record
    - In STRICT mode appends skip keys already present and removals drop
      every occurrence; in BEST_EFFORT mode duplicates are allowed

How to change safely:
    - The set ids are persisted; changing render_index_value() orphans
      existing index sets
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any, List

from .config import BookkeepingMode
from .errors import AlreadyExistsError, BookkeepingError, NoSuchThingError, NotInListError
from .keys import INDEX_TYPE, KEYS_TYPE, is_internal, to_key
from .schema import MISSING, Schema, deep_property

if TYPE_CHECKING:
    from .store import CacheBank

logger = logging.getLogger(__name__)


def render_index_value(value: Any) -> str:
    """Render a property value as the last segment of an index set id.

    >>> render_index_value("red"), render_index_value(1), render_index_value(None)
    ('red', '1', 'null')
    """
    if value is MISSING:
        return "undefined"
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


def index_set_id(type_name: str, path: str, value: Any) -> str:
    return f"{type_name}:{path}:{render_index_value(value)}"


class Bookkeeper:
    """Maintains the keys-of-type set and index sets for a bank.

    Attributes:
        schema: Indexed properties per type
        mode: Consistency mode for set mutations

    Example:
        >>> keeper = Bookkeeper(bank, Schema.from_dict({"widget": {"indices": ["a"]}}))
        >>> await keeper.enlist("widget", "1")
        >>> await keeper.index("widget", "1", {"a": 1})
        >>> await keeper.index_set("widget", "a", 1)
        ['widget:1']
    """

    def __init__(
        self,
        bank: "CacheBank",
        schema: Schema,
        mode: BookkeepingMode = BookkeepingMode.BEST_EFFORT,
    ) -> None:
        self._bank = bank
        self.schema = schema
        self.mode = mode

    async def enlist(self, type_name: str, id: Any) -> None:
        """Add the record's key to its type's key set."""
        if is_internal(type_name):
            return
        await self._add(KEYS_TYPE, type_name, to_key(type_name, id))

    async def delist(self, type_name: str, id: Any) -> None:
        """Remove the record's key from its type's key set."""
        if is_internal(type_name):
            return
        await self._discard(KEYS_TYPE, type_name, to_key(type_name, id))

    async def index(self, type_name: str, id: Any, value: Any) -> None:
        """Add the record's key to the index set of each indexed property."""
        if is_internal(type_name):
            return
        indices = self.schema.indices(type_name)
        if not indices:
            return
        key = to_key(type_name, id)
        await asyncio.gather(
            *(
                self._add(INDEX_TYPE, index_set_id(type_name, path, deep_property(value, path)), key)
                for path in indices
            )
        )

    async def deindex(self, type_name: str, id: Any, current: Any = MISSING) -> None:
        """Remove the record's key from the index sets of its stored value.

        Args:
            type_name: Record type
            id: Record id
            current: The stored value if the caller already read it;
                otherwise it is read here. An absent record has nothing
                to deindex.
        """
        if is_internal(type_name):
            return
        indices = self.schema.indices(type_name)
        if not indices:
            return
        if current is MISSING:
            try:
                current = await self._bank.read(type_name, id)
            except NoSuchThingError:
                return
        key = to_key(type_name, id)
        await asyncio.gather(
            *(
                self._discard(INDEX_TYPE, index_set_id(type_name, path, deep_property(current, path)), key)
                for path in indices
            )
        )

    async def keys_of_type(self, type_name: str) -> List[str]:
        """All keys enlisted for a type (may hold stale or duplicate keys)."""
        return await self._read_set(KEYS_TYPE, type_name)

    async def index_set(self, type_name: str, path: str, value: Any) -> List[str]:
        """Keys believed to have `value` at property `path`."""
        return await self._read_set(INDEX_TYPE, index_set_id(type_name, path, value))

    async def _read_set(self, set_type: str, set_id: str) -> List[str]:
        try:
            keys = await self._bank.read(set_type, set_id)
        except NoSuchThingError:
            return []
        if not isinstance(keys, list):
            logger.warning(
                "Bookkeeping record is not a list",
                extra={"set_type": set_type, "set_id": set_id},
            )
            return []
        return keys

    async def _add(self, set_type: str, set_id: str, key: str) -> None:
        if self.mode == BookkeepingMode.STRICT:
            if key in await self._read_set(set_type, set_id):
                return
        try:
            await self._bank.append(set_type, set_id, key)
        except AlreadyExistsError as e:
            # The set's create race outlasted the append retry policy
            raise BookkeepingError(set_type, set_id, key) from e
        logger.debug("Bookkeeping add %s to %s %s", key, set_type, set_id)

    async def _discard(self, set_type: str, set_id: str, key: str) -> None:
        try:
            await self._bank.remove(
                set_type,
                set_id,
                key,
                all_occurrences=self.mode == BookkeepingMode.STRICT,
            )
        except (NoSuchThingError, NotInListError):
            logger.debug("Bookkeeping entry %s already gone from %s %s", key, set_type, set_id)
            return
        logger.debug("Bookkeeping remove %s from %s %s", key, set_type, set_id)
