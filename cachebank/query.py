"""
Field-equality search over bookkeeping sets.

A search splits its criteria into indexed properties (listed in the type's
schema) and unindexed ones. Indexed criteria pick candidate keys by
intersecting index sets; without any, every key of the type is a
candidate. Candidates are bulk-fetched and the unindexed criteria are
checked against the decoded values.

Invariants:
    - An empty intersection ends the search without fetching anything
    - Keys that no longer resolve (deleted or evicted) are skipped silently
    - Each candidate key is fetched and reported at most once
    - Results are reported in candidate order; there is no other ordering
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from .schema import MISSING, deep_property
from .values import melt

if TYPE_CHECKING:
    from .bookkeeping import Bookkeeper
    from .store import CacheBank

logger = logging.getLogger(__name__)

ResultCallback = Callable[[Any], Optional[Awaitable[None]]]


def deep_equal(a: Any, b: Any) -> bool:
    """JSON-style deep equality: ``True`` does not equal ``1``."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        return a.keys() == b.keys() and all(deep_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, (Mapping, list, tuple)) or isinstance(b, (Mapping, list, tuple)):
        return False
    return a == b


def matches_criteria(value: Any, criteria: Mapping[str, Any]) -> bool:
    """True if every property path in criteria deep-equals its required value."""
    for path, expected in criteria.items():
        actual = deep_property(value, path)
        if actual is MISSING or not deep_equal(actual, expected):
            return False
    return True


def intersect_all(key_lists: List[List[str]]) -> List[str]:
    """Keys present in every list, deduplicated, in the first list's order."""
    if not key_lists:
        return []
    result = list(dict.fromkeys(key_lists[0]))
    for keys in key_lists[1:]:
        present = set(keys)
        result = [k for k in result if k in present]
        if not result:
            break
    return result


class QueryEngine:
    """Answers search requests for a bank.

    Attributes:
        batch_size: Maximum keys per multi-get
    """

    def __init__(self, bank: "CacheBank", bookkeeper: "Bookkeeper", batch_size: int = 128) -> None:
        self._bank = bank
        self._bookkeeper = bookkeeper
        self.batch_size = batch_size

    def partition(
        self, type_name: str, criteria: Mapping[str, Any]
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Split criteria into (indexed, unindexed) by the type's schema."""
        indexed: Dict[str, Any] = {}
        unindexed: Dict[str, Any] = {}
        for path, expected in criteria.items():
            if self._bookkeeper.schema.is_indexed(type_name, path):
                indexed[path] = expected
            else:
                unindexed[path] = expected
        return indexed, unindexed

    async def candidate_keys(self, type_name: str, indexed: Mapping[str, Any]) -> List[str]:
        """Keys worth fetching: the index intersection, or every key of the type."""
        if not indexed:
            return list(dict.fromkeys(await self._bookkeeper.keys_of_type(type_name)))
        key_lists = await asyncio.gather(
            *(
                self._bookkeeper.index_set(type_name, path, expected)
                for path, expected in indexed.items()
            )
        )
        return intersect_all(list(key_lists))

    async def search(
        self,
        type_name: str,
        criteria: Mapping[str, Any],
        on_result: ResultCallback,
    ) -> int:
        """Report every matching record to on_result; return the match count."""
        indexed, unindexed = self.partition(type_name, criteria)
        keys = await self.candidate_keys(type_name, indexed)
        logger.debug(
            "Search %s",
            type_name,
            extra={
                "indexed": sorted(indexed),
                "unindexed": sorted(unindexed),
                "candidates": len(keys),
            },
        )

        matched = 0
        for start in range(0, len(keys), self.batch_size):
            batch = keys[start:start + self.batch_size]
            raws = await self._bank.fetch_keys(batch)
            for key in batch:
                raw = raws.get(key)
                if raw is None:
                    continue
                value = melt(raw)
                if not matches_criteria(value, unindexed):
                    continue
                matched += 1
                outcome = on_result(value)
                if inspect.isawaitable(outcome):
                    await outcome
        return matched
