"""
Unit tests for bookkeeping sets.

Tests cover:
- Index value rendering and set ids
- enlist/delist and index/deindex against an in-memory bank
- STRICT versus BEST_EFFORT mode
"""

import dataclasses

import pytest

from cachebank import BankConfig, BookkeepingMode, CacheBank, InMemoryCacheClient
from cachebank.bookkeeping import index_set_id, render_index_value
from cachebank.keys import KEYS_TYPE
from cachebank.schema import MISSING


def make_bank(mode=BookkeepingMode.BEST_EFFORT):
    config = BankConfig.from_params({"schema": {"widget": {"indices": ["a", "owner.name"]}}})
    config.store = dataclasses.replace(config.store, bookkeeping_mode=mode)
    return CacheBank(config, client=InMemoryCacheClient())


@pytest.fixture
async def bank():
    b = make_bank()
    await b.connect()
    yield b
    await b.disconnect()


@pytest.fixture
async def strict_bank():
    b = make_bank(BookkeepingMode.STRICT)
    await b.connect()
    yield b
    await b.disconnect()


class TestRenderIndexValue:
    """Tests for render_index_value() and index_set_id()."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("red", "red"),
            (1, "1"),
            (1.0, "1"),
            (1.5, "1.5"),
            (True, "true"),
            (False, "false"),
            (None, "null"),
            (MISSING, "undefined"),
            ({"b": 1, "a": 2}, '{"a":2,"b":1}'),
            ([1, "x"], '[1,"x"]'),
        ],
    )
    def test_render(self, value, expected):
        assert render_index_value(value) == expected

    def test_set_id(self):
        assert index_set_id("widget", "owner.name", "ann") == "widget:owner.name:ann"


class TestBookkeeper:
    """Tests for Bookkeeper against an in-memory bank."""

    @pytest.mark.asyncio
    async def test_enlist_and_delist(self, bank):
        keeper = bank.bookkeeper
        await keeper.enlist("widget", "1")
        await keeper.enlist("widget", "2")
        assert await keeper.keys_of_type("widget") == ["widget:1", "widget:2"]
        await keeper.delist("widget", "1")
        assert await keeper.keys_of_type("widget") == ["widget:2"]

    @pytest.mark.asyncio
    async def test_missing_sets_read_empty(self, bank):
        assert await bank.bookkeeper.keys_of_type("gadget") == []
        assert await bank.bookkeeper.index_set("widget", "a", 1) == []

    @pytest.mark.asyncio
    async def test_discard_missing_is_noop(self, bank):
        await bank.bookkeeper.delist("widget", "1")
        await bank.bookkeeper.enlist("widget", "2")
        await bank.bookkeeper.delist("widget", "1")
        assert await bank.bookkeeper.keys_of_type("widget") == ["widget:2"]

    @pytest.mark.asyncio
    async def test_index_each_indexed_property(self, bank):
        keeper = bank.bookkeeper
        await keeper.index("widget", "1", {"a": 1, "owner": {"name": "ann"}, "b": 2})
        assert await keeper.index_set("widget", "a", 1) == ["widget:1"]
        assert await keeper.index_set("widget", "owner.name", "ann") == ["widget:1"]
        assert await keeper.index_set("widget", "b", 2) == []

    @pytest.mark.asyncio
    async def test_absent_property_indexed_as_undefined(self, bank):
        await bank.bookkeeper.index("widget", "1", {"b": 2})
        assert await bank.bookkeeper.index_set("widget", "a", MISSING) == ["widget:1"]

    @pytest.mark.asyncio
    async def test_deindex_with_current_value(self, bank):
        keeper = bank.bookkeeper
        await keeper.index("widget", "1", {"a": 1})
        await keeper.deindex("widget", "1", current={"a": 1})
        assert await keeper.index_set("widget", "a", 1) == []

    @pytest.mark.asyncio
    async def test_deindex_absent_record_is_noop(self, bank):
        await bank.bookkeeper.deindex("widget", "404")

    @pytest.mark.asyncio
    async def test_unindexed_type(self, bank):
        await bank.bookkeeper.index("gadget", "1", {"a": 1})
        assert await bank.bookkeeper.index_set("gadget", "a", 1) == []

    @pytest.mark.asyncio
    async def test_internal_types_are_skipped(self, bank):
        await bank.bookkeeper.enlist(KEYS_TYPE, "widget")
        assert await bank.bookkeeper.keys_of_type(KEYS_TYPE) == []

    @pytest.mark.asyncio
    async def test_non_list_set_reads_empty(self, bank):
        await bank.save(KEYS_TYPE, "widget", {"not": "a list"})
        assert await bank.bookkeeper.keys_of_type("widget") == []


class TestModes:
    """Tests for STRICT versus BEST_EFFORT bookkeeping."""

    @pytest.mark.asyncio
    async def test_best_effort_allows_duplicates(self, bank):
        await bank.bookkeeper.enlist("widget", "1")
        await bank.bookkeeper.enlist("widget", "1")
        assert await bank.bookkeeper.keys_of_type("widget") == ["widget:1", "widget:1"]
        await bank.bookkeeper.delist("widget", "1")
        assert await bank.bookkeeper.keys_of_type("widget") == ["widget:1"]

    @pytest.mark.asyncio
    async def test_strict_skips_duplicates(self, strict_bank):
        await strict_bank.bookkeeper.enlist("widget", "1")
        await strict_bank.bookkeeper.enlist("widget", "1")
        assert await strict_bank.bookkeeper.keys_of_type("widget") == ["widget:1"]

    @pytest.mark.asyncio
    async def test_strict_removes_every_occurrence(self, strict_bank):
        await strict_bank.append(KEYS_TYPE, "widget", "widget:1")
        await strict_bank.append(KEYS_TYPE, "widget", "widget:1")
        await strict_bank.bookkeeper.delist("widget", "1")
        assert await strict_bank.bookkeeper.keys_of_type("widget") == []
