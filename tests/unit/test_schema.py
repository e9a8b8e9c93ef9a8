"""
Unit tests for the indexing schema.

Tests cover:
- Building schemas from mappings
- Deep property lookup
- Loading YAML and JSON schema files
"""

import json

import pytest

from cachebank.schema import (
    MISSING,
    Schema,
    TypeDescriptor,
    deep_property,
    load_schema,
    parse_yaml,
)


class TestSchema:
    """Tests for Schema and TypeDescriptor."""

    def test_from_bare_mapping(self):
        schema = Schema.from_dict({"widget": {"indices": ["a", "owner.name"]}})
        assert schema.indices("widget") == ("a", "owner.name")
        assert schema.is_indexed("widget", "owner.name")
        assert not schema.is_indexed("widget", "b")

    def test_from_types_section(self):
        schema = Schema.from_dict({"types": {"widget": {"indices": ["a"]}}})
        assert schema.indices("widget") == ("a",)

    def test_type_named_types_in_bare_mapping(self):
        schema = Schema.from_dict(
            {"types": {"indices": ["kind"]}, "widget": {"indices": ["a"]}}
        )
        assert schema.indices("types") == ("kind",)
        assert schema.indices("widget") == ("a",)

    def test_sole_type_named_types(self):
        schema = Schema.from_dict({"types": {"indices": ["kind"]}})
        assert schema.indices("types") == ("kind",)

    def test_wrapped_type_named_types(self):
        data = {"types": {"types": {"indices": ["kind"]}}}
        schema = Schema.from_dict(data)
        assert schema.indices("types") == ("kind",)
        assert schema.to_dict() == data

    def test_unknown_type_has_no_indices(self):
        assert Schema().indices("anything") == ()
        assert Schema.from_dict(None).types == {}

    def test_type_without_indices(self):
        schema = Schema.from_dict({"log": {}})
        assert schema.indices("log") == ()

    def test_schema_is_read_only(self):
        schema = Schema.from_dict({"widget": {"indices": ["a"]}})
        with pytest.raises(TypeError):
            schema.types["gadget"] = TypeDescriptor(indices=("b",))

    def test_invalid_entries(self):
        with pytest.raises(ValueError):
            Schema.from_dict({"widget": ["a"]})
        with pytest.raises(ValueError):
            Schema.from_dict({"widget": {"indices": "a"}})
        with pytest.raises(ValueError):
            Schema.from_dict({"widget": {"indices": ["a..b"]}})

    def test_to_dict_round_trip(self):
        data = {"types": {"gadget": {"indices": ["x"]}, "widget": {"indices": ["a", "b"]}}}
        assert Schema.from_dict(data).to_dict() == data


class TestDeepProperty:
    """Tests for deep_property()."""

    def test_top_level(self):
        assert deep_property({"a": 1}, "a") == 1

    def test_nested(self):
        assert deep_property({"owner": {"name": "ann"}}, "owner.name") == "ann"

    def test_list_index(self):
        assert deep_property({"tags": ["x", "y"]}, "tags.1") == "y"

    def test_missing(self):
        assert deep_property({"a": 1}, "b") is MISSING
        assert deep_property({"a": 1}, "a.b") is MISSING
        assert deep_property({"tags": ["x"]}, "tags.5") is MISSING
        assert deep_property("scalar", "a") is MISSING

    def test_none_is_not_missing(self):
        assert deep_property({"a": None}, "a") is None


class TestLoadSchema:
    """Tests for schema files."""

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "schema.yaml"
        path.write_text("types:\n  widget:\n    indices: [a, owner.name]\n")
        schema = load_schema(path)
        assert schema.indices("widget") == ("a", "owner.name")

    def test_load_json(self, tmp_path):
        path = tmp_path / "schema.json"
        path.write_text(json.dumps({"widget": {"indices": ["a"]}}))
        assert load_schema(path).indices("widget") == ("a",)

    def test_load_invalid(self, tmp_path):
        path = tmp_path / "schema.yaml"
        path.write_text("types: [unclosed\n")
        with pytest.raises(ValueError):
            load_schema(path)

    def test_empty_yaml(self):
        assert parse_yaml("").types == {}
