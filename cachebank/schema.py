"""
Schema of indexed properties per record type.

The schema is a soft one: it does not constrain record values, it only
says which properties of each type get an index set. Properties are
dot-separated paths into the (JSON-shaped) record value:

    types:
      widget:
        indices: [color, owner.name]

Invariants:
    - A Schema is immutable once built
    - Types absent from the schema have no indexed properties
    - deep_property() never raises; a missing path yields MISSING

How to change safely:
    - Adding an index to an existing type only covers records written
      after the change; older records are absent from its index sets
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Tuple

import yaml

logger = logging.getLogger(__name__)


class _Missing:
    """Sentinel for a property path that does not resolve."""

    _instance = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def split_path(path: str) -> Tuple[str, ...]:
    """Split a dotted property path into its keys."""
    return tuple(path.split("."))


def deep_property(value: Any, path: str) -> Any:
    """Resolve a dotted path against a JSON-shaped value.

    Mapping segments look up keys; list segments must be decimal indices.

    >>> deep_property({"owner": {"name": "ann"}}, "owner.name")
    'ann'
    >>> deep_property({"tags": ["a", "b"]}, "tags.1")
    'b'
    >>> deep_property({"a": 1}, "b.c")
    MISSING
    """
    current = value
    for segment in split_path(path):
        if isinstance(current, Mapping):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif isinstance(current, list):
            if not segment.isdigit() or int(segment) >= len(current):
                return MISSING
            current = current[int(segment)]
        else:
            return MISSING
    return current


@dataclass(frozen=True)
class TypeDescriptor:
    """Indexing descriptor for one record type.

    Attributes:
        indices: Property paths that get an index set
    """

    indices: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TypeDescriptor:
        indices = data.get("indices", ())
        if isinstance(indices, str) or not isinstance(indices, Iterable):
            raise ValueError(f"indices must be a list of property paths, got {indices!r}")
        paths = tuple(indices)
        for path in paths:
            if not isinstance(path, str) or not path or "" in split_path(path):
                raise ValueError(f"Invalid property path: {path!r}")
        return cls(indices=paths)

    def to_dict(self) -> Dict[str, Any]:
        return {"indices": list(self.indices)}


def _is_types_wrapper(data: Mapping[str, Any]) -> bool:
    """True for ``{"types": {...}}``; false when "types" is itself a record type."""
    if set(data) != {"types"}:
        return False
    inner = data["types"]
    return isinstance(inner, Mapping) and "indices" not in inner


@dataclass(frozen=True)
class Schema:
    """Mapping of type name to TypeDescriptor.

    Example:
        >>> schema = Schema.from_dict({"widget": {"indices": ["a"]}})
        >>> schema.indices("widget")
        ('a',)
        >>> schema.is_indexed("widget", "b")
        False
    """

    types: Mapping[str, TypeDescriptor] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "types", MappingProxyType(dict(self.types)))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> Schema:
        """Build a schema from ``{"types": {...}}`` or a bare type mapping."""
        if not data:
            return cls()
        if _is_types_wrapper(data):
            data = data["types"]
        types = {}
        for type_name, descriptor in data.items():
            if isinstance(descriptor, TypeDescriptor):
                types[type_name] = descriptor
            elif isinstance(descriptor, Mapping):
                types[type_name] = TypeDescriptor.from_dict(descriptor)
            else:
                raise ValueError(
                    f"Schema entry for type {type_name!r} must be a mapping, "
                    f"got {type(descriptor).__name__}"
                )
        return cls(types=types)

    def to_dict(self) -> Dict[str, Any]:
        return {"types": {name: desc.to_dict() for name, desc in sorted(self.types.items())}}

    def indices(self, type_name: str) -> Tuple[str, ...]:
        descriptor = self.types.get(type_name)
        return descriptor.indices if descriptor else ()

    def is_indexed(self, type_name: str, path: str) -> bool:
        return path in self.indices(type_name)


def parse_yaml(yaml_str: str) -> Schema:
    """Parse a schema from a YAML string."""
    data = yaml.safe_load(yaml_str)
    return Schema.from_dict(data or {})


def parse_json(json_str: str) -> Schema:
    """Parse a schema from a JSON string."""
    data = json.loads(json_str)
    return Schema.from_dict(data or {})


def load_schema(path: str | Path) -> Schema:
    """Load a schema file; ``.json`` files are JSON, anything else YAML.

    Raises:
        OSError: If the file cannot be read
        ValueError: If the file does not describe a valid schema
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    try:
        schema = parse_json(text) if path.suffix == ".json" else parse_yaml(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Cannot parse schema file {path}: {e}") from e
    logger.info(
        "Schema loaded",
        extra={"path": str(path), "types": sorted(schema.types)},
    )
    return schema
