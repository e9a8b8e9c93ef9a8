"""
Value encoding ("freeze") and decoding ("melt").

memcached stores byte strings. Scalars and objects are stored as compact
JSON. Lists get their own encoding so that a stored list can grow with a
single atomic append/prepend instead of a read-modify-write:

    freeze(["a", 1])       ->  \\x1f"a"\\x1f1
    freeze([])             ->  \\x1f
    freeze([["a"], 2])     ->  \\x1f\\x1e"\\u001f\\"a\\""\\x1f2

A list is the separator SEP followed by its items joined with SEP.
An item that is itself a list is frozen, wrapped as a JSON string and
marked with NEST, so its separators are escaped and cannot be confused
with the outer ones.

Invariants:
    - melt(freeze(v)) == v for all JSON-representable v (tuples melt to lists)
    - JSON output never contains a raw SEP or NEST byte (json escapes all
      control characters)
    - No list item encodes to the empty string, so empty segments are
      skipped; appending to a frozen empty list yields a one-item list
    - melt(b"") and melt(None) return the empty-string sentinel ""

How to change safely:
    - Frozen values live in caches; keep melt() able to read every format
      freeze() has ever produced
"""

from __future__ import annotations

import json
from typing import Any, Optional, Union

from .errors import ValueEncodingError

SEP = "\x1f"
NEST = "\x1e"


def _dumps(value: Any) -> str:
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise ValueEncodingError(f"Cannot freeze value {value!r}: {e}") from e


def _loads(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueEncodingError(f"Cannot melt value {raw[:64]!r}: {e}") from e


def _freeze_item(item: Any) -> str:
    if isinstance(item, (list, tuple)):
        return NEST + _dumps(freeze(item))
    return _dumps(item)


def _melt_item(raw: str) -> Any:
    if raw.startswith(NEST):
        return melt(_loads(raw[1:]))
    return _loads(raw)


def freeze(value: Any) -> str:
    """Encode a value for storage."""
    if isinstance(value, (list, tuple)):
        return SEP + SEP.join(_freeze_item(item) for item in value)
    return _dumps(value)


def freeze_item(item: Any) -> str:
    """Encode one list element as it is appended or prepended to a stored list."""
    return SEP + _freeze_item(item)


def melt(raw: Optional[Union[str, bytes]]) -> Any:
    """Decode a stored value."""
    if not raw:
        return ""
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValueEncodingError(f"Stored value is not UTF-8: {e}") from e
    if raw.startswith(SEP):
        return [_melt_item(part) for part in raw[1:].split(SEP) if part]
    return _loads(raw)
