"""
Cache key derivation.

Every record lives under one memcached key derived from its (type, id).
memcached keys are limited to 250 bytes of printable, non-space ASCII, so
ids that do not fit are replaced by a digest:

    widget:42                       literal form
    widget:hash:1B2M2Y8AsgTpgAmY7PhCfg   hashed form (MD5, URL-safe base64)

Invariants:
    - to_key() is a pure function of (type, id)
    - The hashed form is used iff the id has a byte outside 0x21-0x7E or
      the literal key would exceed MAX_KEY_LENGTH
    - Numeric ids map to the same key as their decimal string

How to change safely:
    - Keys are persisted in live caches and in bookkeeping sets; any change
      here orphans existing records
"""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Any

MAX_KEY_LENGTH = 250

# Reserved type prefix for bookkeeping records
INTERNAL_PREFIX = "_databank_"
KEYS_TYPE = INTERNAL_PREFIX + "keys"
INDEX_TYPE = INTERNAL_PREFIX + "index"


def id_to_str(id: Any) -> str:
    """Render a record id the way it appears in keys.

    Strings are used verbatim; other scalars use their JSON spelling, so
    ``1`` and ``"1"`` address the same record and ``True`` becomes ``true``.
    """
    if isinstance(id, str):
        return id
    if isinstance(id, float) and id.is_integer():
        return str(int(id))
    return json.dumps(id, separators=(",", ":"))


def is_legal_for_keys(idstr: str) -> bool:
    """True if every character is printable ASCII other than space."""
    return all(0x21 <= ord(c) <= 0x7E for c in idstr)


def hash_id(idstr: str) -> str:
    """MD5 digest of an id, base64 with + and / swapped for - and _, unpadded."""
    digest = hashlib.md5(idstr.encode("utf-8")).digest()
    return (
        base64.b64encode(digest)
        .decode("ascii")
        .replace("+", "-")
        .replace("/", "_")
        .rstrip("=")
    )


def to_key(type_name: str, id: Any) -> str:
    """Derive the cache key for a record."""
    idstr = id_to_str(id)
    if is_legal_for_keys(idstr) and len(type_name.encode("utf-8")) + len(idstr) + 1 <= MAX_KEY_LENGTH:
        return f"{type_name}:{idstr}"
    return f"{type_name}:hash:{hash_id(idstr)}"


def is_internal(type_name: str) -> bool:
    """Bookkeeping types are never enlisted or indexed."""
    return type_name.startswith(INTERNAL_PREFIX)
