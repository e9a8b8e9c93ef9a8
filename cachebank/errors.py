"""
Error types for cachebank.

This module defines the exceptions raised by the record store:
- DatabankError: Base exception
- NotConnectedError / AlreadyConnectedError: connection contract misuse
- AlreadyExistsError: create on a live key
- NoSuchThingError: read/update/delete of an absent key
- NotInListError: list removal of an item that is not there
- BookkeepingError: a key or index set entry could not be added
- ValueEncodingError: value cannot be frozen or stored bytes cannot be melted

Transport and protocol errors from the cache client are CacheError
subclasses (see cachebank.cache.base) and are not wrapped here.

Invariants:
    - All store errors inherit from DatabankError
    - Errors carry the record type and id they refer to
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DatabankError(Exception):
    """Base exception for all record store errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "DATABANK_ERROR"
        self.details = details or {}


class NotConnectedError(DatabankError):
    """Operation attempted before connect() or after disconnect()."""

    def __init__(self, message: str = "Not connected") -> None:
        super().__init__(message, code="NOT_CONNECTED")


class AlreadyConnectedError(DatabankError):
    """connect() called on a bank that is already connected."""

    def __init__(self, message: str = "Already connected") -> None:
        super().__init__(message, code="ALREADY_CONNECTED")


class AlreadyExistsError(DatabankError):
    """A record with this type and id already exists.

    Raised by create() when the conditional add loses to a live key.
    """

    def __init__(self, type_name: str, id: Any) -> None:
        super().__init__(
            f"Already have a(n) {type_name} with id {id}",
            code="ALREADY_EXISTS",
            details={"type": type_name, "id": id},
        )
        self.type_name = type_name
        self.id = id


class NoSuchThingError(DatabankError):
    """No record with this type and id.

    Raised when:
    - read() misses
    - update() or delete() target an absent key
    - incr()/decr() target an absent counter
    """

    def __init__(self, type_name: str, id: Any) -> None:
        super().__init__(
            f"No such {type_name} with id {id}",
            code="NO_SUCH_THING",
            details={"type": type_name, "id": id},
        )
        self.type_name = type_name
        self.id = id


class NotInListError(DatabankError):
    """remove() was asked to drop an item the stored list does not hold."""

    def __init__(self, type_name: str, id: Any, item: Any) -> None:
        super().__init__(
            f"Item {item!r} not in list {type_name} with id {id}",
            code="NOT_IN_LIST",
            details={"type": type_name, "id": id, "item": item},
        )
        self.type_name = type_name
        self.id = id
        self.item = item


class ValueEncodingError(DatabankError):
    """A value could not be frozen, or stored bytes could not be melted."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="VALUE_ENCODING")


class BookkeepingError(DatabankError):
    """A keys-of-type or index set could not be updated.

    The record itself was written; only its bookkeeping entry is missing,
    so searches may not find it until it is saved again.
    """

    def __init__(self, set_type: str, set_id: str, key: str) -> None:
        super().__init__(
            f"Could not add {key} to {set_type} {set_id}",
            code="BOOKKEEPING_FAILED",
            details={"set_type": set_type, "set_id": set_id, "key": key},
        )
        self.set_type = set_type
        self.set_id = set_id
        self.key = key
