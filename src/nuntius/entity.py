"""
Entity base class for records kept in the entity store.

An entity is any record with a store-assigned identifier and a type-scoped
key namespace. Identifiers take the form ``"<key_prefix>:<n>"`` and are
assigned once, on first save.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Optional, Type, TypeVar

from .types import SerializationError

E = TypeVar("E", bound="Entity")


class Entity(ABC):
    """Capability interface shared by identities, contacts and messages."""

    KEY_PREFIX: ClassVar[str] = ""

    id: Optional[str]

    def set_id(self, id: str) -> None:
        """
        Assign the storage identifier.

        Raises:
            ValueError: If a different id has already been assigned
        """
        current = getattr(self, "id", None)
        if current is not None and current != id:
            raise ValueError(
                f"{type(self).__name__} already has id {current!r}, cannot change it to {id!r}"
            )
        self.id = id

    @classmethod
    def key_prefix(cls) -> str:
        """Key namespace for this entity type."""
        return cls.KEY_PREFIX

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict, including the id when set."""
        ...

    @classmethod
    @abstractmethod
    def from_dict(cls: Type[E], data: dict[str, Any]) -> E:
        """Deserialize from a dict produced by `to_dict`."""
        ...

    def to_json(self) -> str:
        """Serialize to JSON - the id is included if present."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_json(cls: Type[E], text: str) -> E:
        """Deserialize from JSON - the id is restored if present."""
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, TypeError) as e:
            raise SerializationError(f"Invalid {cls.__name__} JSON: {e}") from e
        if not isinstance(data, dict):
            raise SerializationError(f"Invalid {cls.__name__} JSON: expected an object")
        try:
            return cls.from_dict(data)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Invalid {cls.__name__} record: {e}") from e


# Field helpers shared by the concrete entities


def require_field(data: dict[str, Any], name: str, owner: str) -> Any:
    try:
        return data[name]
    except KeyError:
        raise SerializationError(f"{owner} record is missing field {name!r}") from None


def hex_field(data: dict[str, Any], name: str, owner: str, size: Optional[int] = None) -> bytes:
    """Read a hex-encoded bytes field, checking its length when size is given."""
    value = require_field(data, name, owner)
    return decode_hex(value, name, owner, size)


def decode_hex(value: Any, name: str, owner: str, size: Optional[int] = None) -> bytes:
    if not isinstance(value, str):
        raise SerializationError(f"{owner} field {name!r} must be a hex string")
    try:
        raw = bytes.fromhex(value)
    except ValueError as e:
        raise SerializationError(f"{owner} field {name!r} is not valid hex: {e}") from e
    if size is not None and len(raw) != size:
        raise SerializationError(
            f"{owner} field {name!r} must be {size} bytes, got {len(raw)}"
        )
    return raw
