"""Contact directory records."""

import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from .entity import Entity, hex_field, require_field
from .keys import fingerprint, validate_public_key
from .types import PUBLIC_KEY_SIZE, SerializationError


def current_timestamp() -> int:
    """Current Unix time in seconds."""
    return int(time.time())


@dataclass
class Contact(Entity):
    """
    A person in the user's address book.

    Holds display metadata and trust flags for a correspondent. This is
    separate from the raw key set an `ExchangeIdentity` tracks: an identity
    can know a key with no directory entry and vice versa. The `verified` and
    `blocked` flags inform higher-level decisions only; encryption never
    consults them.
    """

    KEY_PREFIX = "contact"

    name: str
    public_key: bytes  # 32 bytes
    nickname: Optional[str] = None
    email: Optional[str] = None
    verified: bool = False
    blocked: bool = False
    created_at: int = field(default_factory=current_timestamp)
    last_seen: Optional[int] = None
    id: Optional[str] = None

    def __post_init__(self) -> None:
        self.public_key = validate_public_key(self.public_key)

    @classmethod
    def new(cls, name: str, public_key: bytes) -> "Contact":
        """Create a contact with default flags."""
        return cls(name=name, public_key=public_key)

    def set_nickname(self, nickname: Optional[str]) -> None:
        self.nickname = nickname

    def set_email(self, email: Optional[str]) -> None:
        self.email = email

    def set_verified(self, verified: bool) -> None:
        self.verified = verified

    def set_blocked(self, blocked: bool) -> None:
        self.blocked = blocked

    def update_last_seen(self) -> None:
        self.last_seen = current_timestamp()

    def display_name(self) -> str:
        """Nickname if set, otherwise the name."""
        if self.nickname is not None:
            return self.nickname
        return self.name

    def fingerprint(self) -> str:
        """Short fingerprint of the contact's public key."""
        return fingerprint(self.public_key)

    # Directory queries

    @staticmethod
    def find_by_public_key(
        contacts: Iterable["Contact"], public_key: bytes
    ) -> Optional["Contact"]:
        """First contact whose key matches exactly, or None."""
        key = bytes(public_key)
        for contact in contacts:
            if contact.public_key == key:
                return contact
        return None

    @staticmethod
    def find_by_public_keys(
        contacts: Iterable["Contact"], public_keys: Iterable[bytes]
    ) -> list["Contact"]:
        """Contacts whose key is in the given set, in directory order."""
        keys = {bytes(k) for k in public_keys}
        return [c for c in contacts if c.public_key in keys]

    @staticmethod
    def filter_non_blocked(contacts: Iterable["Contact"]) -> list["Contact"]:
        return [c for c in contacts if not c.blocked]

    @staticmethod
    def filter_verified(contacts: Iterable["Contact"]) -> list["Contact"]:
        return [c for c in contacts if c.verified]

    # Serialization

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.id is not None:
            data["id"] = self.id
        data["name"] = self.name
        data["public_key"] = self.public_key.hex()
        if self.nickname is not None:
            data["nickname"] = self.nickname
        if self.email is not None:
            data["email"] = self.email
        data["verified"] = self.verified
        data["blocked"] = self.blocked
        data["created_at"] = self.created_at
        data["last_seen"] = self.last_seen
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Contact":
        owner = cls.__name__
        name = require_field(data, "name", owner)
        if not isinstance(name, str):
            raise SerializationError(f"{owner} field 'name' must be a string")
        return cls(
            id=data.get("id"),
            name=name,
            public_key=hex_field(data, "public_key", owner, PUBLIC_KEY_SIZE),
            nickname=data.get("nickname"),
            email=data.get("email"),
            verified=bool(require_field(data, "verified", owner)),
            blocked=bool(require_field(data, "blocked", owner)),
            created_at=int(require_field(data, "created_at", owner)),
            last_seen=data.get("last_seen"),
        )
