"""
Exchange identities and the envelope protocol.

An ExchangeIdentity owns a long-term X25519 key pair and the set of peer
public keys it has exchanged messages with. Messages are sealed with a NaCl
box (X25519 + XSalsa20-Poly1305) derived from our secret key and the peer's
public key, under a fresh random 24-byte nonce.

Both `encrypt_for` and `decrypt_from` add the peer to the known-contacts set
if it is not already there. This is how identities discover correspondents;
callers that persist identities should save them again after either call.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from nacl.exceptions import CryptoError
from nacl.public import Box, PrivateKey, PublicKey
from nacl.utils import random as nacl_random

from .contact import Contact
from .entity import Entity, decode_hex, hex_field, require_field
from .envelope import EncryptedEnvelope
from .keys import fingerprint, generate_keypair, is_valid_keypair, validate_public_key
from .types import (
    BOX_NONCE_SIZE,
    PUBLIC_KEY_SIZE,
    SECRET_KEY_SIZE,
    DecryptionFailed,
    EncodingError,
    InvalidKeyError,
    InvalidKeyPairError,
    InvalidPublicKeyError,
    MalformedEnvelope,
    SerializationError,
)

logger = logging.getLogger(__name__)


@dataclass
class ExchangeIdentity(Entity):
    """
    A party that can send and receive encrypted envelopes.

    Attributes:
        name: Display name.
        secret_key: 32-byte X25519 secret key.
        public_key: 32-byte X25519 public key, the counterpart of secret_key.
        description: Free-form description.
        member_count: Number of members the owner reports for this room.
        known_contacts: Public keys this identity has exchanged messages with.
        id: Storage identifier, assigned on first save.

    Instances are plain value holders and are not safe to mutate from several
    threads at once.
    """

    KEY_PREFIX = "room"

    name: str
    secret_key: bytes = field(repr=False)
    public_key: bytes
    description: str = ""
    member_count: int = 0
    known_contacts: set[bytes] = field(default_factory=set)
    id: Optional[str] = None

    @classmethod
    def new(cls, name: str) -> "ExchangeIdentity":
        """Create an identity with a freshly generated key pair."""
        secret_key, public_key = generate_keypair()
        return cls(name=name, secret_key=secret_key, public_key=public_key)

    @classmethod
    def new_with_contacts(
        cls, name: str, public_keys: Iterable[bytes]
    ) -> "ExchangeIdentity":
        """Create an identity and register the given peers up front."""
        identity = cls.new(name)
        for public_key in public_keys:
            identity.add_contact(public_key)
        return identity

    @classmethod
    def from_values(
        cls,
        id: Optional[str],
        name: str,
        description: str,
        member_count: int,
        secret_key: bytes,
        public_key: bytes,
        known_contacts: Iterable[bytes],
        verify: bool = True,
    ) -> "ExchangeIdentity":
        """
        Rebuild an identity from persisted values.

        Args:
            id: Storage identifier, if any.
            name: Display name.
            description: Free-form description.
            member_count: Reported member count.
            secret_key: 32-byte secret key.
            public_key: 32-byte public key.
            known_contacts: Peer public keys (32 bytes each).
            verify: Check that public_key is derived from secret_key.

        Raises:
            InvalidKeyError: If the secret key is not 32 bytes.
            InvalidPublicKeyError: If a public key is not 32 bytes.
            InvalidKeyPairError: If verify is set and the keys do not match.
        """
        if len(secret_key) != SECRET_KEY_SIZE:
            raise InvalidKeyError(
                f"Secret key must be {SECRET_KEY_SIZE} bytes, got {len(secret_key)}"
            )
        public_key = validate_public_key(public_key)
        if verify and not is_valid_keypair(secret_key, public_key):
            raise InvalidKeyPairError("Public key does not match secret key")

        return cls(
            id=id,
            name=name,
            description=description,
            member_count=member_count,
            secret_key=bytes(secret_key),
            public_key=public_key,
            known_contacts={validate_public_key(k) for k in known_contacts},
        )

    # Known contacts

    def add_contact(self, public_key: bytes) -> None:
        """Add a peer public key to the known-contacts set (idempotent)."""
        key = validate_public_key(public_key)
        if key not in self.known_contacts:
            self.known_contacts.add(key)
            logger.debug("Identity %r learned contact %s", self.name, fingerprint(key))

    def is_known_contact(self, public_key: bytes) -> bool:
        return bytes(public_key) in self.known_contacts

    def contact_count(self) -> int:
        return len(self.known_contacts)

    def known_contacts_list(self) -> list[bytes]:
        """Known peer keys in byte order."""
        return sorted(self.known_contacts)

    # Directory lookups. These inform policy above the protocol and are never
    # consulted by encrypt_for / decrypt_from.

    def known_contact_details(self, all_contacts: Iterable[Contact]) -> list[Contact]:
        """Directory records for every known peer that has one."""
        return Contact.find_by_public_keys(all_contacts, self.known_contacts)

    def contact_details(
        self, all_contacts: Iterable[Contact], public_key: bytes
    ) -> Optional[Contact]:
        """Directory record for a known peer, or None if unknown or absent."""
        if not self.is_known_contact(public_key):
            return None
        return Contact.find_by_public_key(all_contacts, public_key)

    def is_trusted_contact(self, all_contacts: Iterable[Contact], public_key: bytes) -> bool:
        """True if the peer is known and has a directory record that is not blocked."""
        contact = self.contact_details(all_contacts, public_key)
        return contact is not None and not contact.blocked

    # Envelope protocol

    def _box(self, other_public_key: bytes) -> Box:
        # A new box per message; shared secrets are never cached.
        return Box(PrivateKey(self.secret_key), PublicKey(other_public_key))

    def encrypt_for(self, recipient_public_key: bytes, plaintext: bytes) -> EncryptedEnvelope:
        """
        Encrypt a message for another identity.

        Adds the recipient to known contacts if needed.

        Args:
            recipient_public_key: Recipient's 32-byte public key.
            plaintext: Message bytes.

        Returns:
            EncryptedEnvelope carrying our public key, the ciphertext and nonce.

        Raises:
            InvalidPublicKeyError: If the recipient key is not 32 bytes or is
                unusable for key agreement.
        """
        recipient = validate_public_key(recipient_public_key)
        if not self.is_known_contact(recipient):
            self.add_contact(recipient)

        try:
            box = self._box(recipient)
        except CryptoError as e:
            raise InvalidPublicKeyError("Public key cannot be used for key agreement") from e
        nonce = nacl_random(BOX_NONCE_SIZE)
        sealed = box.encrypt(bytes(plaintext), nonce)

        return EncryptedEnvelope(
            sender_public_key=self.public_key,
            ciphertext=sealed.ciphertext,
            nonce=nonce,
        )

    def encrypt_string_for(self, recipient_public_key: bytes, plaintext: str) -> EncryptedEnvelope:
        """Encrypt a string message as UTF-8."""
        return self.encrypt_for(recipient_public_key, plaintext.encode("utf-8"))

    def decrypt_from(self, envelope: EncryptedEnvelope) -> bytes:
        """
        Decrypt a message from another identity.

        Adds the sender to known contacts if needed, even when decryption
        subsequently fails.

        Args:
            envelope: The envelope to open.

        Returns:
            The plaintext bytes.

        Raises:
            MalformedEnvelope: If the sender key or nonce has the wrong length.
            DecryptionFailed: If the envelope cannot be opened with our key,
                for whatever reason.
        """
        if len(envelope.sender_public_key) != PUBLIC_KEY_SIZE:
            raise MalformedEnvelope(
                f"Sender public key must be {PUBLIC_KEY_SIZE} bytes, "
                f"got {len(envelope.sender_public_key)}"
            )
        sender = bytes(envelope.sender_public_key)
        if not self.is_known_contact(sender):
            self.add_contact(sender)

        if len(envelope.nonce) != BOX_NONCE_SIZE:
            raise MalformedEnvelope(
                f"Invalid nonce length: {len(envelope.nonce)} bytes (expected {BOX_NONCE_SIZE})"
            )

        try:
            box = self._box(sender)
            return box.decrypt(bytes(envelope.ciphertext), bytes(envelope.nonce))
        except CryptoError:
            raise DecryptionFailed() from None

    def decrypt_string_from(self, envelope: EncryptedEnvelope) -> str:
        """
        Decrypt a message to a string.

        Raises:
            EncodingError: If the plaintext is not valid UTF-8.
        """
        plaintext = self.decrypt_from(envelope)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EncodingError(f"Decrypted data is not valid UTF-8: {e.reason}") from e

    # Serialization

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.id is not None:
            data["id"] = self.id
        data["name"] = self.name
        data["description"] = self.description
        data["member_count"] = self.member_count
        data["secret_key"] = self.secret_key.hex()
        data["public_key"] = self.public_key.hex()
        data["known_contacts"] = [k.hex() for k in self.known_contacts_list()]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExchangeIdentity":
        owner = cls.__name__
        contacts = data.get("known_contacts", [])
        if not isinstance(contacts, list):
            raise SerializationError(f"{owner} field 'known_contacts' must be a list")
        try:
            return cls.from_values(
                id=data.get("id"),
                name=require_field(data, "name", owner),
                description=data.get("description", ""),
                member_count=int(data.get("member_count", 0)),
                secret_key=hex_field(data, "secret_key", owner, SECRET_KEY_SIZE),
                public_key=hex_field(data, "public_key", owner, PUBLIC_KEY_SIZE),
                known_contacts=[
                    decode_hex(k, "known_contacts", owner, PUBLIC_KEY_SIZE) for k in contacts
                ],
            )
        except InvalidKeyError as e:
            raise SerializationError(f"{owner} record has inconsistent keys: {e}") from e
