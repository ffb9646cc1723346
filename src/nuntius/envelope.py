"""Encrypted envelope and its wire encoding."""

from dataclasses import dataclass, field
from typing import Any, Optional

from .entity import Entity, hex_field
from .types import (
    LENGTH_PREFIX_SIZE,
    MIN_ENVELOPE_SIZE,
    PUBLIC_KEY_SIZE,
    MalformedEnvelope,
)


@dataclass
class EncryptedEnvelope(Entity):
    """
    A sealed message from one exchange identity to another.

    Produced by `ExchangeIdentity.encrypt_for` and consumed by
    `ExchangeIdentity.decrypt_from`. The sender's public key travels with the
    ciphertext so the recipient can derive the matching box.
    """

    KEY_PREFIX = "encrypted_message"

    sender_public_key: bytes  # 32 bytes
    ciphertext: bytes  # message + 16-byte tag
    nonce: bytes  # 24 bytes
    id: Optional[str] = field(default=None, compare=False)

    def to_bytes(self) -> bytes:
        """Encode to the length-prefixed wire format."""
        return encode_envelope(self)

    @classmethod
    def from_bytes(cls, data: bytes) -> "EncryptedEnvelope":
        """Decode from the length-prefixed wire format."""
        return decode_envelope(data)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.id is not None:
            data["id"] = self.id
        data["sender_public_key"] = bytes(self.sender_public_key).hex()
        data["ciphertext"] = bytes(self.ciphertext).hex()
        data["nonce"] = bytes(self.nonce).hex()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EncryptedEnvelope":
        owner = cls.__name__
        return cls(
            id=data.get("id"),
            sender_public_key=hex_field(data, "sender_public_key", owner, PUBLIC_KEY_SIZE),
            ciphertext=hex_field(data, "ciphertext", owner),
            nonce=hex_field(data, "nonce", owner),
        )


def encode_envelope(envelope: EncryptedEnvelope) -> bytes:
    """
    Encode an envelope to bytes.

    Format (40-byte minimum):
        [0-31]          senderPublicKey (32 bytes)
        [32-35]         nonceLength (4 bytes, big-endian uint32)
        [36..n]         nonce (nonceLength bytes)
        [n..n+4]        ciphertextLength (4 bytes, big-endian uint32)
        [n+4..]         ciphertext (ciphertextLength bytes)

    Args:
        envelope: EncryptedEnvelope to encode

    Returns:
        Encoded bytes

    Raises:
        MalformedEnvelope: If the sender key is not 32 bytes
    """
    if len(envelope.sender_public_key) != PUBLIC_KEY_SIZE:
        raise MalformedEnvelope(
            f"Sender public key must be {PUBLIC_KEY_SIZE} bytes, "
            f"got {len(envelope.sender_public_key)}"
        )

    nonce = bytes(envelope.nonce)
    ciphertext = bytes(envelope.ciphertext)

    return (
        bytes(envelope.sender_public_key)
        + len(nonce).to_bytes(LENGTH_PREFIX_SIZE, byteorder="big")
        + nonce
        + len(ciphertext).to_bytes(LENGTH_PREFIX_SIZE, byteorder="big")
        + ciphertext
    )


def decode_envelope(data: bytes) -> EncryptedEnvelope:
    """
    Decode bytes into an envelope.

    The declared lengths must consume the input exactly; nothing is
    truncated or padded.

    Args:
        data: Encoded envelope bytes

    Returns:
        Decoded EncryptedEnvelope (without an id)

    Raises:
        MalformedEnvelope: If data is too short or the lengths are inconsistent
    """
    data = bytes(data)
    if len(data) < MIN_ENVELOPE_SIZE:
        raise MalformedEnvelope(
            f"Data too short: {len(data)} bytes (minimum {MIN_ENVELOPE_SIZE})"
        )

    offset = 0
    sender_public_key = data[offset : offset + PUBLIC_KEY_SIZE]
    offset += PUBLIC_KEY_SIZE

    nonce_len = int.from_bytes(data[offset : offset + LENGTH_PREFIX_SIZE], byteorder="big")
    offset += LENGTH_PREFIX_SIZE

    if offset + nonce_len + LENGTH_PREFIX_SIZE > len(data):
        raise MalformedEnvelope(f"Declared nonce length {nonce_len} exceeds available data")

    nonce = data[offset : offset + nonce_len]
    offset += nonce_len

    ciphertext_len = int.from_bytes(data[offset : offset + LENGTH_PREFIX_SIZE], byteorder="big")
    offset += LENGTH_PREFIX_SIZE

    if offset + ciphertext_len != len(data):
        raise MalformedEnvelope(
            f"Declared ciphertext length {ciphertext_len} does not match "
            f"remaining {len(data) - offset} bytes"
        )

    ciphertext = data[offset:]

    return EncryptedEnvelope(
        sender_public_key=sender_public_key,
        ciphertext=ciphertext,
        nonce=nonce,
    )
