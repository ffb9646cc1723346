"""X25519 key handling for nuntius."""

import hashlib
from typing import Tuple

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from .types import (
    PUBLIC_KEY_SIZE,
    SECRET_KEY_SIZE,
    InvalidKeyError,
    InvalidPublicKeyError,
)


def generate_keypair() -> Tuple[bytes, bytes]:
    """
    Generate a random X25519 key pair.

    Returns:
        Tuple of (secret_key, public_key), 32 raw bytes each
    """
    private_key = X25519PrivateKey.generate()
    secret_bytes = private_key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())
    return secret_bytes, public_key_to_bytes(private_key.public_key())


def public_key_from_secret(secret_key: bytes) -> bytes:
    """
    Compute the X25519 public key for a secret key.

    Args:
        secret_key: 32-byte secret key

    Returns:
        32-byte public key

    Raises:
        InvalidKeyError: If the secret key is not 32 bytes
    """
    if len(secret_key) != SECRET_KEY_SIZE:
        raise InvalidKeyError(
            f"Secret key must be {SECRET_KEY_SIZE} bytes, got {len(secret_key)}"
        )
    private_key = X25519PrivateKey.from_private_bytes(bytes(secret_key))
    return public_key_to_bytes(private_key.public_key())


def is_valid_keypair(secret_key: bytes, public_key: bytes) -> bool:
    """Check that public_key is the X25519 counterpart of secret_key."""
    if len(secret_key) != SECRET_KEY_SIZE or len(public_key) != PUBLIC_KEY_SIZE:
        return False
    return public_key_from_secret(secret_key) == bytes(public_key)


def validate_public_key(public_key: bytes) -> bytes:
    """
    Check a raw public key length and return it as immutable bytes.

    Raises:
        InvalidPublicKeyError: If the key is not 32 bytes
    """
    if not isinstance(public_key, (bytes, bytearray, memoryview)):
        raise InvalidPublicKeyError(
            f"Public key must be bytes, got {type(public_key).__name__}"
        )
    if len(public_key) != PUBLIC_KEY_SIZE:
        raise InvalidPublicKeyError(
            f"Public key must be {PUBLIC_KEY_SIZE} bytes, got {len(public_key)}"
        )
    return bytes(public_key)


def public_key_from_hex(text: str) -> bytes:
    """
    Decode a hex-encoded public key.

    Args:
        text: Hex string, expected to decode to exactly 32 bytes

    Returns:
        32-byte public key

    Raises:
        InvalidPublicKeyError: If the text is not hex or the wrong length
    """
    try:
        data = bytes.fromhex(text.strip())
    except (ValueError, AttributeError) as e:
        raise InvalidPublicKeyError(f"Public key is not valid hex: {e}") from e
    return validate_public_key(data)


def public_key_to_bytes(public_key: X25519PublicKey) -> bytes:
    """Convert X25519 public key to raw bytes."""
    return public_key.public_bytes(Encoding.Raw, PublicFormat.Raw)


def fingerprint(public_key: bytes) -> str:
    """
    Generate a human-readable fingerprint for a public key.

    The fingerprint is a truncated SHA-256 hash formatted for easy comparison
    when two people verify each other's keys out of band.

    Args:
        public_key: The public key (32 bytes)

    Returns:
        A fingerprint string like "A7B3 C9D1 E5F2 8A4B"
    """
    hash_bytes = hashlib.sha256(public_key).digest()

    hex_bytes = [f"{b:02X}" for b in hash_bytes[:8]]
    groups = [hex_bytes[i] + hex_bytes[i + 1] for i in range(0, 8, 2)]

    return " ".join(groups)
