"""
Symmetric authenticated encryption with AES-256-GCM.

Stateless helpers for callers that need secrecy under a shared 256-bit key
without any key agreement. Every call to `encrypt` draws a fresh random
96-bit nonce; nothing here tracks nonces, so reusing a (key, nonce) pair is
the caller's responsibility to avoid.

## Format

- Key: 32 bytes
- Nonce: 12 bytes (random, returned alongside the ciphertext)
- Ciphertext: plaintext length + 16-byte tag
"""

import os
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .types import (
    AEAD_KEY_SIZE,
    AEAD_NONCE_SIZE,
    AuthenticationFailed,
    EncodingError,
    InvalidKeyError,
)


def generate_key() -> bytes:
    """Generate a random 256-bit key."""
    return AESGCM.generate_key(bit_length=256)


def encrypt(key: bytes, plaintext: bytes) -> Tuple[bytes, bytes]:
    """
    Encrypt plaintext under a 256-bit key.

    Args:
        key: 32-byte key
        plaintext: Bytes to encrypt (may be empty)

    Returns:
        Tuple of (ciphertext, nonce); the ciphertext carries the 16-byte tag

    Raises:
        InvalidKeyError: If the key is not 32 bytes
    """
    aesgcm = AESGCM(_check_key(key))
    nonce = os.urandom(AEAD_NONCE_SIZE)
    ciphertext = aesgcm.encrypt(nonce, bytes(plaintext), None)
    return ciphertext, nonce


def decrypt(key: bytes, ciphertext: bytes, nonce: bytes) -> bytes:
    """
    Decrypt and authenticate ciphertext.

    Args:
        key: 32-byte key
        ciphertext: Ciphertext including tag
        nonce: The nonce returned by `encrypt`

    Returns:
        The plaintext

    Raises:
        InvalidKeyError: If the key is not 32 bytes
        AuthenticationFailed: If the key, nonce or ciphertext do not match
    """
    aesgcm = AESGCM(_check_key(key))
    try:
        return aesgcm.decrypt(bytes(nonce), bytes(ciphertext), None)
    except (InvalidTag, ValueError):
        raise AuthenticationFailed() from None


def encrypt_string(key: bytes, plaintext: str) -> Tuple[bytes, bytes]:
    """Encrypt a string as UTF-8."""
    return encrypt(key, plaintext.encode("utf-8"))


def decrypt_string(key: bytes, ciphertext: bytes, nonce: bytes) -> str:
    """
    Decrypt to a string.

    Raises:
        AuthenticationFailed: If decryption fails
        EncodingError: If the plaintext is not valid UTF-8
    """
    plaintext = decrypt(key, ciphertext, nonce)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise EncodingError(f"Decrypted data is not valid UTF-8: {e.reason}") from e


def _check_key(key: bytes) -> bytes:
    if len(key) != AEAD_KEY_SIZE:
        raise InvalidKeyError(f"Key must be {AEAD_KEY_SIZE} bytes, got {len(key)}")
    return bytes(key)
