"""
nuntius - End-to-end encrypted messaging primitives

Python implementation of per-identity X25519 exchange boxes, an AES-256-GCM
utility, and a persistent entity store for identities, contacts and messages.
"""

import logging

from .keys import (
    generate_keypair,
    public_key_from_secret,
    is_valid_keypair,
    public_key_from_hex,
    fingerprint,
)
from .aead import (
    generate_key,
    encrypt,
    decrypt,
    encrypt_string,
    decrypt_string,
)
from .entity import Entity
from .envelope import EncryptedEnvelope, encode_envelope, decode_envelope
from .identity import ExchangeIdentity
from .contact import Contact
from .user_data import UserData
from .storage import (
    Database,
    DatabaseConfig,
    default_database,
    close_default_database,
)
from .types import (
    PUBLIC_KEY_SIZE,
    SECRET_KEY_SIZE,
    AEAD_KEY_SIZE,
    AEAD_NONCE_SIZE,
    BOX_NONCE_SIZE,
    MIN_ENVELOPE_SIZE,
    NuntiusError,
    CryptographicFailure,
    AuthenticationFailed,
    DecryptionFailed,
    EncodingError,
    MalformedInput,
    MalformedEnvelope,
    InvalidPublicKeyError,
    InvalidKeyError,
    InvalidKeyPairError,
    StorageError,
    SerializationError,
    NotFoundError,
    MissingIdentifierError,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    # Keys
    "generate_keypair",
    "public_key_from_secret",
    "is_valid_keypair",
    "public_key_from_hex",
    "fingerprint",
    # AEAD
    "generate_key",
    "encrypt",
    "decrypt",
    "encrypt_string",
    "decrypt_string",
    # Entities
    "Entity",
    "EncryptedEnvelope",
    "encode_envelope",
    "decode_envelope",
    "ExchangeIdentity",
    "Contact",
    "UserData",
    # Storage
    "Database",
    "DatabaseConfig",
    "default_database",
    "close_default_database",
    # Constants
    "PUBLIC_KEY_SIZE",
    "SECRET_KEY_SIZE",
    "AEAD_KEY_SIZE",
    "AEAD_NONCE_SIZE",
    "BOX_NONCE_SIZE",
    "MIN_ENVELOPE_SIZE",
    # Errors
    "NuntiusError",
    "CryptographicFailure",
    "AuthenticationFailed",
    "DecryptionFailed",
    "EncodingError",
    "MalformedInput",
    "MalformedEnvelope",
    "InvalidPublicKeyError",
    "InvalidKeyError",
    "InvalidKeyPairError",
    "StorageError",
    "SerializationError",
    "NotFoundError",
    "MissingIdentifierError",
]
