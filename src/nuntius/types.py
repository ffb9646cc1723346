"""Constants and exception types for nuntius."""


# Key sizes
PUBLIC_KEY_SIZE = 32
SECRET_KEY_SIZE = 32

# AEAD utility (AES-256-GCM)
AEAD_KEY_SIZE = 32
AEAD_NONCE_SIZE = 12
AEAD_TAG_SIZE = 16

# Exchange box (X25519 + XSalsa20-Poly1305)
BOX_NONCE_SIZE = 24
BOX_TAG_SIZE = 16

# Envelope wire format
LENGTH_PREFIX_SIZE = 4
MIN_ENVELOPE_SIZE = PUBLIC_KEY_SIZE + 2 * LENGTH_PREFIX_SIZE  # 40 bytes

# Entity key namespace
KEY_SEPARATOR = ":"


class NuntiusError(Exception):
    """Base exception for nuntius errors."""
    pass


# Cryptographic failures


class CryptographicFailure(NuntiusError):
    """Authentication or decryption failed."""
    pass


class AuthenticationFailed(CryptographicFailure):
    """Symmetric AEAD decryption failed."""

    def __init__(self) -> None:
        super().__init__("Authentication failed")


class DecryptionFailed(CryptographicFailure):
    """Envelope decryption failed."""

    def __init__(self) -> None:
        super().__init__("Decryption failed")


class EncodingError(NuntiusError):
    """Decrypted bytes are not valid UTF-8."""
    pass


# Malformed input


class MalformedInput(NuntiusError):
    """Input was rejected before reaching the cipher."""
    pass


class MalformedEnvelope(MalformedInput):
    """Envelope bytes or fields have the wrong shape."""
    pass


class InvalidPublicKeyError(MalformedInput):
    """Invalid public key format or length."""
    pass


class InvalidKeyError(MalformedInput):
    """Invalid symmetric or secret key."""
    pass


class InvalidKeyPairError(InvalidKeyError):
    """Public key is not the counterpart of the secret key."""
    pass


# Storage


class StorageError(NuntiusError):
    """Storage operation failed."""
    pass


class SerializationError(StorageError):
    """A record could not be serialized or deserialized."""
    pass


class NotFoundError(NuntiusError):
    """No record is stored under the given key."""

    def __init__(self, key: str) -> None:
        super().__init__(f"No record found for key: {key}")
        self.key = key


class MissingIdentifierError(NuntiusError):
    """Entity has not been saved and has no identifier."""

    def __init__(self, entity_type: str) -> None:
        super().__init__(f"{entity_type} has no id; save it before updating")
        self.entity_type = entity_type
