"""Shared fixtures."""

import pytest
from nuntius.identity import ExchangeIdentity
from nuntius.storage import Database, DatabaseConfig
from .test_vectors import (
    ALICE_SECRET_KEY_HEX,
    ALICE_PUBLIC_KEY_HEX,
    BOB_SECRET_KEY_HEX,
    BOB_PUBLIC_KEY_HEX,
)


@pytest.fixture
def database(tmp_path):
    """A fresh entity store in a temporary directory."""
    db = Database(DatabaseConfig(path=tmp_path / "nuntius.db"))
    yield db
    db.close()


@pytest.fixture
def alice() -> ExchangeIdentity:
    """Alice's identity, built from the RFC 7748 key pair."""
    return ExchangeIdentity.from_values(
        id=None,
        name="Alice",
        description="",
        member_count=0,
        secret_key=bytes.fromhex(ALICE_SECRET_KEY_HEX),
        public_key=bytes.fromhex(ALICE_PUBLIC_KEY_HEX),
        known_contacts=[],
    )


@pytest.fixture
def bob() -> ExchangeIdentity:
    """Bob's identity, built from the RFC 7748 key pair."""
    return ExchangeIdentity.from_values(
        id=None,
        name="Bob",
        description="",
        member_count=0,
        secret_key=bytes.fromhex(BOB_SECRET_KEY_HEX),
        public_key=bytes.fromhex(BOB_PUBLIC_KEY_HEX),
        known_contacts=[],
    )
