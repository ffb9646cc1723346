"""Tests for exchange identities and the envelope protocol."""

import logging

import pytest
from nuntius.contact import Contact
from nuntius.envelope import EncryptedEnvelope, decode_envelope
from nuntius.identity import ExchangeIdentity
from nuntius.types import (
    BOX_NONCE_SIZE,
    BOX_TAG_SIZE,
    CryptographicFailure,
    DecryptionFailed,
    EncodingError,
    InvalidKeyError,
    InvalidKeyPairError,
    InvalidPublicKeyError,
    MalformedEnvelope,
    SerializationError,
)
from .test_vectors import (
    ALICE_SECRET_KEY_HEX,
    ALICE_PUBLIC_KEY_HEX,
    BOB_PUBLIC_KEY_HEX,
    PEER_KEYS,
    TEST_MESSAGES,
)


class TestConstruction:
    """Test identity constructors."""

    def test_new_has_valid_keypair(self) -> None:
        identity = ExchangeIdentity.new("Room")
        assert identity.name == "Room"
        assert identity.id is None
        assert identity.description == ""
        assert identity.member_count == 0
        assert identity.contact_count() == 0
        assert len(identity.secret_key) == 32
        assert len(identity.public_key) == 32

    def test_new_identities_differ(self) -> None:
        assert ExchangeIdentity.new("a").public_key != ExchangeIdentity.new("b").public_key

    def test_new_with_contacts(self) -> None:
        identity = ExchangeIdentity.new_with_contacts("Room", PEER_KEYS + [PEER_KEYS[0]])
        assert identity.contact_count() == len(PEER_KEYS)
        assert all(identity.is_known_contact(k) for k in PEER_KEYS)

    def test_secret_key_not_in_repr(self, alice) -> None:
        assert ALICE_SECRET_KEY_HEX not in repr(alice)
        assert repr(alice.secret_key) not in repr(alice)

    def test_from_values_rejects_mismatched_keys(self) -> None:
        with pytest.raises(InvalidKeyPairError):
            ExchangeIdentity.from_values(
                id=None,
                name="Mallory",
                description="",
                member_count=0,
                secret_key=bytes.fromhex(ALICE_SECRET_KEY_HEX),
                public_key=bytes.fromhex(BOB_PUBLIC_KEY_HEX),
                known_contacts=[],
            )

    def test_from_values_without_verification(self) -> None:
        identity = ExchangeIdentity.from_values(
            id="room:9",
            name="Unchecked",
            description="d",
            member_count=3,
            secret_key=bytes.fromhex(ALICE_SECRET_KEY_HEX),
            public_key=bytes.fromhex(BOB_PUBLIC_KEY_HEX),
            known_contacts=PEER_KEYS,
            verify=False,
        )
        assert identity.id == "room:9"
        assert identity.member_count == 3
        assert identity.contact_count() == 3

    def test_from_values_rejects_bad_lengths(self) -> None:
        with pytest.raises(InvalidKeyError):
            ExchangeIdentity.from_values(
                None, "x", "", 0, b"short", bytes.fromhex(ALICE_PUBLIC_KEY_HEX), []
            )
        with pytest.raises(InvalidPublicKeyError):
            ExchangeIdentity.from_values(
                None, "x", "", 0, bytes.fromhex(ALICE_SECRET_KEY_HEX),
                bytes.fromhex(ALICE_PUBLIC_KEY_HEX), [b"short"],
            )


class TestKnownContacts:
    """Test the known-contacts set."""

    def test_add_contact_is_idempotent(self, alice) -> None:
        alice.add_contact(PEER_KEYS[0])
        alice.add_contact(PEER_KEYS[0])
        assert alice.contact_count() == 1

    def test_add_contact_rejects_bad_length(self, alice) -> None:
        with pytest.raises(InvalidPublicKeyError):
            alice.add_contact(b"\x00" * 31)
        assert alice.contact_count() == 0

    def test_known_contacts_list_sorted(self, alice) -> None:
        for key in reversed(PEER_KEYS):
            alice.add_contact(key)
        assert alice.known_contacts_list() == sorted(PEER_KEYS)

    def test_add_contact_logs_fingerprint(self, alice, caplog) -> None:
        with caplog.at_level(logging.DEBUG, logger="nuntius.identity"):
            alice.add_contact(PEER_KEYS[1])
        assert "learned contact" in caplog.text

    def test_directory_lookups(self, alice) -> None:
        friend = Contact.new("Friend", PEER_KEYS[0])
        blocked = Contact.new("Blocked", PEER_KEYS[1])
        blocked.set_blocked(True)
        stranger = Contact.new("Stranger", PEER_KEYS[2])
        directory = [friend, blocked, stranger]

        alice.add_contact(PEER_KEYS[0])
        alice.add_contact(PEER_KEYS[1])

        assert alice.known_contact_details(directory) == [friend, blocked]
        assert alice.contact_details(directory, PEER_KEYS[0]) is friend
        assert alice.contact_details(directory, PEER_KEYS[2]) is None
        assert alice.is_trusted_contact(directory, PEER_KEYS[0])
        assert not alice.is_trusted_contact(directory, PEER_KEYS[1])
        assert not alice.is_trusted_contact(directory, PEER_KEYS[2])

    def test_known_key_without_directory_entry(self, alice) -> None:
        alice.add_contact(PEER_KEYS[0])
        assert alice.contact_details([], PEER_KEYS[0]) is None
        assert not alice.is_trusted_contact([], PEER_KEYS[0])


class TestEnvelopeProtocol:
    """Test encrypt_for / decrypt_from between identities."""

    def test_basic_exchange(self, alice, bob) -> None:
        envelope = alice.encrypt_for(bob.public_key, b"Hello, Bob!")

        assert envelope.sender_public_key == alice.public_key
        assert len(envelope.nonce) == BOX_NONCE_SIZE
        assert len(envelope.ciphertext) == len(b"Hello, Bob!") + BOX_TAG_SIZE
        assert bob.decrypt_from(envelope) == b"Hello, Bob!"

    @pytest.mark.parametrize("message_key,message", TEST_MESSAGES.items())
    def test_string_messages(self, alice, bob, message_key: str, message: str) -> None:
        envelope = alice.encrypt_string_for(bob.public_key, message)
        assert bob.decrypt_string_from(envelope) == message, message_key

    def test_reply_uses_same_shared_secret(self, alice, bob) -> None:
        to_bob = alice.encrypt_for(bob.public_key, b"ping")
        bob.decrypt_from(to_bob)
        reply = bob.encrypt_for(to_bob.sender_public_key, b"pong")
        assert alice.decrypt_from(reply) == b"pong"

    def test_both_sides_learn_each_other(self, alice, bob) -> None:
        envelope = alice.encrypt_for(bob.public_key, b"hi")
        assert alice.is_known_contact(bob.public_key)
        assert not bob.is_known_contact(alice.public_key)

        bob.decrypt_from(envelope)
        assert bob.is_known_contact(alice.public_key)

    def test_nonces_are_fresh(self, alice, bob) -> None:
        first = alice.encrypt_for(bob.public_key, b"same")
        second = alice.encrypt_for(bob.public_key, b"same")
        assert first.nonce != second.nonce
        assert first.ciphertext != second.ciphertext

    def test_survives_wire_encoding(self, alice, bob) -> None:
        envelope = alice.encrypt_for(bob.public_key, b"over the wire")
        assert bob.decrypt_from(decode_envelope(envelope.to_bytes())) == b"over the wire"

    def test_third_party_cannot_decrypt(self, alice, bob) -> None:
        eve = ExchangeIdentity.new("Eve")
        envelope = alice.encrypt_for(bob.public_key, b"for Bob only")
        with pytest.raises(DecryptionFailed):
            eve.decrypt_from(envelope)

    def test_sender_cannot_decrypt_own_envelope(self, alice, bob) -> None:
        envelope = alice.encrypt_for(bob.public_key, b"sent")
        with pytest.raises(DecryptionFailed):
            alice.decrypt_from(envelope)

    def test_failed_decrypt_still_learns_sender(self, alice, bob) -> None:
        eve = ExchangeIdentity.new("Eve")
        envelope = alice.encrypt_for(bob.public_key, b"x")
        with pytest.raises(DecryptionFailed):
            eve.decrypt_from(envelope)
        assert eve.is_known_contact(alice.public_key)

    def test_tampered_ciphertext(self, alice, bob) -> None:
        envelope = alice.encrypt_for(bob.public_key, b"integrity")
        for i in range(len(envelope.ciphertext)):
            tampered = bytearray(envelope.ciphertext)
            tampered[i] ^= 0x01
            forged = EncryptedEnvelope(
                sender_public_key=envelope.sender_public_key,
                ciphertext=bytes(tampered),
                nonce=envelope.nonce,
            )
            with pytest.raises(DecryptionFailed):
                bob.decrypt_from(forged)

    def test_tampered_nonce(self, alice, bob) -> None:
        envelope = alice.encrypt_for(bob.public_key, b"integrity")
        nonce = bytearray(envelope.nonce)
        nonce[0] ^= 0xFF
        forged = EncryptedEnvelope(envelope.sender_public_key, envelope.ciphertext, bytes(nonce))
        with pytest.raises(DecryptionFailed):
            bob.decrypt_from(forged)

    def test_substituted_sender_key(self, alice, bob) -> None:
        envelope = alice.encrypt_for(bob.public_key, b"integrity")
        forged = EncryptedEnvelope(
            ExchangeIdentity.new("Eve").public_key, envelope.ciphertext, envelope.nonce
        )
        with pytest.raises(DecryptionFailed):
            bob.decrypt_from(forged)

    def test_failures_are_indistinguishable(self, alice, bob) -> None:
        envelope = alice.encrypt_for(bob.public_key, b"opaque")
        with pytest.raises(DecryptionFailed) as wrong_recipient:
            ExchangeIdentity.new("Eve").decrypt_from(envelope)
        forged = EncryptedEnvelope(
            envelope.sender_public_key, b"\x00" * len(envelope.ciphertext), envelope.nonce
        )
        with pytest.raises(DecryptionFailed) as tampered:
            bob.decrypt_from(forged)
        assert str(wrong_recipient.value) == str(tampered.value) == "Decryption failed"

    @pytest.mark.parametrize("nonce_length", [0, 12, 23, 25])
    def test_wrong_nonce_length(self, alice, bob, nonce_length: int) -> None:
        envelope = alice.encrypt_for(bob.public_key, b"x")
        forged = EncryptedEnvelope(
            envelope.sender_public_key, envelope.ciphertext, b"\x00" * nonce_length
        )
        with pytest.raises(MalformedEnvelope):
            bob.decrypt_from(forged)

    def test_wrong_sender_key_length(self, bob) -> None:
        forged = EncryptedEnvelope(b"\x00" * 16, b"\x00" * 32, b"\x00" * 24)
        with pytest.raises(MalformedEnvelope):
            bob.decrypt_from(forged)
        assert bob.contact_count() == 0

    def test_wrong_recipient_key_length(self, alice) -> None:
        with pytest.raises(InvalidPublicKeyError):
            alice.encrypt_for(b"\x01" * 31, b"x")
        assert alice.contact_count() == 0

    def test_low_order_recipient_key(self, alice) -> None:
        with pytest.raises(InvalidPublicKeyError):
            alice.encrypt_for(bytes(32), b"x")

    def test_invalid_utf8(self, alice, bob) -> None:
        envelope = alice.encrypt_for(bob.public_key, b"\xc3\x28")
        with pytest.raises(EncodingError):
            bob.decrypt_string_from(envelope)


class TestThreeParties:
    """Alice, Bob and Eve exchange messages pairwise."""

    def test_hi_bob(self) -> None:
        """Bob reads Alice's message, Eve gets a cryptographic failure."""
        alice = ExchangeIdentity.new("Alice")
        bob = ExchangeIdentity.new("Bob")
        eve = ExchangeIdentity.new("Eve")

        envelope = alice.encrypt_string_for(bob.public_key, "hi bob")
        assert bob.decrypt_string_from(envelope) == "hi bob"
        assert alice.contact_count() == 1
        assert bob.contact_count() == 1

        with pytest.raises(CryptographicFailure):
            eve.decrypt_from(envelope)

    def test_pairwise_exchange(self) -> None:
        alice = ExchangeIdentity.new("Alice")
        bob = ExchangeIdentity.new("Bob")
        eve = ExchangeIdentity.new("Eve")

        to_bob = alice.encrypt_string_for(bob.public_key, "Hi Bob")
        to_eve = alice.encrypt_string_for(eve.public_key, "Hi Eve")
        bob_to_eve = bob.encrypt_string_for(eve.public_key, "Hey Eve")

        assert bob.decrypt_string_from(to_bob) == "Hi Bob"
        assert eve.decrypt_string_from(to_eve) == "Hi Eve"
        assert eve.decrypt_string_from(bob_to_eve) == "Hey Eve"

        with pytest.raises(DecryptionFailed):
            eve.decrypt_from(to_bob)
        with pytest.raises(DecryptionFailed):
            bob.decrypt_from(to_eve)

        assert alice.contact_count() == 2
        assert bob.contact_count() == 2
        assert eve.contact_count() == 2


class TestSerialization:
    """Test the JSON record form."""

    def test_round_trip(self, alice) -> None:
        alice.add_contact(PEER_KEYS[0])
        alice.description = "Alice's room"
        alice.member_count = 4
        alice.set_id("room:1")

        restored = ExchangeIdentity.from_json(alice.to_json())
        assert restored == alice
        assert restored.id == "room:1"

    def test_restored_identity_can_decrypt(self, alice, bob) -> None:
        envelope = alice.encrypt_for(bob.public_key, b"after restore")
        restored = ExchangeIdentity.from_json(bob.to_json())
        assert restored.decrypt_from(envelope) == b"after restore"

    def test_keys_are_hex(self, alice) -> None:
        data = alice.to_dict()
        assert data["secret_key"] == ALICE_SECRET_KEY_HEX
        assert data["public_key"] == ALICE_PUBLIC_KEY_HEX
        assert data["known_contacts"] == []
        assert "id" not in data

    def test_mismatched_keys_rejected(self, alice) -> None:
        data = alice.to_dict()
        data["public_key"] = BOB_PUBLIC_KEY_HEX
        with pytest.raises(SerializationError):
            ExchangeIdentity.from_dict(data)

    def test_invalid_json(self) -> None:
        with pytest.raises(SerializationError):
            ExchangeIdentity.from_json("{not json")
        with pytest.raises(SerializationError):
            ExchangeIdentity.from_json("[]")

    def test_missing_field(self, alice) -> None:
        data = alice.to_dict()
        del data["name"]
        with pytest.raises(SerializationError):
            ExchangeIdentity.from_dict(data)

    def test_set_id_is_write_once(self, alice) -> None:
        alice.set_id("room:1")
        alice.set_id("room:1")
        with pytest.raises(ValueError):
            alice.set_id("room:2")
