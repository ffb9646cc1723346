"""
Local API for the presentation layer.

These functions run on the same device as the user interface and handle the
sensitive work: database access and cryptography. Records cross the boundary
as JSON text. Every function takes an optional `Database`; when omitted the
process-wide default store is used.

Example usage:
    ```python
    alice_key = create_room("Alice")
    bob_key = create_room("Bob")
    bob = ExchangeIdentity.from_json(get_room(bob_key))

    message_key, wire_hex = send_message(alice_key, bob.public_key.hex(), "hi bob")
    text = receive_message(bob_key, wire_hex)  # "hi bob"
    ```
"""

from typing import Optional, Tuple

from .contact import Contact
from .envelope import EncryptedEnvelope, decode_envelope
from .identity import ExchangeIdentity
from .keys import public_key_from_hex
from .storage import Database, default_database
from .types import MalformedEnvelope, NotFoundError
from .user_data import UserData


def _db(db: Optional[Database]) -> Database:
    return db if db is not None else default_database()


# ============================================================================
# Rooms
# ============================================================================


def create_room(
    name: str,
    description: Optional[str] = None,
    db: Optional[Database] = None,
) -> str:
    """Create a room with a fresh key pair. Returns its key."""
    room = ExchangeIdentity.new(name)
    if description is not None:
        room.description = description
    return _db(db).save_entity(room)


def get_room(id: str, db: Optional[Database] = None) -> Optional[str]:
    room = _db(db).load_entity(ExchangeIdentity, id)
    return None if room is None else room.to_json()


def update_room(room_json: str, db: Optional[Database] = None) -> None:
    _db(db).update_entity(ExchangeIdentity.from_json(room_json))


def delete_room(id: str, db: Optional[Database] = None) -> None:
    _db(db).delete(ExchangeIdentity, id)


def get_all_rooms(db: Optional[Database] = None) -> list[str]:
    return [room.to_json() for room in _db(db).load_all_entities(ExchangeIdentity)]


def find_room_by_name(name: str, db: Optional[Database] = None) -> Optional[str]:
    room = _db(db).find_entity(ExchangeIdentity, lambda r: r.name == name)
    return None if room is None else room.to_json()


# ============================================================================
# Contacts
# ============================================================================


def create_contact(name: str, public_key: str, db: Optional[Database] = None) -> str:
    """
    Create a directory record from a hex-encoded public key.

    Raises:
        InvalidPublicKeyError: If public_key does not decode to exactly 32 bytes.
    """
    contact = Contact.new(name, public_key_from_hex(public_key))
    return _db(db).save_entity(contact)


def get_contact(id: str, db: Optional[Database] = None) -> Optional[str]:
    contact = _db(db).load_entity(Contact, id)
    return None if contact is None else contact.to_json()


def update_contact(contact_json: str, db: Optional[Database] = None) -> None:
    _db(db).update_entity(Contact.from_json(contact_json))


def delete_contact(id: str, db: Optional[Database] = None) -> None:
    _db(db).delete(Contact, id)


def get_all_contacts(db: Optional[Database] = None) -> list[str]:
    return [contact.to_json() for contact in _db(db).load_all_entities(Contact)]


def find_contact_by_name(name: str, db: Optional[Database] = None) -> Optional[str]:
    contact = _db(db).find_entity(Contact, lambda c: c.name == name)
    return None if contact is None else contact.to_json()


# ============================================================================
# User data
# ============================================================================


def create_user_data(
    username: str,
    display_name: Optional[str] = None,
    db: Optional[Database] = None,
) -> str:
    if display_name is None:
        user = UserData.default_for_user(username)
    else:
        user = UserData(username=username, display_name=display_name)
    return _db(db).save_entity(user)


def get_user_data(id: str, db: Optional[Database] = None) -> Optional[str]:
    user = _db(db).load_entity(UserData, id)
    return None if user is None else user.to_json()


def update_user_data(user_json: str, db: Optional[Database] = None) -> None:
    _db(db).update_entity(UserData.from_json(user_json))


def delete_user_data(id: str, db: Optional[Database] = None) -> None:
    _db(db).delete(UserData, id)


def find_user_data_by_username(username: str, db: Optional[Database] = None) -> Optional[str]:
    user = _db(db).find_entity(UserData, lambda u: u.username == username)
    return None if user is None else user.to_json()


# ============================================================================
# Messages
# ============================================================================


def _load_room(database: Database, room_id: str) -> ExchangeIdentity:
    room = database.load_entity(ExchangeIdentity, room_id)
    if room is None:
        raise NotFoundError(room_id)
    return room


def send_message(
    room_id: str,
    recipient_public_key: str,
    text: str,
    db: Optional[Database] = None,
) -> Tuple[str, str]:
    """
    Encrypt text from a stored room to a hex-encoded recipient key.

    The envelope is persisted and the room is saved again so the recipient
    stays in its known contacts.

    Returns:
        Tuple of (message key, hex-encoded wire envelope).

    Raises:
        NotFoundError: If no room is stored under room_id.
        InvalidPublicKeyError: If the recipient key is not 32 bytes of hex.
    """
    database = _db(db)
    room = _load_room(database, room_id)

    envelope = room.encrypt_string_for(public_key_from_hex(recipient_public_key), text)
    database.update_entity(room)
    message_key = database.save_entity(envelope)

    return message_key, envelope.to_bytes().hex()


def receive_message(
    room_id: str,
    envelope_hex: str,
    db: Optional[Database] = None,
) -> str:
    """
    Decode and decrypt a hex-encoded wire envelope for a stored room.

    The room is saved again whether or not decryption succeeds, since
    opening an envelope records its sender as a known contact. The envelope
    is persisted only when it decrypts.

    Raises:
        NotFoundError: If no room is stored under room_id.
        MalformedEnvelope: If the envelope bytes are malformed.
        DecryptionFailed: If the envelope cannot be opened by this room.
    """
    database = _db(db)
    room = _load_room(database, room_id)

    try:
        data = bytes.fromhex(envelope_hex)
    except ValueError as e:
        raise MalformedEnvelope(f"Envelope is not valid hex: {e}") from e
    envelope = decode_envelope(data)

    try:
        text = room.decrypt_string_from(envelope)
    finally:
        database.update_entity(room)

    database.save_entity(envelope)
    return text


def get_message(id: str, db: Optional[Database] = None) -> Optional[str]:
    envelope = _db(db).load_entity(EncryptedEnvelope, id)
    return None if envelope is None else envelope.to_json()


def get_all_messages(db: Optional[Database] = None) -> list[str]:
    return [e.to_json() for e in _db(db).load_all_entities(EncryptedEnvelope)]


def delete_message(id: str, db: Optional[Database] = None) -> None:
    _db(db).delete(EncryptedEnvelope, id)
