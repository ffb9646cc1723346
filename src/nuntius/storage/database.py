"""
Persistent entity store on an embedded SQLite key/value table.

Records are JSON documents stored under string keys. Keys are kept as BLOBs
so the table's native order is bytewise, which makes prefix scans return
records in lexicographic key order. Entity keys take the form
``"<key_prefix>:<n>"`` where ``n`` comes from a monotonic sequence owned by
the store.

## Durability

With `DatabaseConfig.durable` set (the default) every mutating call commits
before returning. Sequences of calls are not transactional: a
read-modify-save on the same record from two threads is last-write-wins.

## Concurrency

One connection is shared by all threads and guarded by a lock, so each
individual operation is atomic. Prefix scans read in pages and may or may
not observe records written by other threads while the scan is running.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, Optional, Type, TypeVar

from ..entity import Entity
from ..types import (
    KEY_SEPARATOR,
    MissingIdentifierError,
    NotFoundError,
    SerializationError,
    StorageError,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)

# Directory name for the default database, under the user's home
DIRECTORY_NAME = ".nuntius"

# File name for the default database
DATABASE_FILE = "nuntius.db"

# Rows fetched per page during a prefix scan
SCAN_BATCH_SIZE = 64

_ENTITY_SEQUENCE = "entity"


def default_database_path() -> Path:
    """Per-user location of the default database."""
    return Path.home() / DIRECTORY_NAME / DATABASE_FILE


@dataclass
class DatabaseConfig:
    """Configuration for the entity store."""

    path: Path = field(default_factory=default_database_path)
    """Database file."""

    timeout: float = 5.0
    """Seconds to wait when the database file is locked by another process."""

    durable: bool = True
    """Commit after every mutating call."""


class Database:
    """
    Create/read/update/delete/query for entities.

    Example usage:
        ```python
        db = Database(DatabaseConfig(path=Path("/tmp/nuntius.db")))

        room = ExchangeIdentity.new("Alice")
        key = db.save_entity(room)        # "room:1", also set on room.id

        loaded = db.load_entity(ExchangeIdentity, key)
        rooms = db.load_all_entities(ExchangeIdentity)
        ```
    """

    def __init__(self, config: Optional[DatabaseConfig] = None) -> None:
        self._config = config or DatabaseConfig()
        self._lock = threading.RLock()
        self._pending = 0

        path = Path(self._config.path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(path),
                timeout=self._config.timeout,
                check_same_thread=False,
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._create_tables()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Failed to open database at {path}: {e}") from e

        logger.info("Entity store opened: %s", path)

    @property
    def config(self) -> DatabaseConfig:
        """Returns the store configuration."""
        return self._config

    def _create_tables(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS kv (
                key BLOB PRIMARY KEY,
                value BLOB NOT NULL
            ) WITHOUT ROWID;

            CREATE TABLE IF NOT EXISTS id_sequence (
                name TEXT PRIMARY KEY,
                value INTEGER NOT NULL
            );
        """)
        self._conn.commit()

    @contextmanager
    def _guard(self) -> Iterator[sqlite3.Connection]:
        """Hold the lock and translate sqlite errors into StorageError."""
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as e:
                raise StorageError(f"Storage operation failed: {e}") from e

    # ------------------------------------------------------------------
    # Entity operations
    # ------------------------------------------------------------------

    def generate_id(self) -> int:
        """Next value of the store's monotonic id sequence."""
        with self._guard() as conn:
            conn.execute(
                "INSERT INTO id_sequence (name, value) VALUES (?, 1) "
                "ON CONFLICT(name) DO UPDATE SET value = value + 1",
                (_ENTITY_SEQUENCE,),
            )
            row = conn.execute(
                "SELECT value FROM id_sequence WHERE name = ?", (_ENTITY_SEQUENCE,)
            ).fetchone()
            self._pending += 1
            return int(row[0])

    def save_entity(self, entity: Entity) -> str:
        """
        Save an entity, assigning an id on first save.

        If the entity has no id, one is generated as ``"<key_prefix>:<n>"``
        and set on the entity before it is written. Otherwise the existing
        record at that id is overwritten.

        Returns:
            The key the entity was stored under.
        """
        with self._lock:
            if entity.id is None:
                key = f"{entity.key_prefix()}{KEY_SEPARATOR}{self.generate_id()}"
                entity.set_id(key)
            else:
                key = entity.id
            self._put(key, _serialize(entity))
            self._after_write()

        logger.debug("Saved %s at %s", type(entity).__name__, key)
        return key

    def load_entity(self, entity_type: Type[E], key: str) -> Optional[E]:
        """
        Load an entity by key.

        Returns None when nothing is stored under the key. If the stored id
        disagrees with the key a warning is logged and the record is returned
        as stored.
        """
        value = self._get(key)
        if value is None:
            return None

        entity = _deserialize(entity_type, value)
        if entity.id != key:
            logger.warning(
                "ID mismatch for %s: key %r holds record with id %r",
                entity_type.__name__, key, entity.id,
            )
        return entity

    def update_entity(self, entity: Entity) -> None:
        """
        Overwrite a previously saved entity.

        Raises:
            MissingIdentifierError: If the entity has never been saved.
        """
        if entity.id is None:
            raise MissingIdentifierError(type(entity).__name__)

        with self._lock:
            self._put(entity.id, _serialize(entity))
            self._after_write()

        logger.debug("Updated %s at %s", type(entity).__name__, entity.id)

    def load_all_entities(
        self, entity_type: Type[E], key_prefix: Optional[str] = None
    ) -> list[E]:
        """
        Load every entity stored under a type prefix, in key order.

        Args:
            entity_type: The entity class to deserialize into.
            key_prefix: Type prefix to scan (default: entity_type.key_prefix()).
                Only keys of the form ``"<key_prefix>:..."`` match, so a
                prefix never picks up another type whose prefix extends it.
        """
        return [
            _deserialize(entity_type, value)
            for _, value in self._scan(_entity_scan_prefix(entity_type, key_prefix))
        ]

    def find_entity(
        self,
        entity_type: Type[E],
        predicate: Callable[[E], bool],
        key_prefix: Optional[str] = None,
    ) -> Optional[E]:
        """First entity of the type matching predicate, in key order."""
        for _, value in self._scan(_entity_scan_prefix(entity_type, key_prefix)):
            entity = _deserialize(entity_type, value)
            if predicate(entity):
                return entity
        return None

    def find_entities(
        self,
        entity_type: Type[E],
        predicate: Callable[[E], bool],
        key_prefix: Optional[str] = None,
    ) -> list[E]:
        """All entities of the type matching predicate, in key order."""
        return [e for e in self.load_all_entities(entity_type, key_prefix) if predicate(e)]

    def delete(self, entity_type: Type[E], key: str) -> E:
        """
        Remove an entity and return its last stored value.

        Raises:
            NotFoundError: If nothing is stored under the key.
        """
        with self._guard() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (_key(key),)).fetchone()
            if row is None:
                raise NotFoundError(key)
            entity = _deserialize(entity_type, row[0])
            conn.execute("DELETE FROM kv WHERE key = ?", (_key(key),))
            self._pending += 1
            self._after_write()

        logger.debug("Deleted %s at %s", entity_type.__name__, key)
        return entity

    # ------------------------------------------------------------------
    # Raw key/value helpers
    # ------------------------------------------------------------------

    def save(self, key: str, entity: Entity) -> None:
        """Write an entity under an explicit key without touching its id."""
        with self._lock:
            self._put(key, _serialize(entity))
            self._after_write()

    def load(self, entity_type: Type[E], key: str) -> Optional[E]:
        """Read an entity stored under an explicit key."""
        value = self._get(key)
        if value is None:
            return None
        return _deserialize(entity_type, value)

    def remove(self, key: str) -> bool:
        """Remove a key without deserializing it. Returns True if it existed."""
        with self._guard() as conn:
            cursor = conn.execute("DELETE FROM kv WHERE key = ?", (_key(key),))
            existed = cursor.rowcount > 0
            if existed:
                self._pending += 1
                self._after_write()
            return existed

    def contains(self, key: str) -> bool:
        return self._get(key) is not None

    def list_keys_with_prefix(self, prefix: str) -> list[str]:
        """Keys starting with prefix (raw byte prefix, no delimiter handling)."""
        return [key for key, _ in self._scan(prefix)]

    def __len__(self) -> int:
        with self._guard() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM kv").fetchone()[0])

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def flush(self) -> int:
        """
        Commit outstanding writes.

        Returns:
            The number of writes that were pending.
        """
        with self._guard() as conn:
            conn.commit()
            flushed, self._pending = self._pending, 0
            return flushed

    def clear(self) -> None:
        """Delete every record. The id sequence is not reset."""
        with self._guard() as conn:
            conn.execute("DELETE FROM kv")
            conn.commit()
            self._pending = 0

        logger.info("Entity store cleared: %s", self._config.path)

    def close(self) -> None:
        """Flush and close the connection."""
        with self._lock:
            try:
                self._conn.commit()
                self._conn.close()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to close database: {e}") from e

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _put(self, key: str, value: bytes) -> None:
        with self._guard() as conn:
            conn.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (_key(key), value),
            )
            self._pending += 1

    def _get(self, key: str) -> Optional[bytes]:
        with self._guard() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (_key(key),)).fetchone()
        return None if row is None else bytes(row[0])

    def _after_write(self) -> None:
        if self._config.durable:
            self.flush()

    def _scan(self, prefix: str) -> Iterator[tuple[str, bytes]]:
        """Yield (key, value) for keys starting with prefix, in byte order."""
        lower = _key(prefix)
        upper = _prefix_upper_bound(lower)
        last: Optional[bytes] = None

        while True:
            clauses = ["key >= ?" if last is None else "key > ?"]
            params: list[object] = [lower if last is None else last]
            if upper is not None:
                clauses.append("key < ?")
                params.append(upper)
            params.append(SCAN_BATCH_SIZE)

            with self._guard() as conn:
                rows = conn.execute(
                    f"SELECT key, value FROM kv WHERE {' AND '.join(clauses)} "
                    "ORDER BY key LIMIT ?",
                    params,
                ).fetchall()

            for raw_key, value in rows:
                yield bytes(raw_key).decode("utf-8"), bytes(value)

            if len(rows) < SCAN_BATCH_SIZE:
                return
            last = bytes(rows[-1][0])


def _key(key: str) -> bytes:
    return key.encode("utf-8")


def _prefix_upper_bound(prefix: bytes) -> Optional[bytes]:
    """Smallest byte string greater than every string starting with prefix."""
    trimmed = prefix.rstrip(b"\xff")
    if not trimmed:
        return None
    return trimmed[:-1] + bytes([trimmed[-1] + 1])


def _entity_scan_prefix(entity_type: Type[Entity], key_prefix: Optional[str]) -> str:
    prefix = entity_type.key_prefix() if key_prefix is None else key_prefix
    if not prefix.endswith(KEY_SEPARATOR):
        prefix += KEY_SEPARATOR
    return prefix


def _serialize(entity: Entity) -> bytes:
    try:
        return entity.to_json().encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Failed to serialize {type(entity).__name__}: {e}") from e


def _deserialize(entity_type: Type[E], value: bytes) -> E:
    try:
        text = value.decode("utf-8")
    except UnicodeDecodeError as e:
        raise SerializationError(f"Stored {entity_type.__name__} is not UTF-8: {e}") from e
    return entity_type.from_json(text)
