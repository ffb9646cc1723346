"""Process-wide default entity store."""

import logging
import threading
from typing import Optional

from .database import Database, DatabaseConfig

logger = logging.getLogger(__name__)

_default: Optional[Database] = None
_default_lock = threading.Lock()


def default_database(config: Optional[DatabaseConfig] = None) -> Database:
    """
    Return the process-wide database, opening it on first use.

    Args:
        config: Used only when the database is opened by this call.
            Defaults to `DatabaseConfig()` (``~/.nuntius/nuntius.db``).
    """
    global _default
    with _default_lock:
        if _default is None:
            _default = Database(config)
        elif config is not None and config != _default.config:
            logger.warning(
                "Default database already open at %s; ignoring config for %s",
                _default.config.path, config.path,
            )
        return _default


def close_default_database() -> None:
    """Close the process-wide database so the next call reopens it."""
    global _default
    with _default_lock:
        if _default is not None:
            _default.close()
            _default = None
