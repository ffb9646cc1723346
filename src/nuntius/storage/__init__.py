"""nuntius storage module."""

from .database import Database, DatabaseConfig, default_database_path
from .default import default_database, close_default_database

__all__ = [
    "Database",
    "DatabaseConfig",
    "default_database_path",
    "default_database",
    "close_default_database",
]
