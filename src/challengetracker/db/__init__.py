"""Database module for local SQLite storage."""

from .models import Base, Entry, generate_uuid
from .sqlite import Database, get_db, reset_db

__all__ = [
    "Base",
    "Entry",
    "generate_uuid",
    "Database",
    "get_db",
    "reset_db",
]
