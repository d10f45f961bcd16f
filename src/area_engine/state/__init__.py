"""Persistence backends."""

from .backends import DatabaseBackend, SQLiteBackend, create_backend
from .database import get_database, reset_database

__all__ = [
    "DatabaseBackend",
    "SQLiteBackend",
    "create_backend",
    "get_database",
    "reset_database",
]
