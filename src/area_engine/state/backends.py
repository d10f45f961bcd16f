"""Database backend abstraction for area persistence."""

from __future__ import annotations

import sqlite3
import threading
from abc import ABC, abstractmethod
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any


class DatabaseBackend(ABC):
    """Abstract base class for database backends."""

    @abstractmethod
    def execute(self, query: str, params: tuple = ()) -> Any:
        """Execute a query and return cursor."""

    @abstractmethod
    def executescript(self, script: str) -> None:
        """Execute multiple SQL statements."""

    @abstractmethod
    def fetchone(self, query: str, params: tuple = ()) -> dict | None:
        """Execute query and fetch one row as dict."""

    @abstractmethod
    def fetchall(self, query: str, params: tuple = ()) -> list[dict]:
        """Execute query and fetch all rows as dicts."""

    @abstractmethod
    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """Context manager for transactions."""

    @abstractmethod
    def close(self) -> None:
        """Close database connection."""


class SQLiteBackend(DatabaseBackend):
    """SQLite database backend with one connection per thread.

    Cron jobs run on APScheduler worker threads, so every thread lazily
    opens its own connection to the same file.
    """

    def __init__(self, db_path: str = "area-engine.db", timeout: float = 30.0):
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._lock = threading.Lock()

    def _get_conn(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.timeout,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            self._local.conn = conn
            with self._lock:
                self._connections.append(conn)
        return conn

    def execute(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        return self._get_conn().execute(query, params)

    def executescript(self, script: str) -> None:
        conn = self._get_conn()
        conn.executescript(script)
        conn.commit()

    def fetchone(self, query: str, params: tuple = ()) -> dict | None:
        row = self.execute(query, params).fetchone()
        if row:
            return dict(row)
        return None

    def fetchall(self, query: str, params: tuple = ()) -> list[dict]:
        cursor = self.execute(query, params)
        return [dict(row) for row in cursor.fetchall()]

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        conn = self._get_conn()
        try:
            yield
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def close(self) -> None:
        """Close every connection opened by this backend."""
        with self._lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            try:
                conn.close()
            except sqlite3.ProgrammingError:
                pass  # already closed from its own thread
        self._local = threading.local()


def create_backend(database_url: str) -> DatabaseBackend:
    """Create a backend from a sqlite:// URL.

    Args:
        database_url: e.g. sqlite:///area-engine.db or sqlite:////var/lib/area.db

    Raises:
        ValueError: If the URL scheme is not supported
    """
    if not database_url.startswith("sqlite://"):
        raise ValueError(f"Unsupported database URL: {database_url}")
    path = database_url[len("sqlite://") :]
    if path.startswith("/"):
        path = path[1:]
    return SQLiteBackend(db_path=path or ":memory:")
