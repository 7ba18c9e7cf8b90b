"""
core/common/db_interface.py
===========================

Shared interface + helpers for SQLite-backed stores (settings, event log).
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from threading import RLock
from typing import Optional
import sqlite3


def create_sqlite_connection(
    db_path: Path,
    *,
    check_same_thread: bool = False,
    timeout: float = 5.0,
) -> sqlite3.Connection:
    """Open a connection with row access by column name; creates the parent folder."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=check_same_thread, timeout=timeout)
    conn.row_factory = sqlite3.Row
    return conn


class DatabaseAccess(ABC):
    """Interface for components that depend on a database file."""

    @property
    @abstractmethod
    def db_path(self) -> Path:
        raise NotImplementedError

    @abstractmethod
    def connect(self) -> sqlite3.Connection:
        raise NotImplementedError


class SQLiteRepository(DatabaseAccess):
    """Keeps one shared connection; callers serialize writes with ``self.lock``.

    Background workers touch the settings store too, so the connection is
    opened with ``check_same_thread=False`` and guarded by a re-entrant lock.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self.lock = RLock()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def conn(self) -> sqlite3.Connection:
        return self.connect()

    def connect(self) -> sqlite3.Connection:
        with self.lock:
            if self._conn is None:
                self._conn = create_sqlite_connection(self._db_path)
            return self._conn

    def close(self) -> None:
        with self.lock:
            if self._conn is not None:
                try:
                    self._conn.close()
                finally:
                    self._conn = None
