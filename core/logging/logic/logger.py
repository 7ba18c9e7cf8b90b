"""
core/logging/logic/logger.py
============================

Thread-safe singleton event log with a SQLite backend.

Features write user-visible events here (directory granted, signature saved,
protection could not be re-applied ...). Developer diagnostics go to the
standard ``logging`` module loggers instead.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from core.config.config_service import config_service
from core.common.db_interface import DatabaseAccess, create_sqlite_connection
from core.logging.models.log_entry import LogEntry

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class Logger(DatabaseAccess):
    """Thread-safe singleton event logger."""

    _instance: "Logger | None" = None
    _instance_lock = threading.Lock()

    def __new__(cls) -> "Logger":  # noqa: D401
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False  # type: ignore[attr-defined]
        return cls._instance  # type: ignore[return-value]

    def __init__(self) -> None:
        if getattr(self, "_initialized", False):
            return
        self._initialized = True

        self._lock = threading.Lock()
        self._db_path: Path = config_service.database.logging
        self._ensure_db()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def connect(self):
        return create_sqlite_connection(self._db_path)

    # ------------------------------------------------------------------ #
    #  Public API                                                        #
    # ------------------------------------------------------------------ #
    def log(
        self,
        feature: str,
        event: str,
        *,
        level: str = "INFO",
        reference_id: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        """Persist one event. Unknown levels are stored as INFO."""
        level = level.upper()
        if level not in LEVELS:
            level = "INFO"
        entry = LogEntry(
            id=None,
            timestamp=datetime.now(timezone.utc),
            log_level=level,
            feature=feature,
            event=event,
            reference_id=reference_id,
            message=message,
        )
        self._insert(entry)

    def query_logs(
        self,
        *,
        feature: Optional[str] = None,
        event: Optional[str] = None,
        reference_id: Optional[str] = None,
        level: Optional[str] = None,
        limit: int = 1_000,
    ) -> List[LogEntry]:
        query = "SELECT * FROM logs WHERE 1=1"
        params: list[object] = []

        if feature is not None:
            query += " AND feature = ?"
            params.append(feature)
        if event is not None:
            query += " AND event = ?"
            params.append(event)
        if reference_id is not None:
            query += " AND reference_id = ?"
            params.append(reference_id)
        if level is not None:
            query += " AND log_level = ?"
            params.append(level.upper())

        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        with self._lock:
            conn = self.connect()
            try:
                rows = conn.execute(query, params).fetchall()
            finally:
                conn.close()
        return [LogEntry.from_row(dict(row)) for row in rows]

    # ------------------------------------------------------------------ #
    #  Internal helpers                                                  #
    # ------------------------------------------------------------------ #
    def _ensure_db(self) -> None:
        conn = self.connect()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    feature TEXT NOT NULL,
                    event TEXT NOT NULL,
                    reference_id TEXT,
                    message TEXT,
                    log_level TEXT NOT NULL DEFAULT 'INFO'
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    def _insert(self, entry: LogEntry) -> None:
        with self._lock:
            conn = self.connect()
            try:
                conn.execute(
                    """
                    INSERT INTO logs (timestamp, feature, event, reference_id, message, log_level)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entry.timestamp.isoformat(),
                        entry.feature,
                        entry.event,
                        entry.reference_id,
                        entry.message,
                        entry.log_level,
                    ),
                )
                conn.commit()
            finally:
                conn.close()


# --------------------------------------------------------------------------- #
#  Global instance                                                            #
# --------------------------------------------------------------------------- #
logger: Logger = Logger()
