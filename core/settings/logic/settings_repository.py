"""
core/settings/logic/settings_repository.py
==========================================

SQLite persistence for namespaced settings. Values are stored as JSON text;
``bytes`` are not JSON-serializable and must be encoded by the caller.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from core.common.db_interface import SQLiteRepository


def _to_json(v: Any) -> str:
    try:
        return json.dumps(v)
    except TypeError:
        return json.dumps(str(v))


def _from_json(txt: str) -> Any:
    try:
        return json.loads(txt)
    except ValueError:
        return txt


class SettingsRepository(SQLiteRepository):
    """Table ``settings(namespace, key, value, user_id)``."""

    def __init__(self, db_path: Path) -> None:
        super().__init__(db_path)
        self._ensure_schema()

    # ------------------------- public API ---------------------------- #
    def get(self, ns: str, key: str, uid: str | None, fb: Any = None) -> Any | None:
        with self.lock:
            row = self.conn.execute(
                "SELECT value FROM settings WHERE namespace=? AND key=? AND user_id IS ?",
                (ns, key, uid),
            ).fetchone()
        return _from_json(row["value"]) if row else fb

    def set(self, ns: str, key: str, val: Any, uid: str | None) -> None:
        with self.lock, self.conn:
            # ON CONFLICT does not match NULL user ids, so replace explicitly
            self.conn.execute(
                "DELETE FROM settings WHERE namespace=? AND key=? AND user_id IS ?",
                (ns, key, uid),
            )
            self.conn.execute(
                "INSERT INTO settings (namespace, key, value, user_id) VALUES (?,?,?,?)",
                (ns, key, _to_json(val), uid),
            )

    def delete(self, ns: str, key: str, uid: str | None) -> None:
        with self.lock, self.conn:
            self.conn.execute(
                "DELETE FROM settings WHERE namespace=? AND key=? AND user_id IS ?",
                (ns, key, uid),
            )

    # ------------------------- schema -------------------------------- #
    def _ensure_schema(self) -> None:
        with self.lock, self.conn:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS settings(
                    namespace TEXT NOT NULL,
                    key       TEXT NOT NULL,
                    value     TEXT NOT NULL,
                    user_id   TEXT
                )
                """
            )
            self.conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_settings_ns_key ON settings(namespace, key)"
            )
