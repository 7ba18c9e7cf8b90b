# mail_signatures/logic/bookmark_store.py
"""
Persisted access grant for the user-chosen signatures directory.

The token is opaque to callers: it records the directory path together with
its device and inode numbers and is sealed with the feature's Fernet key, so
it can be stored in the settings database next to other app state.

Access scopes are reference counted per directory: nested or concurrent
operations on the same directory share one scope, and only the last release
ends it.
"""
from __future__ import annotations

import json
import logging
import os
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from cryptography.fernet import InvalidToken
from core.logging.logic.logger import logger as event_logger
from core.settings.logic.settings_manager import SettingsManager, settings_manager

from ..exceptions.errors import BookmarkStaleError, DirectoryNotFoundError, PermissionDeniedError
from ..models.access_grant import AccessGrant
from .token_sealing import FEATURE_ID, seal, unseal

logger = logging.getLogger(__name__)

BOOKMARK_KEY = "signatures_directory_bookmark"


def _scope_key(directory: Path) -> Path:
    return Path(os.path.abspath(os.path.expanduser(str(directory))))


class BookmarkStore:
    def __init__(self, *, settings: Optional[SettingsManager] = None,
                 event_log: Optional[Any] = None) -> None:
        self._sm = settings or settings_manager
        self._log = event_log or event_logger
        self._scopes: Dict[Path, int] = {}
        self._scope_lock = threading.Lock()

    # -------- Persisted grant -----------------------------------------------
    def persist(self, directory: Path) -> AccessGrant:
        """Store a token for ``directory`` under the fixed bookmark key."""
        directory = _scope_key(directory)
        try:
            st = directory.stat()
        except OSError as exc:
            raise DirectoryNotFoundError(f"Cannot grant access to {directory}: {exc.strerror}",
                                         path=directory) from exc
        if not directory.is_dir():
            raise DirectoryNotFoundError(f"{directory} is not a directory", path=directory)

        payload = {
            "path": str(directory),
            "dev": st.st_dev,
            "ino": st.st_ino,
            "granted_at": datetime.now(timezone.utc).isoformat(),
        }
        token = seal(self._sm, json.dumps(payload).encode("utf-8"))
        self._sm.set(FEATURE_ID, BOOKMARK_KEY, token)
        self._log.log(FEATURE_ID, "DirectoryGranted", message=str(directory))
        return AccessGrant(token=token, directory=directory, is_stale=False)

    def resolve(self) -> Optional[AccessGrant]:
        """
        Returns None when nothing was granted yet. A grant is stale when the
        directory is gone or was replaced by a different one at the same path.
        Raises BookmarkStaleError when the token itself is unusable.
        """
        token = self._sm.get(FEATURE_ID, BOOKMARK_KEY, None)
        if not token:
            return None
        try:
            payload = json.loads(unseal(self._sm, str(token)).decode("utf-8"))
            directory = Path(payload["path"])
            dev, ino = int(payload["dev"]), int(payload["ino"])
        except (InvalidToken, UnicodeError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Stored signatures bookmark cannot be read: %s", exc)
            raise BookmarkStaleError(
                "The saved access to the signatures folder is no longer valid. "
                "Please select the folder again."
            ) from exc

        try:
            st = directory.stat()
            stale = not directory.is_dir() or (st.st_dev, st.st_ino) != (dev, ino)
        except OSError:
            stale = True
        if stale:
            logger.info("Signatures bookmark for %s is stale", directory)
        return AccessGrant(token=str(token), directory=directory, is_stale=stale)

    def clear(self) -> None:
        self._sm.delete(FEATURE_ID, BOOKMARK_KEY)

    # -------- Access scopes -------------------------------------------------
    def acquire(self, directory: Path) -> None:
        """Begin (or join) the access scope of ``directory``."""
        key = _scope_key(directory)
        with self._scope_lock:
            count = self._scopes.get(key, 0)
            if count == 0:
                self._begin_access(key)
            self._scopes[key] = count + 1

    def release(self, directory: Path) -> None:
        key = _scope_key(directory)
        with self._scope_lock:
            count = self._scopes.get(key, 0)
            if count <= 0:
                logger.warning("release() without matching acquire() for %s", key)
                return
            if count == 1:
                del self._scopes[key]
                logger.debug("Access scope ended for %s", key)
            else:
                self._scopes[key] = count - 1

    @contextmanager
    def access(self, directory: Path) -> Iterator[Path]:
        self.acquire(directory)
        try:
            yield _scope_key(directory)
        finally:
            self.release(directory)

    def scope_count(self, directory: Path) -> int:
        with self._scope_lock:
            return self._scopes.get(_scope_key(directory), 0)

    @staticmethod
    def _begin_access(directory: Path) -> None:
        if not directory.is_dir():
            raise DirectoryNotFoundError(f"Signatures folder {directory} does not exist", path=directory)
        if not os.access(directory, os.R_OK | os.X_OK):
            raise PermissionDeniedError(f"No permission to read {directory}", path=directory)
        logger.debug("Access scope started for %s", directory)
