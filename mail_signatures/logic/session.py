# mail_signatures/logic/session.py
"""
SignatureSession: the explicit handle for "which signatures folder are we
working on". Repositories, writers and workers receive it instead of reading
process-wide state.
"""
from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from core.config.config_service import SignaturesConfig, config_service

from ..models.access_grant import AccessGrant
from .bookmark_store import BookmarkStore
from .directory_locator import DirectoryLocator

logger = logging.getLogger(__name__)


class SignatureSession:
    def __init__(self, *, bookmarks: Optional[BookmarkStore] = None,
                 config: Optional[SignaturesConfig] = None,
                 directory: Optional[Path] = None,
                 home: Optional[Path] = None) -> None:
        """
        ``directory`` pins the session to a folder (tests, command line use);
        otherwise the folder is located lazily on first use.
        """
        self.bookmarks = bookmarks or BookmarkStore()
        if config is None:
            config = config_service.signatures
            origin = config_service.meta_source("Signatures", "default_root") or {}
            logger.debug("Default signatures folder %s (%s layer)", config.default_root,
                         origin.get("layer", "code"))
        self.config = config
        self._locator = DirectoryLocator(self.bookmarks, default_root=self.config.default_root, home=home)
        self._directory: Optional[Path] = Path(directory) if directory else None
        self._granted: Optional[Path] = None
        self._lock = threading.RLock()

    # -------- directory -----------------------------------------------------
    @property
    def granted_directory(self) -> Optional[Path]:
        """Folder the user explicitly granted, if that is what the session uses."""
        return self._granted

    def directory(self, *, refresh: bool = False) -> Path:
        """
        Current signatures folder. Raises DirectoryNotFoundError or
        BookmarkStaleError when none can be used; the caller then asks the user
        (gui/directory_chooser.py) and passes the answer to grant().
        """
        with self._lock:
            if self._directory is None or refresh:
                self._directory = self._locator.locate()
                grant = self._locator.last_grant
                self._granted = grant.directory if grant is not None else None
            return self._directory

    def grant(self, directory: Path) -> AccessGrant:
        """Persist the user's choice and switch the session to it."""
        grant = self.bookmarks.persist(directory)
        with self._lock:
            self._directory = grant.directory
            self._granted = grant.directory
        logger.info("Signatures folder granted: %s", grant.directory)
        return grant

    def revoke(self) -> None:
        self.bookmarks.clear()
        with self._lock:
            if self._granted is not None and self._directory == self._granted:
                self._directory = None
            self._granted = None

    # -------- access scope --------------------------------------------------
    @contextmanager
    def scope(self, path: Path) -> Iterator[None]:
        """Hold the granted folder's access scope while touching ``path``."""
        granted = self._granted
        if granted is None or not _is_within(path, granted):
            yield
            return
        with self.bookmarks.access(granted):
            yield


def _is_within(path: Path, directory: Path) -> bool:
    try:
        Path(os.path.abspath(path)).relative_to(os.path.abspath(directory))
        return True
    except ValueError:
        return False
