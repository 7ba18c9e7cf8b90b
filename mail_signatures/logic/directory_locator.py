# mail_signatures/logic/directory_locator.py
"""
Find the mail client's signatures folder without ever prompting the user.

Order:
    1) a previously granted directory (BookmarkStore); a stale grant is
       reported, never skipped silently
    2) the configured default path, then every ~/Library/Mail/V*/MailData/Signatures,
       newest mail data version first
    3) DirectoryNotFoundError

Choosing a folder interactively is the caller's business (see
gui/directory_chooser.py); this module is safe to call from any thread.
"""
from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Iterable, List, Optional

from ..exceptions.errors import BookmarkStaleError, DirectoryNotFoundError
from ..models.access_grant import AccessGrant
from .bookmark_store import BookmarkStore

logger = logging.getLogger(__name__)

_MAIL_VERSION_RE = re.compile(r"^V(\d+)$")


def _expand(path: Path | str) -> Path:
    return Path(os.path.expandvars(os.path.expanduser(str(path))))


def versioned_mail_roots(home: Path) -> List[Path]:
    """~/Library/Mail/V*/MailData/Signatures candidates, highest version first."""
    mail_dir = home / "Library" / "Mail"
    try:
        children = list(mail_dir.iterdir())
    except OSError:
        return []
    versions = []
    for child in children:
        m = _MAIL_VERSION_RE.match(child.name)
        if m:
            versions.append((int(m.group(1)), child / "MailData" / "Signatures"))
    return [p for _, p in sorted(versions, reverse=True)]


class DirectoryLocator:
    def __init__(self, bookmarks: BookmarkStore, *, default_root: Path | str,
                 home: Optional[Path] = None) -> None:
        self._bookmarks = bookmarks
        self._default_root = _expand(default_root)
        self._home = home or Path.home()
        self.last_grant: Optional[AccessGrant] = None

    def locate(self) -> Path:
        """``last_grant`` is set when the result came from the persisted grant."""
        self.last_grant = None
        grant = self._bookmarks.resolve()
        if grant is not None:
            if grant.is_stale:
                raise BookmarkStaleError(
                    f"The signatures folder {grant.directory} moved or was replaced. "
                    "Please select it again.",
                    path=grant.directory,
                )
            logger.info("Using granted signatures folder %s", grant.directory)
            self.last_grant = grant
            return grant.directory

        for candidate in self.default_candidates():
            if self._is_usable(candidate):
                logger.info("Found signatures folder at %s", candidate)
                return candidate

        raise DirectoryNotFoundError(
            "No signatures folder found. Please select "
            f"{self._default_root} manually."
        )

    def default_candidates(self) -> List[Path]:
        seen: List[Path] = []
        for p in self._ordered(versioned_mail_roots(self._home)):
            if p not in seen:
                seen.append(p)
        return seen

    def _ordered(self, versioned: Iterable[Path]) -> Iterable[Path]:
        yield self._default_root
        yield from versioned

    @staticmethod
    def _is_usable(candidate: Path) -> bool:
        if not candidate.is_dir():
            return False
        if not os.access(candidate, os.R_OK | os.X_OK):
            logger.warning("Signatures folder %s exists but is not readable", candidate)
            return False
        return True
