from __future__ import annotations

import plistlib
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from core.config.config_service import SignaturesConfig
from core.settings.logic.settings_manager import SettingsManager
from core.settings.logic.settings_repository import SettingsRepository
from mail_signatures.logic.bookmark_store import BookmarkStore
from mail_signatures.logic.session import SignatureSession
from mail_signatures.logic.signature_repository import SignatureRepository
from mail_signatures.logic import webarchive


class EventRecorder:
    """Stands in for the SQLite event log; keeps (feature, event, level, reference_id)."""

    def __init__(self) -> None:
        self.events: List[tuple] = []

    def log(self, feature, event, *, level="INFO", reference_id=None, message=None) -> None:
        self.events.append((feature, event, level, reference_id))

    def names(self) -> List[str]:
        return [e[1] for e in self.events]


@pytest.fixture
def events() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def settings(tmp_path: Path):
    repo = SettingsRepository(tmp_path / "settings.db")
    yield SettingsManager(repo)
    repo.close()


@pytest.fixture
def bookmarks(settings, events) -> BookmarkStore:
    return BookmarkStore(settings=settings, event_log=events)


@pytest.fixture
def sig_dir(tmp_path: Path) -> Path:
    d = tmp_path / "Signatures"
    d.mkdir()
    return d


@pytest.fixture
def sig_config() -> SignaturesConfig:
    return SignaturesConfig(protect_after_write="readonly")


@pytest.fixture
def session(bookmarks, sig_dir, sig_config) -> SignatureSession:
    return SignatureSession(bookmarks=bookmarks, config=sig_config, directory=sig_dir)


@pytest.fixture
def repo(session, events) -> SignatureRepository:
    return SignatureRepository(session, event_log=events)


@pytest.fixture
def make_archive():
    def _make(directory: Path, sig_id: str, html: str) -> Path:
        path = directory / f"{sig_id}.webarchive"
        path.write_bytes(webarchive.build(html))
        return path
    return _make


@pytest.fixture
def make_raw():
    def _make(directory: Path, sig_id: str, html: str) -> Path:
        path = directory / f"{sig_id}.mailsignature"
        path.write_text(html, encoding="utf-8")
        return path
    return _make


@pytest.fixture
def make_manifest():
    def _make(directory: Path, accounts: Dict[str, List[Dict[str, str]]],
              name: str = "AllSignatures.plist", fmt: Optional[int] = None) -> Path:
        data = {"SignaturesByAccountID": {
            acct: {"SignaturesList": entries} for acct, entries in accounts.items()
        }}
        path = directory / name
        path.write_bytes(plistlib.dumps(data, fmt=fmt or plistlib.FMT_XML))
        return path
    return _make
