"""
mail_signatures/tests/test_bookmark_store.py

Access grants, their staleness, scope reference counting, and directory
discovery built on top of them.
"""
from __future__ import annotations

import shutil
import threading

import pytest
from cryptography.fernet import Fernet, InvalidToken

from mail_signatures.exceptions.errors import (
    BookmarkStaleError,
    DirectoryNotFoundError,
    PermissionDeniedError,
)
from mail_signatures.logic.bookmark_store import BOOKMARK_KEY
from mail_signatures.logic.directory_locator import DirectoryLocator, versioned_mail_roots
from mail_signatures.logic.token_sealing import FEATURE_ID, seal, unseal


# --------------------------------------------------------------------------- #
#  token sealing
# --------------------------------------------------------------------------- #

def test_seal_round_trip_reuses_stored_key(settings):
    token = seal(settings, b"payload")
    assert token != "payload"
    key = settings.get(FEATURE_ID, "bookmark_key")
    assert key
    assert unseal(settings, token) == b"payload"
    assert unseal(settings, seal(settings, b"new")) == b"new"
    assert settings.get(FEATURE_ID, "bookmark_key") == key


def test_replaced_key_makes_grant_stale(bookmarks, settings, sig_dir):
    bookmarks.persist(sig_dir)
    settings.set(FEATURE_ID, "bookmark_key", Fernet.generate_key().decode("ascii"))
    with pytest.raises(BookmarkStaleError):
        bookmarks.resolve()


def test_malformed_key_makes_grant_stale(bookmarks, settings, sig_dir):
    bookmarks.persist(sig_dir)
    settings.set(FEATURE_ID, "bookmark_key", "not-a-fernet-key")
    with pytest.raises(BookmarkStaleError):
        bookmarks.resolve()


def test_foreign_token_is_rejected(settings):
    foreign = Fernet(Fernet.generate_key()).encrypt(b"x").decode("ascii")
    with pytest.raises(InvalidToken):
        unseal(settings, foreign)


# --------------------------------------------------------------------------- #
#  persist / resolve
# --------------------------------------------------------------------------- #

def test_nothing_granted(bookmarks):
    assert bookmarks.resolve() is None


def test_persist_and_resolve(bookmarks, settings, sig_dir, events):
    grant = bookmarks.persist(sig_dir)
    assert grant.directory == sig_dir and not grant.is_stale
    # the token is opaque
    stored = settings.get(FEATURE_ID, BOOKMARK_KEY)
    assert stored == grant.token and str(sig_dir) not in stored

    resolved = bookmarks.resolve()
    assert resolved.directory == sig_dir and not resolved.is_stale
    assert events.names() == ["DirectoryGranted"]


def test_missing_directory_is_stale(bookmarks, sig_dir):
    bookmarks.persist(sig_dir)
    shutil.rmtree(sig_dir)
    assert bookmarks.resolve().is_stale


def test_replaced_directory_is_stale(bookmarks, sig_dir):
    bookmarks.persist(sig_dir)
    moved = sig_dir.with_name("old")
    sig_dir.rename(moved)
    sig_dir.mkdir()
    (sig_dir / "placeholder").write_text("x")
    assert bookmarks.resolve().is_stale


def test_garbage_token_raises_stale(bookmarks, settings):
    settings.set(FEATURE_ID, BOOKMARK_KEY, "not-a-token")
    with pytest.raises(BookmarkStaleError):
        bookmarks.resolve()


def test_clear(bookmarks, sig_dir):
    bookmarks.persist(sig_dir)
    bookmarks.clear()
    assert bookmarks.resolve() is None


def test_persist_requires_directory(bookmarks, tmp_path):
    with pytest.raises(DirectoryNotFoundError):
        bookmarks.persist(tmp_path / "missing")


# --------------------------------------------------------------------------- #
#  scopes
# --------------------------------------------------------------------------- #

def test_nested_scopes_are_reference_counted(bookmarks, sig_dir):
    with bookmarks.access(sig_dir):
        assert bookmarks.scope_count(sig_dir) == 1
        with bookmarks.access(sig_dir.parent / sig_dir.name):
            assert bookmarks.scope_count(sig_dir) == 2
        assert bookmarks.scope_count(sig_dir) == 1
    assert bookmarks.scope_count(sig_dir) == 0


def test_scope_released_on_error(bookmarks, sig_dir):
    with pytest.raises(RuntimeError):
        with bookmarks.access(sig_dir):
            raise RuntimeError("boom")
    assert bookmarks.scope_count(sig_dir) == 0


def test_concurrent_scopes(bookmarks, sig_dir):
    inside = threading.Barrier(4)
    counts = []

    def work():
        with bookmarks.access(sig_dir):
            inside.wait(timeout=5)
            counts.append(bookmarks.scope_count(sig_dir))
            inside.wait(timeout=5)

    threads = [threading.Thread(target=work) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert counts == [4, 4, 4, 4]
    assert bookmarks.scope_count(sig_dir) == 0


def test_scope_on_missing_directory(bookmarks, tmp_path):
    with pytest.raises(DirectoryNotFoundError):
        bookmarks.acquire(tmp_path / "missing")
    assert bookmarks.scope_count(tmp_path / "missing") == 0


def test_scope_without_permission(bookmarks, sig_dir, monkeypatch):
    monkeypatch.setattr("mail_signatures.logic.bookmark_store.os.access", lambda *a, **kw: False)
    with pytest.raises(PermissionDeniedError):
        bookmarks.acquire(sig_dir)


def test_unbalanced_release_is_ignored(bookmarks, sig_dir):
    bookmarks.release(sig_dir)
    assert bookmarks.scope_count(sig_dir) == 0


# --------------------------------------------------------------------------- #
#  DirectoryLocator
# --------------------------------------------------------------------------- #

def test_locator_prefers_grant(bookmarks, sig_dir, tmp_path):
    bookmarks.persist(sig_dir)
    locator = DirectoryLocator(bookmarks, default_root=tmp_path / "nope", home=tmp_path)
    assert locator.locate() == sig_dir
    assert locator.last_grant is not None


def test_locator_reports_stale_grant(bookmarks, sig_dir, tmp_path):
    fallback = tmp_path / "default"
    fallback.mkdir()
    bookmarks.persist(sig_dir)
    shutil.rmtree(sig_dir)
    locator = DirectoryLocator(bookmarks, default_root=fallback, home=tmp_path)
    with pytest.raises(BookmarkStaleError):
        locator.locate()


def test_locator_default_then_versions(bookmarks, tmp_path):
    home = tmp_path / "home"
    for version in ("V8", "V10", "V9", "Other"):
        (home / "Library" / "Mail" / version / "MailData" / "Signatures").mkdir(parents=True)
    assert [p.parts[-3] for p in versioned_mail_roots(home)] == ["V10", "V9", "V8"]

    locator = DirectoryLocator(bookmarks, default_root=home / "custom", home=home)
    assert locator.locate() == home / "Library" / "Mail" / "V10" / "MailData" / "Signatures"
    assert locator.last_grant is None

    (home / "custom").mkdir()
    assert locator.locate() == home / "custom"


def test_locator_not_found(bookmarks, tmp_path):
    locator = DirectoryLocator(bookmarks, default_root=tmp_path / "nope", home=tmp_path)
    with pytest.raises(DirectoryNotFoundError):
        locator.locate()
