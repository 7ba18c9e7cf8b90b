"""
mail_signatures/tests/test_signature_repository.py

End-to-end behaviour of list / create / update / save / delete against a
temporary signatures folder.
"""
from __future__ import annotations

import os
import re
import threading
from unittest import mock

import pytest

from mail_signatures.exceptions.errors import (
    DirectoryNotFoundError,
    SignatureNotFoundError,
    WriteFailedError,
)
from mail_signatures.logic import webarchive
from mail_signatures.logic.session import SignatureSession
from mail_signatures.logic.signature_repository import SignatureRepository
from mail_signatures.models.rich_content import RichContent
from mail_signatures.models.signature import SignatureContent
from mail_signatures.models.signature_enums import ErrorKind, SignatureFormat

UUID_RE = re.compile(r"^[0-9A-F]{8}-[0-9A-F]{4}-4[0-9A-F]{3}-[89AB][0-9A-F]{3}-[0-9A-F]{12}$")


# --------------------------------------------------------------------------- #
#  list
# --------------------------------------------------------------------------- #

def test_single_archive_without_manifest(repo, sig_dir, make_archive):
    make_archive(sig_dir, "A1", "<html><body>Hi</body></html>")
    result = repo.list()
    assert len(result) == 1
    sig = result[0]
    assert sig.signature_id == "A1"
    assert sig.format is SignatureFormat.WEB_ARCHIVE
    assert "Hi" in sig.canonical_html
    assert repo.diagnostics == []


def test_unresolved_manifest_entry_is_diagnosed(repo, sig_dir, make_manifest, make_raw):
    make_raw(sig_dir, "A1", "<p>Present</p>")
    make_manifest(sig_dir, {"ACC": [
        {"SignatureID": "A1", "SignatureName": "Present"},
        {"SignatureID": "B2", "SignatureName": "Work"},
    ]})
    ids = [s.signature_id for s in repo.list()]
    assert ids == ["A1"]
    unresolved = [d for d in repo.diagnostics if d.kind is ErrorKind.MANIFEST_ENTRY_UNRESOLVED]
    assert [d.subject for d in unresolved] == ["B2"]
    with pytest.raises(SignatureNotFoundError):
        repo.get("B2")


def test_ids_match_file_stems(repo, sig_dir, make_manifest, make_raw, make_archive):
    make_raw(sig_dir, "R1", "<p>raw</p>")
    make_archive(sig_dir, "W1", "<p>archive</p>")
    (sig_dir / "loose.html").write_text("<div>Loose file</div>", encoding="utf-8")
    make_manifest(sig_dir, {"ACC": [{"SignatureID": "R1", "SignatureName": "From manifest"}]})
    result = {s.signature_id: s for s in repo.list()}
    assert set(result) == {"R1", "W1", "loose"}
    for sig in result.values():
        assert sig.signature_id == sig.storage_path.stem
    assert result["R1"].display_name == "From manifest"
    assert result["R1"].from_manifest and result["R1"].account_ids == ("ACC",)
    assert result["W1"].display_name == "archive"
    assert not result["W1"].from_manifest


@pytest.mark.parametrize("manifest_bytes", [None, b"not a plist at all"])
def test_heuristic_scan_when_manifest_missing_or_broken(repo, sig_dir, manifest_bytes):
    if manifest_bytes is not None:
        (sig_dir / "AllSignatures.plist").write_bytes(manifest_bytes)
    (sig_dir / "mystery").write_text("<html><body><p>Sniffed</p></body></html>", encoding="utf-8")
    result = repo.list()
    assert [s.signature_id for s in result] == ["mystery"]
    assert result[0].format is SignatureFormat.RAW_HTML
    kinds = [d.kind for d in repo.diagnostics]
    assert kinds == ([] if manifest_bytes is None else [ErrorKind.MANIFEST_PARSE_FAILED])


def test_bad_files_become_diagnostics(repo, sig_dir, make_raw):
    make_raw(sig_dir, "good", "<p>ok</p>")
    (sig_dir / "broken.webarchive").write_bytes(b"bplist00 truncated")
    (sig_dir / "binary.dat").write_bytes(b"\x00\xff\xfe")
    (sig_dir / "bad.mailsignature").write_bytes(b"<p>\xff</p>")
    assert [s.signature_id for s in repo.list()] == ["good"]
    by_subject = {d.subject: d.kind for d in repo.diagnostics}
    assert by_subject == {
        "broken.webarchive": ErrorKind.FORMAT_UNRECOGNIZED,
        "binary.dat": ErrorKind.FORMAT_UNRECOGNIZED,
        "bad.mailsignature": ErrorKind.CONTENT_DECODE_FAILED,
    }


def test_duplicate_ids_are_reported(repo, sig_dir, make_raw, make_archive):
    make_raw(sig_dir, "D", "<p>raw</p>")
    make_archive(sig_dir, "D", "<p>archive</p>")
    result = repo.list()
    assert len(result) == 1
    assert result[0].format is SignatureFormat.RAW_HTML
    assert repo.diagnostics[0].kind is ErrorKind.DUPLICATE_SIGNATURE_ID


def test_list_without_directory_propagates(bookmarks, sig_config, tmp_path):
    sig_config.default_root = tmp_path / "missing"
    session = SignatureSession(bookmarks=bookmarks, config=sig_config, home=tmp_path)
    with pytest.raises(DirectoryNotFoundError):
        SignatureRepository(session).list()


def test_reload_keeps_unsaved_edits(repo, sig_dir, make_raw):
    make_raw(sig_dir, "E", "<p>disk</p>")
    repo.list()
    repo.update("E", SignatureContent(html="<p>memory</p>"))
    reloaded = {s.signature_id: s for s in repo.list()}
    assert reloaded["E"].canonical_html == "<p>memory</p>"
    assert reloaded["E"].dirty


# --------------------------------------------------------------------------- #
#  create
# --------------------------------------------------------------------------- #

@pytest.mark.parametrize("existing, expected_format, expected_ext", [
    ("webarchive", SignatureFormat.WEB_ARCHIVE, ".webarchive"),
    ("mailsignature", SignatureFormat.RAW_HTML, ".mailsignature"),
])
def test_create_follows_majority_format(repo, sig_dir, events, existing, expected_format, expected_ext):
    for name in ("one", "two"):
        if existing == "webarchive":
            (sig_dir / f"{name}.webarchive").write_bytes(webarchive.build("<p>x</p>"))
        else:
            (sig_dir / f"{name}.mailsignature").write_text("<p>x</p>", encoding="utf-8")

    created = repo.create("New one", SignatureContent(rich=RichContent.from_plain_text("Jane\nACME")))
    assert created.format is expected_format
    assert created.storage_path.suffix == expected_ext
    assert created.storage_path.exists()
    assert UUID_RE.match(created.signature_id)
    assert created.display_name == "New one"
    assert created.rich_content.plain_text == "Jane\nACME"
    assert not created.dirty
    assert repo.get(created.signature_id) is created
    assert ("mail_signatures", "SignatureCreated", "INFO", created.signature_id) in events.events


def test_create_in_empty_directory_uses_raw_html(repo, sig_dir):
    created = repo.create("First", SignatureContent(html="<p>First</p>"))
    assert created.format is SignatureFormat.RAW_HTML
    assert created.storage_path.read_text(encoding="utf-8") == "<p>First</p>"


def test_create_failure_leaves_nothing_behind(repo, sig_dir):
    with mock.patch("mail_signatures.logic.persistence_writer.os.replace", side_effect=OSError(13, "Denied")):
        with pytest.raises(WriteFailedError):
            repo.create("Broken", SignatureContent(html="<p>x</p>"))
    assert list(sig_dir.iterdir()) == []
    assert repo.list() == []


def test_create_removes_file_that_cannot_be_read_back(repo, sig_dir):
    with mock.patch.object(repo._parser, "parse", side_effect=WriteFailedError("read back failed")):
        with pytest.raises(WriteFailedError):
            repo.create("Unreadable", SignatureContent(html="<p>x</p>"))
    assert list(sig_dir.iterdir()) == []


# --------------------------------------------------------------------------- #
#  update / save
# --------------------------------------------------------------------------- #

def test_update_is_memory_only(repo, sig_dir, make_raw):
    path = make_raw(sig_dir, "U", "<p>before</p>")
    repo.list()
    sig = repo.update("U", SignatureContent(rich=RichContent.from_plain_text("after")))
    assert sig.dirty
    assert "after" in sig.canonical_html
    assert path.read_text(encoding="utf-8") == "<p>before</p>"


def test_update_with_html_regenerates_rich(repo, sig_dir, make_raw):
    make_raw(sig_dir, "U", "<p>before</p>")
    repo.list()
    sig = repo.update("U", SignatureContent(html="<div>one</div><div>two</div>"))
    assert sig.rich_content.plain_text == "one\ntwo"


def test_save_archive_then_reparse_is_byte_identical(repo, sig_dir, make_archive, events):
    make_archive(sig_dir, "S", "<html><body>Old</body></html>")
    repo.list()
    new_html = "<html><body><div style=\"color: #123\">Jane Doe &amp; Co</div>\n</body></html>"
    repo.update("S", SignatureContent(html=new_html))
    saved = repo.save("S")
    assert not saved.dirty
    assert webarchive.extract_html((sig_dir / "S.webarchive").read_bytes()) == new_html
    reparsed = {s.signature_id: s for s in repo.list()}["S"]
    assert reparsed.canonical_html == new_html
    assert "SignatureSaved" in events.names()


def test_save_keeps_protection(repo, sig_dir, make_raw):
    path = make_raw(sig_dir, "P", "<p>x</p>")
    repo.list()
    repo.update("P", SignatureContent(html="<p>y</p>"))
    repo.save("P")
    assert not os.stat(path).st_mode & 0o222


def test_failed_save_stays_dirty(repo, sig_dir, make_raw, events):
    make_raw(sig_dir, "F", "<p>x</p>")
    repo.list()
    repo.update("F", SignatureContent(html="<p>y</p>"))
    with mock.patch("mail_signatures.logic.persistence_writer.os.replace", side_effect=OSError(28, "Full")):
        with pytest.raises(WriteFailedError):
            repo.save("F")
    assert repo.get("F").dirty
    assert "SaveFailed" in events.names()
    repo.save("F")
    assert not repo.get("F").dirty


def test_edit_during_save_keeps_record_dirty(repo, sig_dir, make_raw):
    path = make_raw(sig_dir, "R", "<p>x</p>")
    repo.list()
    repo.update("R", SignatureContent(html="<p>first</p>"))

    started = threading.Event()
    release = threading.Event()
    write = repo._writer.write
    failures = []

    def blocking_write(signature):
        started.set()
        assert release.wait(5)
        write(signature)

    def save():
        try:
            repo.save("R")
        except Exception as exc:  # surfaced below
            failures.append(exc)

    with mock.patch.object(repo._writer, "write", side_effect=blocking_write):
        worker = threading.Thread(target=save)
        worker.start()
        assert started.wait(5)
        repo.update("R", SignatureContent(html="<p>second</p>"))
        release.set()
        worker.join(5)

    assert failures == []
    assert path.read_text(encoding="utf-8") == "<p>first</p>"
    assert repo.get("R").dirty
    assert {s.signature_id: s for s in repo.list()}["R"].canonical_html == "<p>second</p>"

    repo.save("R")
    assert not repo.get("R").dirty
    assert path.read_text(encoding="utf-8") == "<p>second</p>"


def test_rename_marks_dirty(repo, sig_dir, make_raw):
    make_raw(sig_dir, "N", "<p>x</p>")
    repo.list()
    assert repo.rename("N", "Renamed").dirty
    assert repo.get("N").display_name == "Renamed"


def test_unknown_ids(repo):
    with pytest.raises(SignatureNotFoundError):
        repo.update("nope", SignatureContent(html="<p/>"))
    with pytest.raises(SignatureNotFoundError):
        repo.save("nope")
    with pytest.raises(SignatureNotFoundError):
        repo.delete("nope")


# --------------------------------------------------------------------------- #
#  delete / diagnostics call
# --------------------------------------------------------------------------- #

def test_delete_then_list(repo, sig_dir, make_raw, make_archive, events):
    make_raw(sig_dir, "Keep", "<p>keep</p>")
    make_archive(sig_dir, "Gone", "<p>gone</p>")
    repo.list()
    repo.save("Gone")   # leaves the file protected
    repo.delete("Gone")
    assert not (sig_dir / "Gone.webarchive").exists()
    assert [s.signature_id for s in repo.list()] == ["Keep"]
    assert "SignatureDeleted" in events.names()


def test_delete_when_file_already_gone(repo, sig_dir, make_raw):
    path = make_raw(sig_dir, "X", "<p>x</p>")
    repo.list()
    path.unlink()
    repo.delete("X")
    with pytest.raises(SignatureNotFoundError):
        repo.get("X")


def test_delete_removes_every_payload_of_the_id(repo, sig_dir, make_raw, make_archive, events):
    raw = make_raw(sig_dir, "Twice", "<p>raw</p>")
    archive = make_archive(sig_dir, "Twice", "<p>archive</p>")
    make_raw(sig_dir, "Other", "<p>other</p>")
    repo.list()
    repo.delete("Twice")
    assert not raw.exists()
    assert not archive.exists()
    assert [s.signature_id for s in repo.list()] == ["Other"]
    assert repo.diagnostics == []


def test_manifest_entry_matches_uppercase_extension(repo, sig_dir, make_manifest):
    path = sig_dir / "UP.WEBARCHIVE"
    path.write_bytes(webarchive.build("<p>upper</p>"))
    make_manifest(sig_dir, {"ACC": [{"SignatureID": "UP", "SignatureName": "Upper"}]})
    result = repo.list()
    assert [(s.signature_id, s.filename, s.from_manifest) for s in result] == [("UP", "UP.WEBARCHIVE", True)]
    assert result[0].display_name == "Upper"
    assert repo.diagnostics == []


def test_analyze_manifest(repo, sig_dir, make_manifest):
    make_manifest(sig_dir, {"ACC": [{"SignatureID": "B2", "SignatureName": "Work"}]})
    analysis = repo.analyze_manifest()
    assert analysis.exists
    assert [e.signature_id for e in analysis.missing] == ["B2"]
