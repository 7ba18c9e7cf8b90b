# mail_signatures/logic/format_detector.py
"""
Payload format detection.

A file is classified by an ordered list of strategies, first match wins:

    1) extension        .mailsignature / .webarchive
    2) archive magic    binary plist header, or an XML plist naming WebMainResource
    3) HTML markers     <html, <body, <div, <p, <table, <span, <!DOCTYPE
    4) fallback         PLAIN_TEXT_FALLBACK

Each strategy is a pure function of (path, leading bytes) so it can be tested
on its own. ``detect`` votes over a whole directory to pick the format new
signatures are written in.
"""
from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ..models.signature_enums import PayloadFormat, SignatureFormat

logger = logging.getLogger(__name__)

HEAD_BYTES = 4096

Strategy = Callable[[Path, bytes], Optional[PayloadFormat]]

HTML_MARKERS: Sequence[bytes] = (
    b"<html", b"<body", b"<div", b"<p>", b"<p ", b"<table", b"<span", b"<!doctype",
)
_BPLIST_MAGIC = b"bplist00"


def extension_strategy(raw_extension: str, archive_extension: str) -> Strategy:
    raw_ext, archive_ext = raw_extension.lower(), archive_extension.lower()

    def by_extension(path: Path, head: bytes) -> Optional[PayloadFormat]:
        ext = path.suffix.lower().lstrip(".")
        if ext == raw_ext:
            return PayloadFormat.RAW_HTML
        if ext == archive_ext:
            return PayloadFormat.WEB_ARCHIVE
        return None

    return by_extension


def archive_magic_strategy(path: Path, head: bytes) -> Optional[PayloadFormat]:
    if head.startswith(_BPLIST_MAGIC):
        return PayloadFormat.WEB_ARCHIVE
    stripped = head.lstrip(b"\xef\xbb\xbf \t\r\n")
    if stripped.startswith(b"<?xml") and b"WebMainResource" in head:
        return PayloadFormat.WEB_ARCHIVE
    return None


def html_marker_strategy(path: Path, head: bytes) -> Optional[PayloadFormat]:
    if looks_like_html(head):
        return PayloadFormat.RAW_HTML
    return None


def looks_like_html(data: bytes | str) -> bool:
    if isinstance(data, str):
        data = data.encode("utf-8", errors="ignore")
    lowered = data.lower()
    return any(marker in lowered for marker in HTML_MARKERS)


class FormatDetector:
    def __init__(self, *, raw_extension: str = "mailsignature",
                 archive_extension: str = "webarchive",
                 manifest_name: str = "AllSignatures.plist",
                 strategies: Optional[List[Strategy]] = None) -> None:
        self.raw_extension = raw_extension.lower().lstrip(".")
        self.archive_extension = archive_extension.lower().lstrip(".")
        self.manifest_name = manifest_name
        self._strategies: List[Strategy] = strategies or [
            extension_strategy(self.raw_extension, self.archive_extension),
            archive_magic_strategy,
            html_marker_strategy,
        ]

    @property
    def strategies(self) -> List[Strategy]:
        return list(self._strategies)

    # -------- single file ----------------------------------------------------
    def classify(self, path: Path) -> PayloadFormat:
        """Raises OSError when the file cannot be read."""
        with Path(path).open("rb") as fh:
            head = fh.read(HEAD_BYTES)
        return self.classify_head(Path(path), head)

    def classify_head(self, path: Path, head: bytes) -> PayloadFormat:
        for strategy in self._strategies:
            result = strategy(path, head)
            if result is not None:
                return result
        return PayloadFormat.PLAIN_TEXT_FALLBACK

    # -------- directory ------------------------------------------------------
    def candidates(self, directory: Path) -> List[Path]:
        """Files that may hold a signature payload, sorted by name."""
        found = []
        for entry in sorted(Path(directory).iterdir()):
            name = entry.name
            if name.startswith(".") or name.endswith(".tmp"):
                continue
            if name == self.manifest_name or entry.suffix.lower() == ".plist":
                continue
            if entry.is_file():
                found.append(entry)
        return found

    def detect(self, directory: Path) -> PayloadFormat:
        """
        Majority format of the directory. Archives win ties, as the mail client
        only keeps raw files around when it never switched to archives.
        """
        candidates = self.candidates(directory)
        by_ext = Counter(self.format_for_extension(p) for p in candidates)
        by_ext.pop(None, None)
        if by_ext:
            return self._majority(by_ext)

        sniffed: Counter = Counter()
        for path in candidates:
            try:
                fmt = self.classify(path)
            except OSError as exc:
                logger.debug("Cannot sniff %s: %s", path.name, exc)
                continue
            if fmt is not PayloadFormat.PLAIN_TEXT_FALLBACK:
                sniffed[fmt] += 1
        if sniffed:
            return self._majority(sniffed)
        return PayloadFormat.PLAIN_TEXT_FALLBACK

    # -------- helpers --------------------------------------------------------
    def format_for_extension(self, path: Path) -> Optional[PayloadFormat]:
        ext = path.suffix.lower().lstrip(".")
        if ext == self.raw_extension:
            return PayloadFormat.RAW_HTML
        if ext == self.archive_extension:
            return PayloadFormat.WEB_ARCHIVE
        return None

    def extension_for(self, fmt: SignatureFormat) -> str:
        if fmt is SignatureFormat.WEB_ARCHIVE:
            return self.archive_extension
        return self.raw_extension

    @staticmethod
    def _majority(counts: Counter) -> PayloadFormat:
        archives = counts.get(PayloadFormat.WEB_ARCHIVE, 0)
        raws = counts.get(PayloadFormat.RAW_HTML, 0)
        return PayloadFormat.WEB_ARCHIVE if archives >= raws else PayloadFormat.RAW_HTML
