# mail_signatures/logic/signature_parser.py
"""
Builds a Signature from one payload file.

With manifest metadata the declared name is used. Without it the name is
guessed from the content:

    <title>  →  first text of <p> / <div> / <span> / <body>  →  "Signature: <stem>"

Plain-text payloads are wrapped in a small HTML shell and named after their
leading text.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from bs4 import BeautifulSoup

from ..exceptions.errors import ContentDecodeError, FormatUnrecognizedError
from ..models.manifest_entry import ManifestEntry
from ..models.signature import Signature
from ..models.signature_enums import PayloadFormat
from . import content_codec, webarchive
from .format_detector import HEAD_BYTES, FormatDetector, looks_like_html
from .manifest_parser import declared_name

logger = logging.getLogger(__name__)

UNTITLED = "Untitled Signature"
NAME_SOURCE_TAGS = ("p", "div", "span", "body")


def truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def _collapse(text: str) -> str:
    return " ".join(text.split())


class SignatureParser:
    def __init__(self, detector: FormatDetector, *, name_max_length: int = 30,
                 plain_text_max_chars: int = 10000) -> None:
        self._detector = detector
        self.name_max_length = name_max_length
        self.plain_text_max_chars = plain_text_max_chars

    # ------------------------------------------------------------------ #
    def parse(self, payload_path: Path, metadata: Optional[Sequence[ManifestEntry]] = None,
              *, name: Optional[str] = None) -> Signature:
        """
        ``metadata`` holds the manifest entries naming this payload, or None
        when the file was found by scanning the directory. ``name`` overrides
        whatever name would be derived.
        """
        path = Path(payload_path)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise ContentDecodeError(f"Cannot read {path.name}: {exc.strerror}", path=path) from exc

        payload_format = self._detector.classify_head(path, data[:HEAD_BYTES])
        if payload_format is PayloadFormat.WEB_ARCHIVE:
            try:
                html = webarchive.extract_html(data, path=path)
            except FormatUnrecognizedError:
                # bare HTML saved under a .webarchive name
                html = self._bare_html(data)
                if html is None:
                    raise
                logger.info("%s holds bare HTML instead of an archive", path.name)
        else:
            html = self._decode_text(path, data, payload_format)

        is_html = looks_like_html(html)
        if metadata is not None:
            if not is_html and html.strip():
                html = content_codec.plain_text_to_html(html)
            display_name = declared_name(metadata) or UNTITLED
        elif is_html:
            display_name = self.name_from_html(html, path.stem)
        else:
            text = html
            if not text.strip() or len(text) >= self.plain_text_max_chars:
                raise FormatUnrecognizedError(f"{path.name} is neither HTML nor usable plain text", path=path)
            html = content_codec.plain_text_to_html(text)
            display_name = truncate(_collapse(text), self.name_max_length)

        return Signature(
            signature_id=path.stem,
            storage_path=path,
            format=payload_format.to_signature_format(),
            display_name=display_name if name is None else name,
            rich_content=content_codec.html_to_rich(html),
            canonical_html=html,
            account_ids=tuple(dict.fromkeys(e.account_id for e in metadata or ())),
            from_manifest=metadata is not None,
        )

    @staticmethod
    def _bare_html(data: bytes) -> Optional[str]:
        if data.startswith(b"bplist") or data.lstrip().startswith(b"<?xml"):
            return None
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            return None
        return text if looks_like_html(text) else None

    @staticmethod
    def _decode_text(path: Path, data: bytes, payload_format: PayloadFormat) -> str:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            if payload_format is PayloadFormat.PLAIN_TEXT_FALLBACK:
                # not a signature at all, just some binary file in the folder
                raise FormatUnrecognizedError(f"{path.name} is not a text file", path=path) from exc
            raise ContentDecodeError(f"{path.name} is not valid UTF-8", path=path) from exc

    # ------------------------------------------------------------------ #
    def name_from_html(self, html: str, stem: str) -> str:
        soup = BeautifulSoup(html, "html.parser")
        if soup.title is not None:
            title = _collapse(soup.title.get_text())
            if title:
                return title
        for tag in soup(["script", "style", "head"]):
            tag.decompose()

        for tag_name in NAME_SOURCE_TAGS:
            for tag in soup.find_all(tag_name):
                text = _collapse(tag.get_text(" "))
                if text:
                    return truncate(text, self.name_max_length)
        return f"Signature: {stem}"
