# mail_signatures/logic/signature_repository.py
"""
SignatureRepository: the operations the signature list/editor panels call.

    list()            manifest first, then a heuristic scan of everything else;
                      per-file problems end up in ``diagnostics``
    create()          majority format, fresh id, write, read back
    update()/rename() in-memory only, marks the record dirty
    save()            persist a snapshot; dirty is cleared only on success and only
                      if no edit arrived meanwhile
    delete()          unlock, remove every payload of the id, forget the record

Directory-level errors (no folder, stale grant, no permission) propagate so
the UI can ask for a new grant. Per-operation errors are SignatureError
subclasses carrying a message fit for display.
"""
from __future__ import annotations

import logging
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from core.logging.logic.logger import logger as event_logger

from ..exceptions.errors import (
    ManifestParseError,
    PermissionDeniedError,
    SignatureError,
    SignatureNotFoundError,
    WriteFailedError,
)
from ..models.diagnostics import Diagnostic
from ..models.manifest_entry import ManifestAnalysis, ManifestEntry
from ..models.signature import Signature, SignatureContent
from ..models.signature_enums import ErrorKind
from . import content_codec
from .format_detector import FormatDetector
from .manifest_parser import ManifestParser
from .persistence_writer import PersistenceWriter
from .protection_policy import policy_for
from .session import SignatureSession
from .signature_parser import UNTITLED, SignatureParser
from .token_sealing import FEATURE_ID

logger = logging.getLogger(__name__)


class SignatureRepository:
    def __init__(self, session: SignatureSession, *,
                 detector: Optional[FormatDetector] = None,
                 manifest: Optional[ManifestParser] = None,
                 parser: Optional[SignatureParser] = None,
                 writer: Optional[PersistenceWriter] = None,
                 event_log: Optional[Any] = None) -> None:
        cfg = session.config
        self._session = session
        self._detector = detector or FormatDetector(
            raw_extension=cfg.raw_extension,
            archive_extension=cfg.archive_extension,
            manifest_name=cfg.manifest_name,
        )
        self._manifest = manifest or ManifestParser(
            raw_extension=cfg.raw_extension,
            archive_extension=cfg.archive_extension,
            manifest_name=cfg.manifest_name,
        )
        self._parser = parser or SignatureParser(
            self._detector,
            name_max_length=cfg.name_max_length,
            plain_text_max_chars=cfg.plain_text_max_chars,
        )
        self._log = event_log or event_logger
        self._writer = writer or PersistenceWriter(
            scope=session.scope,
            protection=policy_for(cfg.protect_after_write),
            event_log=self._log,
        )
        self._records: Dict[str, Signature] = {}
        self._diagnostics: List[Diagnostic] = []
        self._lock = threading.RLock()

    @property
    def session(self) -> SignatureSession:
        return self._session

    @property
    def diagnostics(self) -> List[Diagnostic]:
        """Problems recorded by the last list()."""
        with self._lock:
            return list(self._diagnostics)

    # ------------------------------------------------------------------ #
    # Read path
    # ------------------------------------------------------------------ #
    def list(self) -> List[Signature]:
        directory = self._session.directory()
        with self._session.scope(directory):
            found, diagnostics = self._scan(directory)

        with self._lock:
            merged: Dict[str, Signature] = {}
            for sig_id, sig in found.items():
                current = self._records.get(sig_id)
                # unsaved edits survive a reload
                merged[sig_id] = current if current is not None and current.dirty else sig
            self._records = merged
            self._diagnostics = diagnostics
            result = list(merged.values())

        for d in diagnostics:
            logger.info("%s", d.as_text())
        logger.info("Loaded %d signatures from %s (%d skipped)", len(result), directory, len(diagnostics))
        return result

    def get(self, signature_id: str) -> Signature:
        with self._lock:
            try:
                return self._records[signature_id]
            except KeyError:
                raise SignatureNotFoundError(f"Signature {signature_id} does not exist") from None

    def analyze_manifest(self) -> ManifestAnalysis:
        directory = self._session.directory()
        with self._session.scope(directory):
            return self._manifest.analyze(directory)

    def _scan(self, directory: Path) -> Tuple[Dict[str, Signature], List[Diagnostic]]:
        found: Dict[str, Signature] = {}
        diagnostics: List[Diagnostic] = []
        try:
            candidates = self._detector.candidates(directory)
        except OSError as exc:
            raise PermissionDeniedError(f"Cannot read the signatures folder {directory}: {exc.strerror}",
                                        path=directory) from exc

        handled: set = set()
        manifest_path = self._manifest.manifest_path(directory)
        if manifest_path.is_file():
            try:
                report = self._manifest.parse(manifest_path)
            except ManifestParseError as exc:
                logger.warning("%s; scanning the folder instead", exc.message)
                diagnostics.append(Diagnostic(exc.kind, manifest_path.name, exc.message))
            else:
                diagnostics.extend(report.diagnostics)
                resolved, unresolved = self._manifest.resolve(report, directory)
                diagnostics.extend(unresolved)
                for payload, entries in resolved.values():
                    handled.add(payload)
                    self._load(payload, entries, found, diagnostics)

        for path in candidates:
            if path not in handled:
                self._load(path, None, found, diagnostics)
        return found, diagnostics

    def _load(self, path: Path, entries: Optional[Sequence[ManifestEntry]],
              found: Dict[str, Signature], diagnostics: List[Diagnostic]) -> None:
        if path.stem in found:
            diagnostics.append(Diagnostic(
                ErrorKind.DUPLICATE_SIGNATURE_ID, path.name,
                f"id {path.stem} already loaded from {found[path.stem].filename}"))
            return
        try:
            found[path.stem] = self._parser.parse(path, entries)
        except SignatureError as exc:
            diagnostics.append(Diagnostic(exc.kind, path.name, exc.message))

    # ------------------------------------------------------------------ #
    # Write path
    # ------------------------------------------------------------------ #
    def create(self, name: str, content: SignatureContent) -> Signature:
        directory = self._session.directory()
        with self._session.scope(directory):
            try:
                fmt = self._detector.detect(directory).to_signature_format()
            except OSError as exc:
                raise PermissionDeniedError(f"Cannot read the signatures folder {directory}: {exc.strerror}",
                                            path=directory) from exc

            sig_id = str(uuid.uuid4()).upper()
            html, rich = self._views(content)
            draft = Signature(
                signature_id=sig_id,
                storage_path=directory / f"{sig_id}.{self._detector.extension_for(fmt)}",
                format=fmt,
                display_name=name or UNTITLED,
                rich_content=rich,
                canonical_html=html,
            )
            try:
                self._writer.write(draft)
                created = self._parser.parse(draft.storage_path, name=draft.display_name)
            except SignatureError as exc:
                self._discard(draft)
                if isinstance(exc, WriteFailedError):
                    raise
                raise WriteFailedError(f"New signature could not be read back: {exc.message}",
                                       path=draft.storage_path) from exc

        with self._lock:
            self._records[sig_id] = created
        self._log.log(FEATURE_ID, "SignatureCreated", reference_id=sig_id, message=created.display_name)
        return created

    def update(self, signature_id: str, content: SignatureContent) -> Signature:
        """Memory only. A view left out of ``content`` is regenerated from the other."""
        html, rich = self._views(content)
        with self._lock:
            sig = self.get(signature_id)
            sig.canonical_html = html
            sig.rich_content = rich
            sig.dirty = True
            sig.revision += 1
            return sig

    def rename(self, signature_id: str, name: str) -> Signature:
        """Changes the display name only; payload files do not store it."""
        with self._lock:
            sig = self.get(signature_id)
            sig.display_name = name
            sig.dirty = True
            sig.revision += 1
            return sig

    def save(self, signature_id: str) -> Signature:
        """
        Writes a snapshot taken under the lock. An update() that lands while
        the write is in flight keeps the record dirty for the next save.
        """
        with self._lock:
            sig = self.get(signature_id)
            pending = sig.copy()
        try:
            self._writer.write(pending)
        except SignatureError as exc:
            self._log.log(FEATURE_ID, "SaveFailed", level="ERROR", reference_id=signature_id, message=exc.message)
            raise
        with self._lock:
            if sig.revision == pending.revision:
                sig.dirty = False
            else:
                logger.info("%s changed while saving; it stays unsaved", sig.filename)
        self._log.log(FEATURE_ID, "SignatureSaved", reference_id=signature_id, message=sig.filename)
        return sig

    def delete(self, signature_id: str) -> None:
        """Removes every payload stored under the id, not only the loaded one."""
        sig = self.get(signature_id)
        self._writer.remove(sig)
        for extra in self._siblings(sig):
            if self._writer.remove_path(extra):
                logger.info("Removed duplicate payload %s of %s", extra.name, signature_id)
        with self._lock:
            self._records.pop(signature_id, None)
        self._log.log(FEATURE_ID, "SignatureDeleted", reference_id=signature_id, message=sig.filename)

    def _siblings(self, sig: Signature) -> List[Path]:
        directory = sig.directory
        with self._session.scope(directory):
            try:
                candidates = self._detector.candidates(directory)
            except OSError as exc:
                raise PermissionDeniedError(f"Cannot read the signatures folder {directory}: {exc.strerror}",
                                            path=directory) from exc
        return [p for p in candidates
                if p.stem == sig.signature_id and p.name != sig.filename
                and self._detector.format_for_extension(p) is not None]

    # ------------------------------------------------------------------ #
    @staticmethod
    def _views(content: SignatureContent):
        html = content.html
        rich = content.rich
        if html is None:
            html = content_codec.rich_to_html(rich)
        if rich is None:
            rich = content_codec.html_to_rich(html)
        return html, rich

    def _discard(self, draft: Signature) -> None:
        try:
            self._writer.remove(draft)
        except SignatureError as exc:
            logger.error("Could not remove partial file %s: %s", draft.filename, exc.message)
