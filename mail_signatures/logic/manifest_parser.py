# mail_signatures/logic/manifest_parser.py
"""
Reader for the mail client's signature catalog (AllSignatures.plist).

Two layouts are understood:

    {"SignaturesByAccountID": {<account>: {"SignaturesList": [{"SignatureID", "SignatureName", ...}]}}}
    [{"SignatureUniqueId", "SignatureName", ...}, ...]          (flat, account "*")

A malformed entry is skipped and counted; only an unreadable file or an
unknown top-level shape fails the parse.
"""
from __future__ import annotations

import logging
import plistlib
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple
from xml.parsers.expat import ExpatError

from ..exceptions.errors import ManifestParseError
from ..models.diagnostics import Diagnostic
from ..models.manifest_entry import ManifestAnalysis, ManifestEntry, ManifestReport
from ..models.signature_enums import ErrorKind

logger = logging.getLogger(__name__)

FLAT_ACCOUNT_ID = "*"
_ID_KEYS = ("SignatureID", "SignatureUniqueId")
_NAME_KEY = "SignatureName"


class ManifestParser:
    def __init__(self, *, raw_extension: str = "mailsignature",
                 archive_extension: str = "webarchive",
                 manifest_name: str = "AllSignatures.plist") -> None:
        self._extensions = (raw_extension.lstrip(".").lower(), archive_extension.lstrip(".").lower())
        self.manifest_name = manifest_name

    def manifest_path(self, directory: Path) -> Path:
        return Path(directory) / self.manifest_name

    # -------- parsing ------------------------------------------------------
    def parse(self, manifest_path: Path) -> ManifestReport:
        try:
            data = Path(manifest_path).read_bytes()
        except OSError as exc:
            raise ManifestParseError(f"Cannot read {Path(manifest_path).name}: {exc.strerror}",
                                     path=Path(manifest_path)) from exc
        try:
            root = plistlib.loads(data)
        except (plistlib.InvalidFileException, ExpatError, ValueError, TypeError, KeyError) as exc:
            raise ManifestParseError(f"{Path(manifest_path).name} is not a valid property list",
                                     path=Path(manifest_path)) from exc

        if isinstance(root, dict):
            return self._parse_by_account(root, Path(manifest_path))
        if isinstance(root, list):
            report = ManifestReport(top_level_keys=())
            self._collect(FLAT_ACCOUNT_ID, root, report)
            return report
        raise ManifestParseError(f"Unexpected top-level type {type(root).__name__} in {Path(manifest_path).name}",
                                 path=Path(manifest_path))

    def _parse_by_account(self, root: Dict[str, Any], path: Path) -> ManifestReport:
        report = ManifestReport(top_level_keys=tuple(root.keys()))
        by_account = root.get("SignaturesByAccountID")
        if not isinstance(by_account, dict):
            raise ManifestParseError(
                f"'SignaturesByAccountID' missing in {path.name}; keys: {', '.join(root.keys()) or 'none'}",
                path=path,
            )
        for account_id, account in by_account.items():
            listing = account.get("SignaturesList") if isinstance(account, dict) else None
            if not isinstance(listing, list):
                report.diagnostics.append(Diagnostic(
                    ErrorKind.MANIFEST_ENTRY_SKIPPED, str(account_id), "account has no SignaturesList"))
                continue
            self._collect(str(account_id), listing, report)
        return report

    @staticmethod
    def _collect(account_id: str, listing: List[Any], report: ManifestReport) -> None:
        for index, raw in enumerate(listing):
            subject = f"{account_id}#{index + 1}"
            if not isinstance(raw, dict):
                report.diagnostics.append(Diagnostic(
                    ErrorKind.MANIFEST_ENTRY_SKIPPED, subject, "entry is not a dictionary"))
                continue
            sig_id = next((raw[k] for k in _ID_KEYS if isinstance(raw.get(k), str) and raw[k]), None)
            if sig_id is None:
                report.diagnostics.append(Diagnostic(
                    ErrorKind.MANIFEST_ENTRY_SKIPPED, subject, "entry has no signature id"))
                continue
            name = raw.get(_NAME_KEY)
            report.entries.append(ManifestEntry(
                account_id=account_id,
                signature_id=sig_id,
                declared_name=name if isinstance(name, str) else None,
            ))

    # -------- cross-reference against disk ---------------------------------
    def payload_index(self, directory: Path) -> Dict[Tuple[str, str], Path]:
        """
        (stem, lowercase extension) -> payload file as named on disk, so
        X.WEBARCHIVE resolves the same way X.webarchive does.
        """
        index: Dict[Tuple[str, str], Path] = {}
        try:
            entries = sorted(Path(directory).iterdir())
        except OSError as exc:
            logger.debug("Cannot list %s: %s", directory, exc)
            return index
        for entry in entries:
            ext = entry.suffix.lower().lstrip(".")
            if ext in self._extensions and entry.is_file():
                index.setdefault((entry.stem, ext), entry)
        return index

    def payload_for(self, directory: Path, signature_id: str,
                    index: Optional[Dict[Tuple[str, str], Path]] = None) -> Optional[Path]:
        """Raw payload first, then the archive."""
        if index is None:
            index = self.payload_index(directory)
        for ext in self._extensions:
            hit = index.get((signature_id, ext))
            if hit is not None:
                return hit
        return None

    def resolve(self, report: ManifestReport, directory: Path
                ) -> Tuple[Dict[str, Tuple[Path, List[ManifestEntry]]], List[Diagnostic]]:
        """
        Map signature id → (payload path, entries naming it). Entries whose
        payload file is missing come back as diagnostics.
        """
        resolved: Dict[str, Tuple[Path, List[ManifestEntry]]] = {}
        unresolved: List[Diagnostic] = []
        index = self.payload_index(directory)
        for sig_id, entries in report.by_signature().items():
            payload = self.payload_for(directory, sig_id, index)
            if payload is None:
                names = ", ".join(sorted({e.declared_name or "unnamed" for e in entries}))
                unresolved.append(Diagnostic(
                    ErrorKind.MANIFEST_ENTRY_UNRESOLVED, sig_id,
                    f"listed in manifest ({names}) but no payload file exists"))
                continue
            resolved[sig_id] = (payload, entries)
        return resolved, unresolved

    # -------- troubleshooting ----------------------------------------------
    def analyze(self, directory: Path) -> ManifestAnalysis:
        path = self.manifest_path(directory)
        analysis = ManifestAnalysis(manifest_path=path, exists=path.is_file())
        if not analysis.exists:
            return analysis
        try:
            analysis.size_bytes = path.stat().st_size
            report = self.parse(path)
        except ManifestParseError as exc:
            analysis.diagnostics.append(Diagnostic(exc.kind, path.name, exc.message))
            return analysis

        analysis.top_level_keys = report.top_level_keys
        analysis.diagnostics.extend(report.diagnostics)
        for entry in report.entries:
            analysis.entries_by_account.setdefault(entry.account_id, []).append(entry)
        resolved, unresolved = self.resolve(report, directory)
        analysis.resolved = {sig_id: payload for sig_id, (payload, _) in resolved.items()}
        missing_ids = {d.subject for d in unresolved}
        analysis.missing = [e for e in report.entries if e.signature_id in missing_ids]
        analysis.diagnostics.extend(unresolved)
        for line in analysis.summary_lines():
            logger.debug(line)
        return analysis


def declared_name(entries: Sequence[ManifestEntry]) -> Optional[str]:
    """First non-empty declared name among the entries of one signature."""
    for entry in entries:
        if entry.declared_name:
            return entry.declared_name
    return None
