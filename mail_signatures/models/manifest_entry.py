from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .diagnostics import Diagnostic


@dataclass(frozen=True)
class ManifestEntry:
    """One account → signature reference from AllSignatures.plist."""
    account_id: str
    signature_id: str
    declared_name: Optional[str] = None


@dataclass
class ManifestReport:
    """Entries read from the manifest plus the entries that had to be skipped."""
    entries: List[ManifestEntry] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    top_level_keys: Tuple[str, ...] = ()

    @property
    def skipped(self) -> int:
        return len(self.diagnostics)

    def by_signature(self) -> Dict[str, List[ManifestEntry]]:
        grouped: Dict[str, List[ManifestEntry]] = {}
        for entry in self.entries:
            grouped.setdefault(entry.signature_id, []).append(entry)
        return grouped


@dataclass
class ManifestAnalysis:
    """Result of the diagnostics call the UI offers for troubleshooting."""
    manifest_path: Path
    exists: bool
    size_bytes: int = 0
    top_level_keys: Tuple[str, ...] = ()
    entries_by_account: Dict[str, List[ManifestEntry]] = field(default_factory=dict)
    resolved: Dict[str, Path] = field(default_factory=dict)
    missing: List[ManifestEntry] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def total_entries(self) -> int:
        return sum(len(v) for v in self.entries_by_account.values())

    def summary_lines(self) -> List[str]:
        if not self.exists:
            return [f"{self.manifest_path.name} not found in {self.manifest_path.parent}"]
        lines = [f"{self.manifest_path.name}: {self.size_bytes} bytes, keys: {', '.join(self.top_level_keys)}"]
        for account, entries in self.entries_by_account.items():
            lines.append(f"Account {account}: {len(entries)} signatures")
            for e in entries:
                hit = self.resolved.get(e.signature_id)
                state = f"found {hit.name}" if hit else "NO PAYLOAD FILE"
                lines.append(f"  - {e.signature_id} ({e.declared_name or 'unnamed'}): {state}")
        lines.append(f"Total signatures listed: {self.total_entries}")
        lines.extend(d.as_text() for d in self.diagnostics)
        return lines
