from __future__ import annotations
from dataclasses import dataclass

from .signature_enums import ErrorKind


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal problem found while loading (skipped file, unresolved entry ...)."""
    kind: ErrorKind
    subject: str
    message: str

    def as_text(self) -> str:
        return f"[{self.kind.value}] {self.subject}: {self.message}"
