# mail_signatures/models/signature.py
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from .rich_content import RichContent
from .signature_enums import SignatureFormat


class Signature:
    """
    One signature record of the mail client.

    ``signature_id`` and ``format`` are fixed once the record is discovered or
    created. ``rich_content`` and ``canonical_html`` are two views of the same
    content; nothing here keeps them in sync, only explicit codec calls do.
    """

    __slots__ = ("_signature_id", "_format", "storage_path", "display_name",
                 "rich_content", "canonical_html", "dirty", "account_ids", "from_manifest", "revision")

    def __init__(self, *, signature_id: str, storage_path: Path, format: SignatureFormat,
                 display_name: str, rich_content: RichContent, canonical_html: str,
                 dirty: bool = False, account_ids: Tuple[str, ...] = (),
                 from_manifest: bool = False) -> None:
        self._signature_id = signature_id
        self._format = SignatureFormat(format)
        self.storage_path = Path(storage_path)
        self.display_name = display_name
        self.rich_content = rich_content
        self.canonical_html = canonical_html
        self.dirty = dirty
        self.account_ids = tuple(account_ids)
        self.from_manifest = from_manifest
        # bumped by every in-memory edit; save() compares it to spot concurrent edits
        self.revision = 0

    @property
    def signature_id(self) -> str:
        return self._signature_id

    @property
    def format(self) -> SignatureFormat:
        return self._format

    def copy(self) -> "Signature":
        """Detached snapshot, e.g. to write while the live record keeps changing."""
        clone = Signature(
            signature_id=self._signature_id,
            storage_path=self.storage_path,
            format=self._format,
            display_name=self.display_name,
            rich_content=self.rich_content,
            canonical_html=self.canonical_html,
            dirty=self.dirty,
            account_ids=self.account_ids,
            from_manifest=self.from_manifest,
        )
        clone.revision = self.revision
        return clone

    @property
    def filename(self) -> str:
        return self.storage_path.name

    @property
    def directory(self) -> Path:
        return self.storage_path.parent

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Signature):
            return NotImplemented
        return self._signature_id == other._signature_id and self.storage_path == other.storage_path

    def __hash__(self) -> int:
        return hash((self._signature_id, self.storage_path))

    def __repr__(self) -> str:
        flag = " dirty" if self.dirty else ""
        return f"<Signature {self._signature_id} {self._format.value} {self.display_name!r}{flag}>"


@dataclass
class SignatureContent:
    """
    Editor payload handed to create()/update(). At least one view is required;
    the repository derives the missing one with the content codec.
    """
    html: Optional[str] = None
    rich: Optional[RichContent] = field(default=None)

    def __post_init__(self) -> None:
        if self.html is None and self.rich is None:
            raise ValueError("SignatureContent needs html, rich content or both")
