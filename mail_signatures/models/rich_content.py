from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import List, Optional


@dataclass(frozen=True)
class TextRun:
    """
    A stretch of text sharing one style. A line break inside a paragraph is
    stored as "\\n" in ``text``.
    """
    text: str
    bold: bool = False
    italic: bool = False
    underline: bool = False
    strikethrough: bool = False
    color: Optional[str] = None        # CSS colour, e.g. "#1a1a1a"
    font_family: Optional[str] = None
    font_size: Optional[str] = None    # CSS length, e.g. "12px"
    link: Optional[str] = None

    def same_style(self, other: "TextRun") -> bool:
        return replace(self, text="") == replace(other, text="")


@dataclass
class Paragraph:
    runs: List[TextRun] = field(default_factory=list)
    alignment: Optional[str] = None    # left | center | right | justify

    @property
    def text(self) -> str:
        return "".join(r.text for r in self.runs)


@dataclass
class RichContent:
    """Structured text + style view of a signature."""
    paragraphs: List[Paragraph] = field(default_factory=list)

    @property
    def plain_text(self) -> str:
        return "\n".join(p.text for p in self.paragraphs)

    @classmethod
    def from_plain_text(cls, text: str) -> "RichContent":
        return cls(paragraphs=[Paragraph(runs=[TextRun(line)] if line else [])
                               for line in text.split("\n")])

    def is_empty(self) -> bool:
        return not self.plain_text.strip()
