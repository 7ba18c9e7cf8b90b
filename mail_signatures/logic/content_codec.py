# mail_signatures/logic/content_codec.py
"""
Conversion between canonical HTML and RichContent.

html_to_rich walks the parsed document (BeautifulSoup, stdlib "html.parser")
and lays visible text out into paragraphs the way a browser would: block
elements start a new paragraph, <br> is a line break, whitespace collapses
unless a <pre> or ``white-space: pre*`` is in effect.

rich_to_html writes one <div> per paragraph and only emits markup the parser
above understands, so the visible text survives a round trip. Styling is best
effort. Paragraphs whose whitespace matters are written as <pre>: the parser
turns whitespace-only strings into a single space anywhere else.

reconcile() decides which HTML gets written on save: the last captured
canonical HTML wins whenever the regenerated HTML differs from it.
"""
from __future__ import annotations

import html as html_lib
import logging
import re
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from bs4 import BeautifulSoup
from bs4.element import Comment, Declaration, Doctype, NavigableString, ProcessingInstruction, Tag

from ..models.rich_content import Paragraph, RichContent, TextRun

logger = logging.getLogger(__name__)

HTML_PREAMBLE = ('<html><head><meta http-equiv="Content-Type" content="text/html; charset=UTF-8">'
                 '</head><body>')
HTML_CLOSING = "</body></html>"

BLOCK_TAGS = frozenset({
    "p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "li", "tr", "table",
    "blockquote", "ul", "ol", "pre", "center", "address", "section", "article",
    "header", "footer", "hr",
})
SKIP_TAGS = frozenset({"script", "style", "head", "title", "template", "noscript"})
CELL_TAGS = frozenset({"td", "th"})

# <font size="N"> → CSS length
FONT_SIZES = {"1": "10px", "2": "13px", "3": "16px", "4": "18px", "5": "24px", "6": "32px", "7": "48px"}
# <pre> rendered like the surrounding text
PRE_STYLE = "white-space: pre-wrap; font: inherit; margin: 0"

_COLLAPSIBLE = re.compile(r"[ \t\n\r\f]+")
_SKIPPED_STRINGS = (Comment, Declaration, Doctype, ProcessingInstruction)


# ---------------------------------------------------------------------------
# HTML → RichContent
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class _Context:
    style: TextRun
    preserve: bool = False
    alignment: Optional[str] = None


def parse_style_attribute(value: Optional[str]) -> Dict[str, str]:
    """'color: red; font-size: 12px' → {'color': 'red', 'font-size': '12px'}"""
    props: Dict[str, str] = {}
    for chunk in (value or "").split(";"):
        name, sep, val = chunk.partition(":")
        if sep and name.strip():
            props[name.strip().lower()] = val.strip()
    return props


def _is_bold(weight: str) -> Optional[bool]:
    weight = weight.lower()
    if weight in ("bold", "bolder"):
        return True
    if weight in ("normal", "lighter"):
        return False
    if weight.isdigit():
        return int(weight) >= 600
    return None


def _apply_css(ctx: _Context, props: Dict[str, str]) -> _Context:
    style = ctx.style
    changes: Dict[str, object] = {}
    if "font-weight" in props:
        bold = _is_bold(props["font-weight"])
        if bold is not None:
            changes["bold"] = bold
    if "font-style" in props:
        changes["italic"] = props["font-style"].lower() in ("italic", "oblique")
    for key in ("text-decoration", "text-decoration-line"):
        if key in props:
            deco = props[key].lower()
            changes["underline"] = "underline" in deco
            changes["strikethrough"] = "line-through" in deco
    if props.get("color"):
        changes["color"] = props["color"]
    if props.get("font-family"):
        changes["font_family"] = props["font-family"]
    if props.get("font-size"):
        changes["font_size"] = props["font-size"]
    if changes:
        style = replace(style, **changes)

    preserve = ctx.preserve
    if "white-space" in props:
        preserve = props["white-space"].lower().startswith(("pre", "break-spaces"))
    alignment = props.get("text-align", ctx.alignment) or ctx.alignment
    return _Context(style=style, preserve=preserve, alignment=alignment)


def _context_for(tag: Tag, ctx: _Context) -> _Context:
    name = tag.name
    style = ctx.style
    if name in ("b", "strong"):
        style = replace(style, bold=True)
    elif name in ("i", "em", "cite"):
        style = replace(style, italic=True)
    elif name in ("u", "ins"):
        style = replace(style, underline=True)
    elif name in ("s", "strike", "del"):
        style = replace(style, strikethrough=True)
    elif name == "a" and tag.get("href"):
        style = replace(style, link=str(tag.get("href")))
    elif name == "font":
        if tag.get("color"):
            style = replace(style, color=str(tag.get("color")))
        if tag.get("face"):
            style = replace(style, font_family=str(tag.get("face")))
        size = str(tag.get("size") or "").strip()
        if size in FONT_SIZES:
            style = replace(style, font_size=FONT_SIZES[size])

    ctx = replace(ctx, style=style)
    if name == "pre":
        ctx = replace(ctx, preserve=True)
    if tag.get("align"):
        ctx = replace(ctx, alignment=str(tag.get("align")).lower())
    if tag.get("style"):
        ctx = _apply_css(ctx, parse_style_attribute(str(tag.get("style"))))
    return ctx


class _ParagraphBuilder:
    """Accumulates runs for the current paragraph; ``close`` finalises it."""

    def __init__(self) -> None:
        self.paragraphs: List[Paragraph] = []
        self._runs: List[List] = []      # [text, style template]
        self._had_break = False
        self._preserve = False
        self._alignment: Optional[str] = None

    def _tail(self) -> str:
        for text, _ in reversed(self._runs):
            if text:
                return text
        return ""

    def _append(self, text: str, ctx: _Context) -> None:
        if not self._runs and not self._had_break:
            self._alignment = ctx.alignment
        if self._runs and self._runs[-1][1] == ctx.style:
            self._runs[-1][0] += text
        else:
            self._runs.append([text, ctx.style])

    def text(self, text: str, ctx: _Context) -> None:
        if ctx.preserve:
            text = text.replace("\r\n", "\n")
            if not text:
                return
            self._preserve = True
        else:
            text = _COLLAPSIBLE.sub(" ", text)
            tail = self._tail()
            if text.startswith(" ") and (not tail or tail[-1] in " \n"):
                text = text[1:]
            if not text:
                return
        self._append(text, ctx)
        if "\n" in text:
            self._had_break = True

    def line_break(self, ctx: _Context) -> None:
        if not ctx.preserve:
            # spaces in front of a line break are not rendered
            for run in reversed(self._runs):
                run[0] = run[0].rstrip(" ")
                if run[0]:
                    break
        self._append("\n", ctx)
        self._had_break = True

    def close(self) -> None:
        runs = [r for r in self._runs if r[0]]
        if not self._preserve:
            while runs:
                runs[-1][0] = runs[-1][0].rstrip(" ")
                if runs[-1][0]:
                    break
                runs.pop()
        if runs and runs[-1][0].endswith("\n"):
            runs[-1][0] = runs[-1][0][:-1]
            if not runs[-1][0]:
                runs.pop()
        if runs or self._had_break:
            self.paragraphs.append(Paragraph(
                runs=[replace(style, text=text) for text, style in runs],
                alignment=self._alignment,
            ))
        self._runs = []
        self._had_break = False
        self._preserve = False
        self._alignment = None


def _walk(node: Tag, ctx: _Context, out: _ParagraphBuilder) -> None:
    for child in node.children:
        if isinstance(child, _SKIPPED_STRINGS):
            continue
        if isinstance(child, NavigableString):
            out.text(str(child), ctx)
            continue
        if not isinstance(child, Tag):
            continue
        name = child.name.lower()
        if name in SKIP_TAGS:
            continue
        if name == "br":
            out.line_break(ctx)
            continue
        child_ctx = _context_for(child, ctx)
        if name in BLOCK_TAGS:
            out.close()
            _walk(child, child_ctx, out)
            out.close()
        elif name in CELL_TAGS:
            _walk(child, child_ctx, out)
            out.text(" ", ctx)
        else:
            _walk(child, child_ctx, out)


def html_to_rich(html: str) -> RichContent:
    soup = BeautifulSoup(html or "", "html.parser")
    root = soup.body or soup
    builder = _ParagraphBuilder()
    _walk(root, _Context(style=TextRun("")), builder)
    builder.close()
    return RichContent(paragraphs=builder.paragraphs)


# ---------------------------------------------------------------------------
# RichContent → HTML
# ---------------------------------------------------------------------------
def _needs_preserve(text: str) -> bool:
    for line in text.split("\n"):
        if line != line.strip(" ") or "  " in line or any(c in line for c in "\t\r\f"):
            return True
    return False


def _merged(runs: List[TextRun]) -> List[TextRun]:
    merged: List[TextRun] = []
    for run in runs:
        if not run.text:
            continue
        if merged and merged[-1].same_style(run):
            merged[-1] = replace(merged[-1], text=merged[-1].text + run.text)
        else:
            merged.append(run)
    return merged


def _escape_text(text: str) -> str:
    # a literal CR would not survive an HTML parser that normalises newlines
    return html_lib.escape(text, quote=False).replace("\r", "&#13;")


def _run_html(run: TextRun) -> str:
    body = "<br>".join(_escape_text(part) for part in run.text.split("\n"))
    css = []
    if run.color:
        css.append(f"color: {run.color}")
    if run.font_family:
        css.append(f"font-family: {run.font_family}")
    if run.font_size:
        css.append(f"font-size: {run.font_size}")
    if css:
        body = f'<span style="{html_lib.escape("; ".join(css))}">{body}</span>'
    for flag, tag in ((run.strikethrough, "s"), (run.underline, "u"), (run.italic, "i"), (run.bold, "b")):
        if flag:
            body = f"<{tag}>{body}</{tag}>"
    if run.link:
        body = f'<a href="{html_lib.escape(run.link)}">{body}</a>'
    return body


def paragraph_to_html(paragraph: Paragraph) -> str:
    text = paragraph.text
    tag = "div"
    css = []
    if paragraph.alignment:
        css.append(f"text-align: {paragraph.alignment}")
    if _needs_preserve(text):
        tag = "pre"
        css.append(PRE_STYLE)
    attr = f' style="{"; ".join(css)}"' if css else ""
    inner = "".join(_run_html(r) for r in _merged(paragraph.runs))
    # a trailing line break (or an empty paragraph) is only kept by a second <br>
    if not text or text.endswith("\n"):
        inner += "<br>"
    return f"<{tag}{attr}>{inner}</{tag}>"


def rich_to_html(rich: RichContent) -> str:
    return HTML_PREAMBLE + "".join(paragraph_to_html(p) for p in rich.paragraphs) + HTML_CLOSING


def plain_text_to_html(text: str) -> str:
    """
    Minimal HTML shell for a plain-text payload: blank lines separate
    paragraphs, single newlines become <br>.
    """
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    blocks = [b for b in re.split(r"\n\s*\n", normalized.strip("\n")) if b.strip()]
    body = "".join(
        "<p>" + "<br>".join(html_lib.escape(line, quote=False) for line in block.split("\n")) + "</p>"
        for block in blocks
    )
    return HTML_PREAMBLE + body + HTML_CLOSING


# ---------------------------------------------------------------------------
# Divergence policy
# ---------------------------------------------------------------------------
def reconcile(rich: RichContent, canonical_html: Optional[str]) -> str:
    """
    HTML to persist for a record holding both views. The regenerated HTML is
    compared to the last captured canonical HTML by plain string equality; if
    they differ, the canonical HTML is written and the regenerated one dropped.
    """
    regenerated = rich_to_html(rich)
    if not canonical_html:
        return regenerated
    if regenerated == canonical_html:
        return canonical_html
    logger.debug("Regenerated HTML differs from canonical HTML; keeping canonical (%d chars)",
                 len(canonical_html))
    return canonical_html
