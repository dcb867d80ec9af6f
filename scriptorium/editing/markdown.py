"""
Markdown shortcuts understood by the block editor.

Two entry points: ``parse_quick_heading`` recognizes ``/h1``..``/h3`` and
``#``..``###`` on the first line of a paragraph, and ``split_paste_chunks``
turns pasted plain text into section and paragraph chunks.
"""

import re
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

SLASH_HEADING_RE = re.compile(r"^\s*/(h[123])(?:\s+(.*))?$", re.IGNORECASE)
HASH_HEADING_RE = re.compile(r"^\s*(#{1,3})(?:\s+(.*))?$")
PASTE_HEADING_RE = re.compile(r"^\s{0,3}(#{1,3})\s+(.*)$")
PASTE_HEADING_ANYWHERE_RE = re.compile(r"^(\s{0,3}#{1,3})\s+", re.MULTILINE)
BLANK_PARAGRAPH_RE = re.compile(r"\n\s*\n")


class QuickHeading(BaseModel):
    """A heading shortcut found on the first line of a paragraph."""

    level: int = Field(..., ge=1, le=3)
    title: str = ""
    remainder: str = Field(
        "",
        description="Lines after the first, right-trimmed; becomes a child paragraph when not blank"
    )


class PasteChunk(BaseModel):
    """One block to create from pasted text."""

    type: Literal["section", "paragraph"]
    level: Optional[int] = None
    title: Optional[str] = None
    text: Optional[str] = None

    def props(self) -> dict:
        if self.type == "section":
            return {"collapsed": False, "level": self.level}
        return {}

    def content(self) -> dict:
        if self.type == "section":
            return {"title": self.title or ""}
        return {"text": self.text or ""}


def parse_quick_heading(text: Optional[str]) -> Optional[QuickHeading]:
    """
    Detect a heading shortcut on the first line of ``text``.

    Returns:
        The parsed heading, or None when the first line is not a shortcut
    """
    lines = str(text or "").split("\n")
    first_line = lines[0]
    remainder = "\n".join(lines[1:]).rstrip()

    slash = SLASH_HEADING_RE.match(first_line)
    if slash:
        return QuickHeading(level=int(slash.group(1)[1]), title=(slash.group(2) or "").lstrip(),
                            remainder=remainder)

    hashes = HASH_HEADING_RE.match(first_line)
    if hashes:
        return QuickHeading(level=len(hashes.group(1)), title=(hashes.group(2) or "").strip(),
                            remainder=remainder)
    return None


def wants_smart_paste(raw: Optional[str]) -> bool:
    """Plain single-line pastes are left to the text input."""
    text = str(raw or "").replace("\r\n", "\n")
    if not text:
        return False
    return (text.count("\n") >= 2
            or BLANK_PARAGRAPH_RE.search(text) is not None
            or PASTE_HEADING_ANYWHERE_RE.search(text) is not None)


def split_paste_chunks(raw: Optional[str]) -> List[PasteChunk]:
    """
    Split pasted text into blocks.

    Markdown headings (``#`` to ``###``, up to three leading spaces) become
    sections; the lines between them become paragraphs, split on blank lines.
    Single newlines inside a paragraph are kept.
    """
    lines = str(raw or "").replace("\r\n", "\n").split("\n")
    chunks: List[PasteChunk] = []
    paragraph: List[str] = []

    def flush_paragraph() -> None:
        if paragraph:
            text = "\n".join(paragraph).rstrip()
            if text.strip():
                chunks.append(PasteChunk(type="paragraph", text=text))
            paragraph.clear()

    for line in lines:
        if not line.strip():
            flush_paragraph()
            continue
        heading = PASTE_HEADING_RE.match(line)
        if heading:
            flush_paragraph()
            chunks.append(PasteChunk(type="section", level=len(heading.group(1)),
                                     title=heading.group(2).rstrip()))
            continue
        paragraph.append(line)
    flush_paragraph()

    return chunks
