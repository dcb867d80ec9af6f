"""Text shortcuts for the block editor."""

from .markdown import (
    QuickHeading,
    PasteChunk,
    parse_quick_heading,
    wants_smart_paste,
    split_paste_chunks,
)

__all__ = [
    "QuickHeading",
    "PasteChunk",
    "parse_quick_heading",
    "wants_smart_paste",
    "split_paste_chunks",
]
