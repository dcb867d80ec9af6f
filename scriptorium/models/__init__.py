"""Data models for Scriptorium."""

from .blocks import (
    Block,
    BLOCK_SCHEMAS,
    SectionProps,
    SectionContent,
    HeadingProps,
    HeadingContent,
    ParagraphProps,
    ParagraphContent,
    TableData,
    TableProps,
    parse_maybe_json,
    register_block_type,
)
from .operations import Move, BlockPatch, OperationResult, Point, Rect, DragSnapshot, DropPlan
from .sync import SaveStatus, SaveStatusEvent, FlushOutcome, FlushResult, GuardVerdict, DataLossWarning

__all__ = [
    "Block",
    "BLOCK_SCHEMAS",
    "SectionProps",
    "SectionContent",
    "HeadingProps",
    "HeadingContent",
    "ParagraphProps",
    "ParagraphContent",
    "TableData",
    "TableProps",
    "parse_maybe_json",
    "register_block_type",
    "Move",
    "BlockPatch",
    "OperationResult",
    "Point",
    "Rect",
    "DragSnapshot",
    "DropPlan",
    "SaveStatus",
    "SaveStatusEvent",
    "FlushOutcome",
    "FlushResult",
    "GuardVerdict",
    "DataLossWarning",
]
