"""Tree ordering: keyboard moves, drag-and-drop and outline normalization."""

from .drop import compute_drop_target, chunk_of, forbidden_parents, DragSession
from .engine import OrderingEngine, can_unwrap_section_title, sequence
from .outline import OutlineNormalizer, compute_outline_parents

__all__ = [
    "compute_drop_target",
    "chunk_of",
    "forbidden_parents",
    "DragSession",
    "OrderingEngine",
    "can_unwrap_section_title",
    "sequence",
    "OutlineNormalizer",
    "compute_outline_parents",
]
