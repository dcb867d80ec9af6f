"""Optimistic block synchronization."""

from .annotations import count_annotation_tokens, total_tokens, ANNOTATION_KINDS
from .guard import DataLossGuard
from .pipeline import SyncPipeline, PendingFlush

__all__ = [
    "count_annotation_tokens",
    "total_tokens",
    "ANNOTATION_KINDS",
    "DataLossGuard",
    "SyncPipeline",
    "PendingFlush",
]
