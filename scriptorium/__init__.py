"""
Scriptorium - block-tree document model and optimistic sync for a campaign-notes wiki.
"""

__version__ = "0.1.0"
__author__ = "Scriptorium Contributors"

from .config import config, get_config
from .editor import PageSession
from .models import Block, BlockPatch, Move, OperationResult, SaveStatus
from .store import BlockStore

__all__ = [
    "config",
    "get_config",
    "PageSession",
    "Block",
    "BlockPatch",
    "Move",
    "OperationResult",
    "SaveStatus",
    "BlockStore",
]
