"""In-memory page state."""

from .block_store import BlockStore, normalize_parent_id

__all__ = ["BlockStore", "normalize_parent_id"]
