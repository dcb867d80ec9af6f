"""
Persistence interface for Scriptorium.

This module defines the abstract interface the editor core awaits for every
durable change. The persistence layer is the system of record; the block
store only mirrors it for the open page.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from ..models import Block, BlockPatch, Move


class PersistenceAPI(ABC):
    """
    Abstract base class for block persistence backends.

    Implementations must overwrite ``props``/``content`` wholesale on patch
    (the sync pipeline always sends complete objects), and should apply a
    reorder batch atomically.
    """

    @abstractmethod
    async def create_block(
        self,
        page_id: str,
        type: str,
        parent_id: Optional[str] = None,
        sort: int = 0,
        props: Optional[Dict[str, Any]] = None,
        content: Optional[Dict[str, Any]] = None,
    ) -> Block:
        """
        Create a block; the backend assigns its id and timestamps.

        Returns:
            The created block as stored
        """
        pass

    @abstractmethod
    async def patch_block(self, block_id: str, patch: BlockPatch) -> Block:
        """
        Overwrite the fields present in ``patch``.

        Returns:
            The authoritative record after the update
        """
        pass

    @abstractmethod
    async def delete_block(self, block_id: str) -> None:
        pass

    @abstractmethod
    async def reorder_blocks(self, page_id: str, moves: Sequence[Move]) -> None:
        """Apply a batch of (parent, sort) assignments."""
        pass

    @abstractmethod
    async def list_blocks(self, page_id: str) -> List[Block]:
        """Fetch the page's current blocks (used to reload after a refused save)."""
        pass

    async def aclose(self) -> None:
        """Release any resources held by the backend."""
        return None
