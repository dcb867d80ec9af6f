"""
In-process persistence backend on top of the local DuckDB block database.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import duckdb

from ..database import DatabaseManager
from ..errors import BlockNotFoundError, PersistenceError
from ..models import Block, BlockPatch, Move
from .base import PersistenceAPI


class LocalPersistenceAPI(PersistenceAPI):
    """
    Persistence backend that writes straight to a DuckDB file.

    Reorders are applied in one database transaction, so a batch either lands
    completely or not at all.
    """

    def __init__(self, database_manager: DatabaseManager):
        """
        Initialize the backend.

        Args:
            database_manager: A connected database manager
        """
        self.db = database_manager

    @classmethod
    def open(cls, db_path: str) -> "LocalPersistenceAPI":
        """Connect to (and if needed initialize) the database at ``db_path``."""
        manager = DatabaseManager(db_path)
        manager.connect()
        manager.initialize_database()
        logging.info(f"Opened local block database {db_path}")
        return cls(manager)

    async def aclose(self) -> None:
        self.db.disconnect()

    async def create_block(
        self,
        page_id: str,
        type: str,
        parent_id: Optional[str] = None,
        sort: int = 0,
        props: Optional[Dict[str, Any]] = None,
        content: Optional[Dict[str, Any]] = None,
    ) -> Block:
        if not type:
            raise PersistenceError("type required")
        try:
            return self.db.create_block(page_id, type, parent_id, sort, props, content)
        except (duckdb.Error, RuntimeError) as e:
            raise PersistenceError(f"Create failed on page {page_id}: {e}") from e

    async def patch_block(self, block_id: str, patch: BlockPatch) -> Block:
        try:
            updated = self.db.patch_block(block_id, patch)
        except (duckdb.Error, RuntimeError) as e:
            raise PersistenceError(f"Patch failed for block {block_id}: {e}") from e
        if updated is None:
            raise BlockNotFoundError(404, "Not Found", f"block {block_id}")
        return updated

    async def delete_block(self, block_id: str) -> None:
        try:
            deleted = self.db.delete_block(block_id)
        except (duckdb.Error, RuntimeError) as e:
            raise PersistenceError(f"Delete failed for block {block_id}: {e}") from e
        if not deleted:
            raise BlockNotFoundError(404, "Not Found", f"block {block_id}")

    async def reorder_blocks(self, page_id: str, moves: Sequence[Move]) -> None:
        if not page_id:
            raise PersistenceError("pageId required")
        try:
            self.db.reorder_blocks(page_id, list(moves))
        except (duckdb.Error, RuntimeError) as e:
            raise PersistenceError(f"Reorder failed for page {page_id}: {e}") from e

    async def list_blocks(self, page_id: str) -> List[Block]:
        try:
            return self.db.list_blocks(page_id)
        except (duckdb.Error, RuntimeError) as e:
            raise PersistenceError(f"Listing blocks of page {page_id} failed: {e}") from e
