"""
Database manager for Scriptorium.

This module stores page blocks in DuckDB. It mirrors what the wiki server does
with blocks: every write renormalizes the affected sibling lists to 0..n-1 and
a reorder batch is applied in a single transaction.
"""

import duckdb
import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from ..models import Block, BlockPatch, Move


def _iso(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


class DatabaseManager:
    """
    Manages the DuckDB database holding page blocks.
    """

    _COLUMNS = "id, page_id, parent_id, sort, type, props_json, content_json, created_at, updated_at"

    def __init__(self, db_path: str = "scriptorium.db"):
        """
        Initialize the database manager.

        Args:
            db_path: Path to the DuckDB database file (":memory:" for a throwaway database)
        """
        self.db_path = db_path
        self.connection = None

    def connect(self):
        """Establish connection to the database."""
        self.connection = duckdb.connect(self.db_path)

    def disconnect(self):
        """Close the database connection."""
        if self.connection:
            self.connection.close()
            self.connection = None

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()

    def _require_connection(self):
        if not self.connection:
            raise RuntimeError("Database connection not established")
        return self.connection

    def initialize_database(self):
        """
        Create all necessary tables if they don't exist.
        """
        conn = self._require_connection()

        # seq breaks ties between equal sorts in insertion order
        conn.execute("CREATE SEQUENCE IF NOT EXISTS block_seq;")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS blocks (
                id VARCHAR PRIMARY KEY,
                page_id VARCHAR NOT NULL,
                parent_id VARCHAR,
                sort INTEGER NOT NULL DEFAULT 0,
                type VARCHAR NOT NULL,
                props_json VARCHAR NOT NULL DEFAULT '{}',
                content_json VARCHAR NOT NULL DEFAULT '{}',
                created_at BIGINT NOT NULL,
                updated_at BIGINT NOT NULL,
                seq BIGINT DEFAULT nextval('block_seq')
            )
        """)

    def _row_to_block(self, row) -> Block:
        return Block.from_record({
            "id": row[0],
            "pageId": row[1],
            "parentId": row[2],
            "sort": row[3],
            "type": row[4],
            "propsJson": row[5],
            "contentJson": row[6],
            "createdAt": _iso(row[7]),
            "updatedAt": _iso(row[8]),
        })

    def _fetch_row(self, block_id: str):
        return self._require_connection().execute(
            f"SELECT {self._COLUMNS} FROM blocks WHERE id = ?", [block_id]
        ).fetchone()

    def _normalize_sibling_sort(self, page_id: str, parent_id: Optional[str]) -> None:
        conn = self._require_connection()
        rows = conn.execute("""
            SELECT id FROM blocks
            WHERE page_id = ? AND parent_id IS NOT DISTINCT FROM ?
            ORDER BY sort, seq, id
        """, [page_id, parent_id]).fetchall()
        for index, row in enumerate(rows):
            conn.execute("UPDATE blocks SET sort = ? WHERE id = ?", [index, row[0]])

    def get_block(self, block_id: str) -> Optional[Block]:
        """
        Retrieve a block by id.

        Args:
            block_id: The block to fetch

        Returns:
            The block if found, None otherwise
        """
        row = self._fetch_row(block_id)
        return self._row_to_block(row) if row else None

    def list_blocks(self, page_id: str) -> List[Block]:
        """
        List every block of a page, grouped by parent and ordered by sort.
        """
        rows = self._require_connection().execute(f"""
            SELECT {self._COLUMNS} FROM blocks
            WHERE page_id = ?
            ORDER BY parent_id NULLS FIRST, sort, seq
        """, [page_id]).fetchall()
        return [self._row_to_block(row) for row in rows]

    def create_block(self, page_id: str, type: str, parent_id: Optional[str] = None, sort: int = 0,
                     props: Optional[Dict[str, Any]] = None,
                     content: Optional[Dict[str, Any]] = None) -> Block:
        """
        Insert a block at position ``sort`` among its siblings.

        Siblings at or after that position shift down by one.

        Returns:
            The stored block
        """
        conn = self._require_connection()
        block_id = str(uuid.uuid4())
        ts = int(time.time())
        conn.begin()
        try:
            conn.execute("""
                UPDATE blocks SET sort = sort + 1
                WHERE page_id = ? AND parent_id IS NOT DISTINCT FROM ? AND sort >= ?
            """, [page_id, parent_id, int(sort)])
            conn.execute("""
                INSERT INTO blocks (id, page_id, parent_id, sort, type, props_json, content_json, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                block_id, page_id, parent_id, int(sort), str(type),
                json.dumps(props or {}), json.dumps(content or {}), ts, ts
            ])
            self._normalize_sibling_sort(page_id, parent_id)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        return self._row_to_block(self._fetch_row(block_id))

    def patch_block(self, block_id: str, patch: BlockPatch) -> Optional[Block]:
        """
        Overwrite the fields present in ``patch``.

        Returns:
            The updated block, or None if it does not exist
        """
        conn = self._require_connection()
        current = self.get_block(block_id)
        if current is None:
            return None

        parent_id = patch.parent_id if patch.touches("parent_id") else current.parent_id
        sort = int(patch.sort or 0) if patch.touches("sort") else current.sort
        block_type = patch.type if patch.touches("type") and patch.type else current.type
        props = (patch.props or {}) if patch.touches("props") else current.props
        content = (patch.content or {}) if patch.touches("content") else current.content

        conn.begin()
        try:
            conn.execute("""
                UPDATE blocks
                SET parent_id = ?, sort = ?, type = ?, props_json = ?, content_json = ?, updated_at = ?
                WHERE id = ?
            """, [parent_id, sort, block_type, json.dumps(props), json.dumps(content), int(time.time()), block_id])
            self._normalize_sibling_sort(current.page_id, parent_id)
            if parent_id != current.parent_id:
                self._normalize_sibling_sort(current.page_id, current.parent_id)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        return self.get_block(block_id)

    def delete_block(self, block_id: str) -> bool:
        """
        Delete a block together with everything nested under it.

        Returns:
            True if the block existed
        """
        conn = self._require_connection()
        current = self.get_block(block_id)
        if current is None:
            return False

        doomed = [block_id]
        frontier = [block_id]
        while frontier:
            placeholders = ", ".join("?" for _ in frontier)
            rows = conn.execute(
                f"SELECT id FROM blocks WHERE parent_id IN ({placeholders})", frontier
            ).fetchall()
            frontier = [row[0] for row in rows if row[0] not in doomed]
            doomed.extend(frontier)

        conn.begin()
        try:
            placeholders = ", ".join("?" for _ in doomed)
            conn.execute(f"DELETE FROM blocks WHERE id IN ({placeholders})", doomed)
            self._normalize_sibling_sort(current.page_id, current.parent_id)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        if len(doomed) > 1:
            logging.info(f"Deleted block {block_id} and {len(doomed) - 1} nested block(s)")
        return True

    def reorder_blocks(self, page_id: str, moves: Sequence[Move]) -> None:
        """
        Apply a reorder batch atomically.

        Every touched parent's children are renormalized afterwards. If any
        statement fails, none of the moves is kept.
        """
        if not moves:
            return
        conn = self._require_connection()
        ts = int(time.time())
        touched: List[Optional[str]] = []
        conn.begin()
        try:
            for move in moves:
                previous = conn.execute(
                    "SELECT parent_id FROM blocks WHERE id = ? AND page_id = ?", [move.id, page_id]
                ).fetchone()
                if previous is None:
                    continue
                conn.execute("""
                    UPDATE blocks SET parent_id = ?, sort = ?, updated_at = ?
                    WHERE id = ? AND page_id = ?
                """, [move.parent_id, int(move.sort), ts, move.id, page_id])
                for parent_id in (previous[0], move.parent_id):
                    if parent_id not in touched:
                        touched.append(parent_id)
            for parent_id in touched:
                self._normalize_sibling_sort(page_id, parent_id)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
