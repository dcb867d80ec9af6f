"""
In-memory block store for the open page.

The store is the session's single snapshot of a page's blocks. It is an
explicit object handed to every component that reads or writes the tree;
nothing in Scriptorium keeps page state at module level.
"""

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from ..errors import TreeInvariantError
from ..models import Block, Move


def normalize_parent_id(value: Any) -> Optional[str]:
    """Empty parent references mean "root"."""
    return str(value) if value not in (None, "") else None


class BlockStore:
    """
    Holds the ordered collection of blocks for one page.

    Blocks are stored as values: ``map_transform`` and ``apply_moves`` replace
    models with updated copies, they never mutate one in place. Callers that
    change the store must leave it satisfying the tree invariants (see
    ``validate_tree``).
    """

    def __init__(self, page_id: Optional[str] = None, blocks: Optional[Iterable[Any]] = None):
        """
        Initialize the store.

        Args:
            page_id: The page whose blocks this store holds
            blocks: Optional initial records (validated like ``replace_all``)
        """
        self.page_id = page_id
        self._blocks: List[Block] = []
        if blocks is not None:
            self.replace_all(blocks)

    def __len__(self) -> int:
        return len(self._blocks)

    def __contains__(self, block_id: object) -> bool:
        return self.get(str(block_id)) is not None

    def replace_all(self, blocks: Iterable[Any]) -> None:
        """
        Replace the whole snapshot.

        Args:
            blocks: Block models or raw records

        Raises:
            BlockValidationError: If any record fails its type schema
        """
        self._blocks = [Block.from_record(b) for b in blocks]
        logging.debug(f"Block store for page {self.page_id} now holds {len(self._blocks)} blocks")

    def get_all(self) -> List[Block]:
        return list(self._blocks)

    def get(self, block_id: Optional[str]) -> Optional[Block]:
        if block_id is None:
            return None
        for block in self._blocks:
            if block.id == str(block_id):
                return block
        return None

    def append(self, block: Any) -> Block:
        validated = Block.from_record(block)
        self._blocks.append(validated)
        return validated

    def remove(self, block_id: str) -> Optional[Block]:
        removed = self.get(block_id)
        if removed is not None:
            self._blocks = [b for b in self._blocks if b.id != removed.id]
        return removed

    def map_transform(self, fn: Callable[[Block], Block]) -> None:
        """Apply a pure per-block function to every block."""
        self._blocks = [fn(b) for b in self._blocks]

    def update_block(self, block_id: str, fn: Callable[[Block], Block]) -> Optional[Block]:
        """
        Apply ``fn`` to a single block; returns the new value or None if absent.

        The result is validated again, since ``model_copy`` skips validation.

        Raises:
            BlockValidationError: If the new value fails its type schema (the store is left unchanged)
        """
        updated: Optional[Block] = None

        def transform(block: Block) -> Block:
            nonlocal updated
            if block.id != block_id:
                return block
            updated = Block.from_record(fn(block).model_dump())
            return updated

        self.map_transform(transform)
        return updated

    def apply_moves(self, moves: Iterable[Move]) -> None:
        """Apply (parent, sort) assignments optimistically."""
        by_id: Dict[str, Move] = {m.id: m for m in moves}
        if not by_id:
            return

        def transform(block: Block) -> Block:
            move = by_id.get(block.id)
            if move is None:
                return block
            return block.model_copy(update={"parent_id": normalize_parent_id(move.parent_id), "sort": move.sort})

        self.map_transform(transform)

    def children(self, parent_id: Optional[str]) -> List[Block]:
        """Direct children of ``parent_id`` (None for the root), in sibling order."""
        pid = normalize_parent_id(parent_id)
        kids = [b for b in self._blocks if b.parent_id == pid]
        return sorted(kids, key=lambda b: b.sort_key())

    def siblings(self, block: Block) -> List[Block]:
        return self.children(block.parent_id)

    def descendant_ids(self, block_id: str) -> Set[str]:
        """All ids below ``block_id`` (excluding itself)."""
        by_parent: Dict[Optional[str], List[str]] = defaultdict(list)
        for b in self._blocks:
            by_parent[b.parent_id].append(b.id)
        found: Set[str] = set()
        stack = list(by_parent.get(block_id, []))
        while stack:
            current = stack.pop()
            if current in found:
                continue
            found.add(current)
            stack.extend(by_parent.get(current, []))
        return found

    def ancestors(self, block_id: str) -> List[str]:
        """Parent chain from the block's parent up to a root (cycle-safe)."""
        chain: List[str] = []
        seen = {block_id}
        current = self.get(block_id)
        while current is not None and current.parent_id is not None:
            if current.parent_id in seen:
                break
            chain.append(current.parent_id)
            seen.add(current.parent_id)
            current = self.get(current.parent_id)
        return chain

    def document_order(self) -> List[Block]:
        """Depth-first, pre-order traversal of the forest."""
        ordered: List[Block] = []

        def visit(parent_id: Optional[str]) -> None:
            for child in self.children(parent_id):
                ordered.append(child)
                visit(child.id)

        visit(None)
        return ordered

    def to_tree(self) -> List[Dict[str, Any]]:
        """
        Nested view for renderers: ``[{"block": Block, "children": [...]}]``.

        Blocks whose parent is missing from the page are treated as roots.
        """
        known = {b.id for b in self._blocks}
        nodes: Dict[str, Dict[str, Any]] = {b.id: {"block": b, "children": []} for b in self._blocks}
        roots: List[Dict[str, Any]] = []
        for b in self._blocks:
            if b.parent_id is not None and b.parent_id in known and b.parent_id != b.id:
                nodes[b.parent_id]["children"].append(nodes[b.id])
            else:
                roots.append(nodes[b.id])

        def sort_nodes(items: List[Dict[str, Any]]) -> None:
            items.sort(key=lambda n: n["block"].sort_key())
            for item in items:
                sort_nodes(item["children"])

        sort_nodes(roots)
        return roots

    def find_problems(self) -> List[str]:
        """Describe every tree invariant violation; empty when the tree is sound."""
        problems: List[str] = []
        known = {b.id for b in self._blocks}

        groups: Dict[Optional[str], List[int]] = defaultdict(list)
        for b in self._blocks:
            groups[b.parent_id].append(b.sort)
        for parent_id, sorts in groups.items():
            if sorted(sorts) != list(range(len(sorts))):
                problems.append(f"children of {parent_id or 'root'} have sorts {sorted(sorts)}")

        for b in self._blocks:
            if b.parent_id is not None and b.parent_id not in known:
                problems.append(f"block {b.id} references missing parent {b.parent_id}")
            seen = {b.id}
            current = b
            while current.parent_id is not None:
                if current.parent_id in seen:
                    problems.append(f"block {b.id} is part of a parent cycle")
                    break
                seen.add(current.parent_id)
                parent = self.get(current.parent_id)
                if parent is None:
                    break
                current = parent
        return problems

    def validate_tree(self) -> None:
        """
        Check sort contiguity and acyclicity.

        Raises:
            TreeInvariantError: Listing every violation found
        """
        problems = self.find_problems()
        if problems:
            raise TreeInvariantError(problems)
