"""
Ordering engine for Scriptorium.

Turns structural edits (indent, outdent, sibling moves, drops, section unwrap)
into (parent, sort) assignments. Each operation rewrites every sibling list it
touches to 0..n-1, applies the result to the block store at once, and then
persists it as a single reorder batch.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from ..api import PersistenceAPI
from ..errors import ScriptoriumError
from ..models import Block, DragSnapshot, DropPlan, Move, OperationResult, Point, Rect
from ..store import BlockStore
from .drop import chunk_of, compute_drop_target, forbidden_parents

Renderer = Callable[[List[Block], Optional[str]], Any]


def sequence(blocks: List[Block], parent_id: Optional[str]) -> List[Move]:
    """Moves placing ``blocks`` under ``parent_id`` in list order."""
    return [Move(id=b.id, parent_id=parent_id, sort=i) for i, b in enumerate(blocks)]


def can_unwrap_section_title(title: Optional[str]) -> bool:
    """Only a section whose title is blank may be unwrapped from the keyboard."""
    return str(title or "").strip() == ""


class OrderingEngine:
    """
    Re-parents and reorders blocks in the store of the open page.

    Reorders triggered by indent, outdent, sibling moves and drops are sent in
    the background: the store keeps the optimistic result even if the call
    fails, and the failure is only logged. ``drain`` waits for them.
    """

    def __init__(self, store: BlockStore, api: PersistenceAPI, renderer: Optional[Renderer] = None):
        """
        Initialize the engine.

        Args:
            store: The page's block store
            api: Persistence backend
            renderer: Optional ``(blocks, focus_id)`` callback run after each committed change
        """
        self.store = store
        self.api = api
        self.renderer = renderer
        self._background: Set[asyncio.Task] = set()

    # -- plumbing --------------------------------------------------------

    def render(self, focus_id: Optional[str] = None) -> None:
        if self.renderer is None:
            return
        try:
            self.renderer(self.store.get_all(), focus_id)
        except Exception as e:
            logging.error(f"Renderer failed: {e}")

    def _submit_reorder(self, moves: List[Move]) -> None:
        task = asyncio.ensure_future(self._reorder_in_background(moves))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _reorder_in_background(self, moves: List[Move]) -> None:
        try:
            await self.api.reorder_blocks(self.store.page_id, moves)
        except ScriptoriumError as e:
            logging.error(f"Reorder of {len(moves)} block(s) on page {self.store.page_id} failed: {e}")

    async def drain(self) -> None:
        """Wait until every background reorder has finished."""
        while self._background:
            await asyncio.gather(*list(self._background))

    def _commit(self, moves: List[Move], focus_id: Optional[str]) -> OperationResult:
        self.store.apply_moves(moves)
        self.render(focus_id)
        self._submit_reorder(moves)
        return OperationResult(focus_id=focus_id, moves=moves)

    def _position(self, siblings: List[Block], block_id: str) -> int:
        for index, sibling in enumerate(siblings):
            if sibling.id == block_id:
                return index
        return -1

    # -- keyboard operations --------------------------------------------

    async def indent(self, block_id: str) -> OperationResult:
        """
        Make the block the last child of its preceding sibling.

        No-op for a block without a preceding sibling.
        """
        block = self.store.get(block_id)
        if block is None:
            return OperationResult(focus_id=block_id)

        siblings = self.store.children(block.parent_id)
        index = self._position(siblings, block.id)
        if index <= 0:
            return OperationResult(focus_id=block.id)

        new_parent = siblings[index - 1]
        new_children = [c for c in self.store.children(new_parent.id) if c.id != block.id] + [block]
        remaining = [s for s in siblings if s.id != block.id]

        moves = sequence(new_children, new_parent.id) + sequence(remaining, block.parent_id)
        logging.debug(f"Indent {block.id} under {new_parent.id}")
        return self._commit(moves, block.id)

    async def outdent(self, block_id: str) -> OperationResult:
        """
        Lift the block out of its parent, right after that parent.

        Siblings that followed the block come along and stay right after it,
        in order. No-op for a root block.
        """
        block = self.store.get(block_id)
        if block is None:
            return OperationResult(focus_id=block_id)
        parent = self.store.get(block.parent_id)
        if parent is None:
            return OperationResult(focus_id=block.id)

        grandparent_id = parent.parent_id
        old_children = self.store.children(parent.id)
        index = self._position(old_children, block.id)
        staying = old_children[:index]
        followers = old_children[index + 1:]

        outer = [s for s in self.store.children(grandparent_id) if s.id != block.id]
        parent_index = self._position(outer, parent.id)
        new_order = outer[:parent_index + 1] + [block] + followers + outer[parent_index + 1:]

        moves = sequence(new_order, grandparent_id) + sequence(staying, parent.id)
        logging.debug(f"Outdent {block.id} out of {parent.id} with {len(followers)} follower(s)")
        return self._commit(moves, block.id)

    async def move_within_siblings(self, block_id: str, delta: int) -> OperationResult:
        """Swap the block with the sibling ``delta`` places away (usually -1 or +1)."""
        block = self.store.get(block_id)
        if block is None:
            return OperationResult(focus_id=block_id)

        group = self.store.children(block.parent_id)
        i = self._position(group, block.id)
        j = i + delta
        if i < 0 or delta == 0 or j < 0 or j >= len(group):
            return OperationResult(focus_id=block.id)

        swapped = list(group)
        swapped[i], swapped[j] = swapped[j], swapped[i]
        return self._commit(sequence(swapped, block.parent_id), block.id)

    # -- drag and drop ---------------------------------------------------

    async def apply_drop_plan(self, plan: DropPlan) -> OperationResult:
        """
        Move the dragged chunk to the planned position.

        The plan is re-checked against the current store: chunk members that
        no longer sit next to the dragged block are left alone, and a target
        parent inside the chunk is rejected.
        """
        block = self.store.get(plan.block_id)
        if block is None:
            return OperationResult(focus_id=plan.block_id)

        siblings = self.store.children(block.parent_id)
        chunk = [block]
        for member in chunk_of(self.store, block)[1:]:
            if member.id not in plan.chunk_ids:
                break
            chunk.append(member)
        chunk_ids = [c.id for c in chunk]
        if plan.parent_id is not None and plan.parent_id in forbidden_parents(self.store, chunk_ids):
            logging.info(f"Ignoring drop of {block.id}: target is inside the dragged blocks")
            return OperationResult(focus_id=block.id)
        if plan.parent_id is not None and self.store.get(plan.parent_id) is None:
            return OperationResult(focus_id=block.id)

        receiving = [c for c in self.store.children(plan.parent_id) if c.id not in chunk_ids]
        index = max(0, min(plan.index, len(receiving)))
        moves = sequence(receiving[:index] + chunk + receiving[index:], plan.parent_id)
        if block.parent_id != plan.parent_id:
            vacated = [s for s in siblings if s.id not in chunk_ids]
            moves += sequence(vacated, block.parent_id)

        if all(self._unchanged(m) for m in moves):
            return OperationResult(focus_id=block.id)
        logging.debug(f"Drop {len(chunk)} block(s) under {plan.parent_id or 'root'} at {index}")
        return self._commit(moves, block.id)

    def _unchanged(self, move: Move) -> bool:
        current = self.store.get(move.id)
        return current is not None and current.parent_id == move.parent_id and current.sort == move.sort

    async def drag_reparent(self, block_id: str, cursor: Point, hovered_section_id: Optional[str],
                            rects: Dict[str, Rect]) -> OperationResult:
        """Compute the drop target for the current store and apply it."""
        snapshot = DragSnapshot(blocks=self.store.get_all(), rects=rects, hovered_section_id=hovered_section_id)
        plan = compute_drop_target(block_id, cursor, snapshot)
        if plan is None:
            return OperationResult(focus_id=block_id)
        return await self.apply_drop_plan(plan)

    # -- section unwrap --------------------------------------------------

    async def unwrap_section(self, section_id: str) -> OperationResult:
        """
        Delete a section and splice its children into its place.

        The reorder and the delete are awaited; persistence errors propagate.

        Returns:
            Focus on the first moved child, else the previous sibling, else the
            next sibling, else the section's parent
        """
        section = self.store.get(section_id)
        if section is None or not section.is_section:
            return OperationResult(focus_id=section_id)

        parent_id = section.parent_id
        siblings = self.store.children(parent_id)
        children = self.store.children(section.id)
        index = self._position(siblings, section.id)
        others = [s for s in siblings if s.id != section.id]
        new_order = others[:index] + children + others[index:]
        moves = sequence(new_order, parent_id)

        # park the section after its former siblings until the delete lands
        self.store.apply_moves(moves + [Move(id=section.id, parent_id=parent_id, sort=len(new_order))])
        await self.api.reorder_blocks(self.store.page_id, moves)
        await self.api.delete_block(section.id)
        self.store.remove(section.id)

        if children:
            focus_id = children[0].id
        elif index > 0:
            focus_id = others[index - 1].id
        elif index < len(others):
            focus_id = others[index].id
        else:
            focus_id = parent_id
        self.render(focus_id)
        return OperationResult(focus_id=focus_id, moves=moves)
