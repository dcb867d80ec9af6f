"""
Drag-and-drop placement.

``compute_drop_target`` is a pure function of the cursor position and a
snapshot of the tree and its rendered geometry; ``DragSession`` is the thin
stateful adapter that feeds it pointer updates and hands the final plan to the
ordering engine.
"""

import logging
from typing import Dict, List, Optional, Set

from ..config import config
from ..models import Block, DragSnapshot, DropPlan, OperationResult, Point, Rect
from ..store import BlockStore


def chunk_of(tree: BlockStore, block: Block) -> List[Block]:
    """
    The block plus the non-section siblings directly after it.

    The chunk ends before the next sibling of type ``section``.
    """
    siblings = tree.children(block.parent_id)
    ids = [s.id for s in siblings]
    if block.id not in ids:
        return [block]
    chunk = [block]
    for sibling in siblings[ids.index(block.id) + 1:]:
        if sibling.is_section:
            break
        chunk.append(sibling)
    return chunk


def forbidden_parents(tree: BlockStore, chunk_ids: List[str]) -> Set[str]:
    """Ids that may not become the parent of the chunk: its members and everything below them."""
    forbidden: Set[str] = set(chunk_ids)
    for block_id in chunk_ids:
        forbidden |= tree.descendant_ids(block_id)
    return forbidden


def _index_by_midpoint(siblings: List[Block], rects: Dict[str, Rect], y: float) -> int:
    for index, sibling in enumerate(siblings):
        rect = rects.get(sibling.id)
        if rect is not None and y < rect.mid_y:
            return index
    return len(siblings)


def compute_drop_target(
    block_id: str,
    cursor: Point,
    snapshot: DragSnapshot,
    indent_threshold: Optional[float] = None,
    outdent_threshold: Optional[float] = None,
) -> Optional[DropPlan]:
    """
    Work out where a dragged block would land.

    Relative to the hovered section header's left edge:

    - at least ``indent_threshold`` to the right: first child of the hovered section
    - at least ``outdent_threshold`` to the left: sibling right after the hovered
      section's parent
    - otherwise: sibling within the hovered section's parent, positioned by
      comparing the cursor Y with each sibling's vertical midpoint

    Args:
        block_id: The block being dragged
        cursor: Pointer position
        snapshot: Blocks, their rendered rects, and the hovered section
        indent_threshold: Nesting distance in px (defaults to config value)
        outdent_threshold: Lifting distance in px (defaults to config value)

    Returns:
        A drop plan, or None when nothing valid is hovered or the target
        parent lies inside the dragged chunk
    """
    indent_threshold = config.indent_threshold if indent_threshold is None else indent_threshold
    outdent_threshold = config.outdent_threshold if outdent_threshold is None else outdent_threshold

    tree = BlockStore(blocks=snapshot.blocks)
    dragged = tree.get(block_id)
    hovered = tree.get(snapshot.hovered_section_id)
    if dragged is None or hovered is None or not hovered.is_section:
        return None
    header = snapshot.rects.get(hovered.id)
    if header is None:
        return None

    chunk_ids = [b.id for b in chunk_of(tree, dragged)]
    dx = cursor.x - header.left

    if dx >= indent_threshold:
        mode = "child"
        parent_id: Optional[str] = hovered.id
        index = 0
    elif dx <= -outdent_threshold and hovered.parent_id is not None:
        outer = tree.get(hovered.parent_id)
        if outer is None or outer.id in chunk_ids:
            return None
        mode = "after_parent"
        parent_id = outer.parent_id
        siblings = [s for s in tree.children(parent_id) if s.id not in chunk_ids]
        index = [s.id for s in siblings].index(outer.id) + 1
    else:
        mode = "sibling"
        parent_id = hovered.parent_id
        siblings = [s for s in tree.children(parent_id) if s.id not in chunk_ids]
        index = _index_by_midpoint(siblings, snapshot.rects, cursor.y)

    if parent_id is not None and parent_id in forbidden_parents(tree, chunk_ids):
        logging.debug(f"Rejected drop of {block_id} under {parent_id}: would create a cycle")
        return None

    return DropPlan(block_id=dragged.id, chunk_ids=chunk_ids, parent_id=parent_id, index=index, mode=mode)


class DragSession:
    """
    Pointer adapter for one drag gesture.

    Call ``move`` on every pointer update with the hovered section and the
    current geometry, then ``drop`` (or ``cancel``).
    """

    def __init__(self, engine, block_id: str, indent_threshold: Optional[float] = None,
                 outdent_threshold: Optional[float] = None):
        self.engine = engine
        self.block_id = block_id
        self.indent_threshold = indent_threshold
        self.outdent_threshold = outdent_threshold
        self.plan: Optional[DropPlan] = None

    def move(self, cursor: Point, hovered_section_id: Optional[str],
             rects: Dict[str, Rect]) -> Optional[DropPlan]:
        snapshot = DragSnapshot(
            blocks=self.engine.store.get_all(),
            rects=rects,
            hovered_section_id=hovered_section_id,
        )
        self.plan = compute_drop_target(
            self.block_id, cursor, snapshot, self.indent_threshold, self.outdent_threshold
        )
        return self.plan

    async def drop(self) -> OperationResult:
        plan, self.plan = self.plan, None
        if plan is None:
            return OperationResult(focus_id=self.block_id)
        return await self.engine.apply_drop_plan(plan)

    def cancel(self) -> None:
        self.plan = None
