"""
Outline normalization.

Rebuilds the parent/child structure of a scope from the heading levels of its
sections, so a flat run of "# A / ## B / text" becomes A > B > text. Used after
a markdown paste, after a quick heading conversion, and on demand.
"""

import logging
from collections import OrderedDict
from typing import Dict, List, Optional

from ..api import PersistenceAPI
from ..errors import ScriptoriumError
from ..models import Block, BlockPatch, Move
from ..store import BlockStore


def _is_sectionish(block: Block) -> bool:
    return block.type in ("section", "heading")


def compute_outline_parents(scope: List[Block], scope_parent_id: Optional[str] = None) -> Dict[str, Optional[str]]:
    """
    Desired parent of every block in ``scope`` (given in document order).

    - a section with level N goes under the nearest preceding section of level
      N-1, or to the scope root when there is none (level 1 always does)
    - a section without a level sits at the scope root and ends the current container
    - any other block goes under the most recent leveled section, or the scope root

    Args:
        scope: Blocks to place, in their current order
        scope_parent_id: Parent the scope hangs under (None for the page root)

    Returns:
        Mapping of block id to its desired parent id
    """
    latest_by_level: Dict[int, str] = {}
    container: Optional[str] = None
    desired: Dict[str, Optional[str]] = {}

    for block in scope:
        level = block.level if _is_sectionish(block) else None
        if level is not None:
            if level == 1:
                parent_id = scope_parent_id
            else:
                parent_id = latest_by_level.get(level - 1, scope_parent_id)
            latest_by_level[level] = block.id
            container = block.id
        elif _is_sectionish(block):
            parent_id = scope_parent_id
            container = None
        else:
            parent_id = container if container is not None else scope_parent_id
        desired[block.id] = parent_id

    return desired


class OutlineNormalizer:
    """
    Applies ``compute_outline_parents`` to the store and persists the result.

    Legacy ``heading`` blocks inside the scope are first upgraded to sections.
    Persistence failures are logged; the optimistic store state is kept.
    """

    def __init__(self, store: BlockStore, api: PersistenceAPI):
        self.store = store
        self.api = api

    async def upgrade_headings(self, scope: List[Block]) -> List[Block]:
        """Convert ``heading`` blocks to leveled sections; returns the refreshed scope."""
        for block in scope:
            if block.type != "heading":
                continue
            level = block.level or 1
            patch = BlockPatch(
                type="section",
                props={**block.props, "level": level, "collapsed": False},
                content={"title": block.text or ""},
            )
            self.store.update_block(block.id, lambda b, p=patch: b.model_copy(
                update={"type": p.type, "props": p.props, "content": p.content}))
            try:
                await self.api.patch_block(block.id, patch)
            except ScriptoriumError as e:
                logging.error(f"Could not upgrade heading {block.id} to a section: {e}")
            else:
                logging.debug(f"Upgraded heading {block.id} to a level {level} section")
        return [self.store.get(b.id) or b for b in scope]

    async def normalize(self, scope_parent_id: Optional[str] = None) -> List[Move]:
        """
        Re-nest the children of ``scope_parent_id`` by heading level.

        Returns:
            The moves applied (empty when the scope is empty)
        """
        scope = self.store.children(scope_parent_id)
        if not scope:
            return []
        scope = await self.upgrade_headings(scope)

        desired = compute_outline_parents(scope, scope_parent_id)
        scope_ids = set(desired)

        buckets: "OrderedDict[Optional[str], List[Block]]" = OrderedDict()
        buckets[scope_parent_id] = []
        for block in scope:
            parent_id = desired[block.id]
            if parent_id not in buckets:
                # children the receiving section already had stay in front
                buckets[parent_id] = [c for c in self.store.children(parent_id) if c.id not in scope_ids]
            buckets[parent_id].append(block)

        moves: List[Move] = []
        for parent_id, members in buckets.items():
            moves.extend(Move(id=b.id, parent_id=parent_id, sort=i) for i, b in enumerate(members))

        self.store.apply_moves(moves)
        try:
            await self.api.reorder_blocks(self.store.page_id, moves)
        except ScriptoriumError as e:
            logging.error(f"Outline reorder on page {self.store.page_id} failed: {e}")
        logging.info(f"Normalized outline of {len(scope)} block(s) under {scope_parent_id or 'root'}")
        return moves
