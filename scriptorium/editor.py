"""
Editor session for one open page.

``PageSession`` owns the page's block store and wires it to the ordering
engine, the outline normalizer and the sync pipeline. It also hosts the
editing commands that create or delete blocks (insert-after, add child,
delete empty paragraph, quick heading, smart paste) and the reload path used
after a refused save.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from .api import PersistenceAPI
from .editing import parse_quick_heading, split_paste_chunks, wants_smart_paste
from .errors import DataLossRefusedError
from .models import Block, BlockPatch, DataLossWarning, FlushOutcome, Move, OperationResult, SaveStatus
from .ordering import DragSession, OrderingEngine, OutlineNormalizer, sequence
from .ordering.engine import Renderer
from .store import BlockStore
from .sync import DataLossGuard, SyncPipeline


class PageSession:
    """
    Everything needed to edit one page.

    Only one page is open per session; opening another page means creating a
    new session (after ``close`` on the old one).
    """

    def __init__(self, page_id: str, api: PersistenceAPI, renderer: Optional[Renderer] = None,
                 guard: Optional[DataLossGuard] = None, delay: Optional[float] = None):
        """
        Initialize the session.

        Args:
            page_id: The page to edit
            api: Persistence backend
            renderer: Optional ``(blocks, focus_id)`` callback
            guard: Data-loss guard for text saves
            delay: Debounce delay in seconds (defaults to config value)
        """
        self.page_id = page_id
        self.api = api
        self.store = BlockStore(page_id)
        self.engine = OrderingEngine(self.store, api, renderer)
        self.outline = OutlineNormalizer(self.store, api)
        self.sync = SyncPipeline(self.store, api, guard=guard, delay=delay)
        self.warnings: Dict[str, DataLossWarning] = {}
        self.sync.on_data_loss(self._remember_warning)

    def _remember_warning(self, warning: DataLossWarning) -> None:
        self.warnings[warning.block_id] = warning

    def render(self, focus_id: Optional[str] = None) -> None:
        self.engine.render(focus_id)

    # -- loading ---------------------------------------------------------

    async def load(self) -> List[Block]:
        """Fetch the page's blocks from the backend into the store."""
        blocks = await self.api.list_blocks(self.page_id)
        self.store.replace_all(blocks)
        logging.info(f"Loaded {len(self.store)} blocks for page {self.page_id}")
        self.render()
        return self.store.get_all()

    async def reload(self) -> List[Block]:
        """
        Drop unsaved and refused edits and reload from the backend.

        This is the recovery path offered after a data-loss refusal.
        """
        self.sync.discard()
        self.warnings.clear()
        return await self.load()

    # -- text and props --------------------------------------------------

    def edit(self, block_id: str, patch: Any, delay: Optional[float] = None) -> asyncio.Future:
        """Apply a partial update optimistically and schedule its save."""
        return self.sync.patch(block_id, patch, delay=delay)

    def edit_text(self, block_id: str, text: str) -> asyncio.Future:
        """Set a paragraph's text, or a section's title."""
        block = self.store.get(block_id)
        key = "title" if block is not None and block.is_section else "text"
        return self.sync.patch(block_id, {"content": {key: text}})

    def toggle_collapsed(self, section_id: str) -> Optional[asyncio.Future]:
        section = self.store.get(section_id)
        if section is None or not section.is_section:
            return None
        collapsed = not bool(section.props.get("collapsed"))
        future = self.sync.patch(section_id, {"props": {"collapsed": collapsed}}, delay=0)
        self.render(section_id)
        return future

    async def save(self, block_id: Optional[str] = None) -> SaveStatus:
        """
        Flush one block (or everything) now.

        Raises:
            DataLossRefusedError: If the guard refused the save
        """
        if block_id is not None:
            result = await self.sync.flush(block_id)
            if result is not None and result.outcome == FlushOutcome.REFUSED:
                raise self._refusal(block_id)
            return self.sync.status

        status = await self.sync.flush_all()
        refused = self.sync.refused_ids
        if refused:
            raise self._refusal(refused[0])
        return status

    def _refusal(self, block_id: str) -> DataLossRefusedError:
        warning = self.warnings.get(block_id)
        return DataLossRefusedError(block_id, warning.previous_count if warning else 0)

    # -- tree operations -------------------------------------------------

    async def indent(self, block_id: str) -> OperationResult:
        return await self.engine.indent(block_id)

    async def outdent(self, block_id: str) -> OperationResult:
        return await self.engine.outdent(block_id)

    async def move(self, block_id: str, delta: int) -> OperationResult:
        return await self.engine.move_within_siblings(block_id, delta)

    async def unwrap_section(self, section_id: str) -> OperationResult:
        self.sync.discard(section_id)
        return await self.engine.unwrap_section(section_id)

    def begin_drag(self, block_id: str) -> DragSession:
        return DragSession(self.engine, block_id)

    async def normalize(self, scope_parent_id: Optional[str] = None) -> List[Move]:
        moves = await self.outline.normalize(scope_parent_id)
        self.render()
        return moves

    # -- creating and deleting -------------------------------------------

    async def create_block(self, parent_id: Optional[str], index: int, type: str,
                           props: Dict[str, Any], content: Dict[str, Any]) -> Block:
        """Create a block at ``index`` among the children of ``parent_id``."""
        created = await self.api.create_block(self.page_id, type, parent_id=parent_id, sort=index,
                                              props=props, content=content)
        siblings = [s for s in self.store.children(parent_id) if s.id != created.id]
        index = max(0, min(index, len(siblings)))
        order = siblings[:index] + [created] + siblings[index:]
        moves = sequence(order, parent_id)

        self.store.append(created)
        self.store.apply_moves(moves)
        if index < len(siblings) or created.sort != index:
            # the backend may not shift later siblings on insert
            await self.api.reorder_blocks(self.page_id, moves)
        return self.store.get(created.id) or created

    async def insert_after(self, block_id: str, type: str = "paragraph") -> Block:
        """
        Create an empty paragraph (or section) right after ``block_id``.

        Raises:
            PersistenceError: If the backend rejects the create
        """
        block = self.store.get(block_id)
        if block is None:
            raise KeyError(block_id)
        siblings = self.store.children(block.parent_id)
        index = [s.id for s in siblings].index(block.id) + 1
        if type == "section":
            props, content = {"collapsed": False}, {"title": ""}
        else:
            props, content = {}, {"text": ""}
        created = await self.create_block(block.parent_id, index, type, props, content)
        self.render(created.id)
        return created

    async def add_child(self, section_id: str) -> Block:
        """Append an empty paragraph as the last child of a section."""
        section = self.store.get(section_id)
        if section is None:
            raise KeyError(section_id)
        index = len(self.store.children(section.id))
        created = await self.create_block(section.id, index, "paragraph", {}, {"text": ""})
        self.render(created.id)
        return created

    async def delete_empty_block(self, block_id: str) -> Optional[str]:
        """
        Delete a paragraph whose text is blank.

        Returns:
            The id to focus (previous sibling, else parent), or None when the
            block was not deleted
        """
        block = self.store.get(block_id)
        if block is None or block.type != "paragraph" or (block.text or "").strip():
            return None

        siblings = self.store.children(block.parent_id)
        index = [s.id for s in siblings].index(block.id)
        focus_id = siblings[index - 1].id if index > 0 else block.parent_id

        self.sync.discard(block.id)
        await self.api.delete_block(block.id)
        for doomed in [block.id] + sorted(self.store.descendant_ids(block.id)):
            self.store.remove(doomed)
        self.store.apply_moves(sequence([s for s in siblings if s.id != block.id], block.parent_id))
        self.render(focus_id)
        return focus_id

    async def convert_quick_heading(self, block_id: str) -> Optional[OperationResult]:
        """
        Turn a paragraph starting with ``/h1``..``/h3`` or ``#``..``###`` into a section.

        Lines after the first become a child paragraph, then the block's
        sibling scope is normalized.

        Returns:
            The focus target, or None when the paragraph has no heading shortcut
        """
        block = self.store.get(block_id)
        if block is None or block.type != "paragraph":
            return None
        heading = parse_quick_heading(block.text)
        if heading is None:
            return None

        self.sync.discard(block.id)
        patch = BlockPatch(
            type="section",
            props={**block.props, "collapsed": False, "level": heading.level},
            content={"title": heading.title},
        )
        saved = await self.api.patch_block(block.id, patch)
        self.store.update_block(block.id, lambda b: b.model_copy(update={
            "type": saved.type, "props": saved.props, "content": saved.content, "updated_at": saved.updated_at,
        }))

        child: Optional[Block] = None
        if heading.remainder.strip():
            child = await self.create_block(block.id, 0, "paragraph", {}, {"text": heading.remainder})

        moves = await self.outline.normalize(block.parent_id)
        if heading.title.strip() and child is not None:
            focus_id = child.id
        else:
            focus_id = block.id
        logging.info(f"Converted block {block.id} to a level {heading.level} section")
        self.render(focus_id)
        return OperationResult(focus_id=focus_id, moves=moves)

    async def paste(self, block_id: str, raw: str) -> Optional[OperationResult]:
        """
        Smart paste: split markdown-ish text into sections and paragraphs.

        The first chunk replaces the target block; the rest are created after
        it in order, then the page root is normalized.

        Returns:
            Focus on the last created block, or None when the text should be
            pasted as-is
        """
        block = self.store.get(block_id)
        if block is None or not wants_smart_paste(raw):
            return None
        chunks = split_paste_chunks(raw)
        if not chunks:
            return None

        self.sync.discard(block.id)
        first = chunks[0]
        patch = BlockPatch(
            type=first.type,
            props={**block.props, **first.props()},
            content=first.content(),
        )
        saved = await self.api.patch_block(block.id, patch)
        self.store.update_block(block.id, lambda b: b.model_copy(update={
            "type": saved.type, "props": saved.props, "content": saved.content, "updated_at": saved.updated_at,
        }))

        siblings = self.store.children(block.parent_id)
        index = [s.id for s in siblings].index(block.id) + 1
        created: List[Block] = []
        for offset, chunk in enumerate(chunks[1:]):
            created.append(await self.create_block(block.parent_id, index + offset, chunk.type,
                                                 chunk.props(), chunk.content()))

        moves = await self.outline.normalize(None)
        focus_id = created[-1].id if created else block.id
        logging.info(f"Pasted {len(chunks)} chunk(s) into page {self.page_id}")
        self.render(focus_id)
        return OperationResult(focus_id=focus_id, moves=moves)

    # -- lifecycle -------------------------------------------------------

    async def close(self) -> SaveStatus:
        """Save everything outstanding and wait for background reorders."""
        status = await self.sync.flush_all()
        await self.engine.drain()
        return status
