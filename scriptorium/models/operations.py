"""
Models describing changes to the block tree.

Moves and patches are what the ordering engine and the sync pipeline hand to
the persistence layer; drop plans are what the pure drag computation returns.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .blocks import Block


class Move(BaseModel):
    """A single (parent, sort) assignment inside a reorder batch."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    parent_id: Optional[str] = Field(None, alias="parentId")
    sort: int

    def to_wire(self) -> Dict[str, Any]:
        return {"id": self.id, "parentId": self.parent_id, "sort": self.sort}


_SCALAR_FIELDS = ("type", "parent_id", "sort")
_MAP_FIELDS = ("props", "content")


class BlockPatch(BaseModel):
    """
    A partial update of a block.

    Only fields that were explicitly given are part of the patch, so
    ``BlockPatch(parent_id=None)`` (move to root) differs from ``BlockPatch()``.
    Scalars replace; ``props`` and ``content`` merge key-wise into the block.
    """

    model_config = ConfigDict(populate_by_name=True)

    type: Optional[str] = None
    parent_id: Optional[str] = Field(None, alias="parentId")
    sort: Optional[int] = None
    props: Optional[Dict[str, Any]] = None
    content: Optional[Dict[str, Any]] = None

    @classmethod
    def coerce(cls, patch: Any) -> "BlockPatch":
        if isinstance(patch, BlockPatch):
            return patch
        return cls.model_validate(dict(patch or {}))

    @property
    def fields(self) -> List[str]:
        return [name for name in _SCALAR_FIELDS + _MAP_FIELDS if name in self.model_fields_set]

    def touches(self, name: str) -> bool:
        return name in self.model_fields_set

    @property
    def touches_text(self) -> bool:
        return self.touches("content") and "text" in (self.content or {})

    def merged(self, newer: "BlockPatch") -> "BlockPatch":
        """
        Combine this patch with a later one for the same block.

        Args:
            newer: The patch issued after this one

        Returns:
            A new patch: later scalars win, props/content merge shallowly
        """
        data: Dict[str, Any] = {name: getattr(self, name) for name in self.fields}
        for name in _SCALAR_FIELDS:
            if newer.touches(name):
                data[name] = getattr(newer, name)
        for name in _MAP_FIELDS:
            if newer.touches(name):
                data[name] = {**(data.get(name) or {}), **(getattr(newer, name) or {})}
        return BlockPatch(**data)

    def apply_to(self, block: Block) -> Block:
        """Return a copy of ``block`` with this patch applied."""
        update: Dict[str, Any] = {}
        for name in _SCALAR_FIELDS:
            if self.touches(name):
                update[name] = getattr(self, name)
        if self.touches("sort"):
            update["sort"] = int(self.sort or 0)
        for name in _MAP_FIELDS:
            if self.touches(name):
                update[name] = {**getattr(block, name), **(getattr(self, name) or {})}
        return block.model_copy(update=update)

    def complete_against(self, block: Block) -> "BlockPatch":
        """
        Expand the patch into its field-replacing persisted form.

        Each touched field takes its value from ``block`` with this patch applied,
        so ``props``/``content`` carry the whole merged object rather than a delta.
        """
        target = self.apply_to(block)
        return BlockPatch(**{name: getattr(target, name) for name in self.fields})

    def to_wire(self) -> Dict[str, Any]:
        wire_names = {"parent_id": "parentId"}
        return {wire_names.get(name, name): getattr(self, name) for name in self.fields}


class OperationResult(BaseModel):
    """Outcome of a tree operation: where focus should go and what moved."""

    focus_id: Optional[str] = None
    moves: List[Move] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.moves)


class Point(BaseModel):
    x: float
    y: float


class Rect(BaseModel):
    """Rendered bounds of a block, in the same coordinate space as the cursor."""

    left: float
    top: float
    right: float
    bottom: float

    @property
    def mid_y(self) -> float:
        return (self.top + self.bottom) / 2.0


class DragSnapshot(BaseModel):
    """
    Everything the drop computation needs, detached from any rendering toolkit.

    ``rects`` maps block ids to their rendered bounds; for sections the rect is
    the header row.
    """

    blocks: List[Block]
    rects: Dict[str, Rect] = Field(default_factory=dict)
    hovered_section_id: Optional[str] = None


class DropPlan(BaseModel):
    """
    Where a dragged chunk should land.

    ``index`` is a position in the receiving parent's children with the chunk
    itself removed.
    """

    block_id: str
    chunk_ids: List[str]
    parent_id: Optional[str] = None
    index: int = 0
    mode: Literal["child", "after_parent", "sibling"] = "sibling"
