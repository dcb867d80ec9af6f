"""
Block data models for Scriptorium.

A page is a forest of blocks. Each block carries an extensible ``type`` tag and
two open maps, ``props`` and ``content``, whose shape depends on that tag. The
per-type schemas below are checked whenever a record enters the block store;
unknown keys are kept so newer clients never lose data written by older ones.
"""

import json
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..errors import BlockValidationError


def parse_maybe_json(value: Any) -> Dict[str, Any]:
    """Decode a props/content payload that may arrive as a JSON string."""
    if not value:
        return {}
    if isinstance(value, dict):
        return value
    try:
        decoded = json.loads(str(value))
    except (TypeError, ValueError):
        return {}
    return decoded if isinstance(decoded, dict) else {}


def _coerce_level(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        level = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"level must be an integer, got {value!r}")
    if level == 0:
        return None
    if level < 1 or level > 3:
        raise ValueError(f"level must be between 1 and 3, got {level}")
    return level


class _OpenSchema(BaseModel):
    """Base for per-type schemas: typed known keys, extra keys preserved."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class SectionProps(_OpenSchema):
    level: Optional[int] = Field(
        None,
        description="Heading level 1-3; missing or 0 means a plain section"
    )
    collapsed: bool = False
    completed: bool = False

    @field_validator("level", mode="before")
    @classmethod
    def check_level(cls, value: Any) -> Optional[int]:
        return _coerce_level(value)


class SectionContent(_OpenSchema):
    title: Optional[str] = ""


class HeadingProps(_OpenSchema):
    level: Optional[int] = None

    @field_validator("level", mode="before")
    @classmethod
    def check_level(cls, value: Any) -> Optional[int]:
        return _coerce_level(value)


class HeadingContent(_OpenSchema):
    text: Optional[str] = ""


class ParagraphProps(_OpenSchema):
    html: Optional[str] = None


class ParagraphContent(_OpenSchema):
    text: Optional[str] = ""


class TableData(_OpenSchema):
    columns: List[Any] = Field(default_factory=list)
    rows: List[Any] = Field(default_factory=list)
    has_header: bool = Field(True, alias="hasHeader")


class TableProps(_OpenSchema):
    table: Optional[TableData] = None


class OpenProps(_OpenSchema):
    """Schema for block types without a dedicated shape (divider, custom widgets)."""


# type tag -> (props schema, content schema)
BLOCK_SCHEMAS: Dict[str, Tuple[Type[_OpenSchema], Type[_OpenSchema]]] = {
    "section": (SectionProps, SectionContent),
    "heading": (HeadingProps, HeadingContent),
    "paragraph": (ParagraphProps, ParagraphContent),
    "table": (TableProps, OpenProps),
    "divider": (OpenProps, OpenProps),
}


def register_block_type(type_name: str, props_schema: Type[_OpenSchema],
                        content_schema: Type[_OpenSchema]) -> None:
    """
    Register the props/content schemas for a block type.

    Args:
        type_name: The block ``type`` tag
        props_schema: Model validating ``props``
        content_schema: Model validating ``content``
    """
    BLOCK_SCHEMAS[type_name] = (props_schema, content_schema)


class Block(BaseModel):
    """
    A node in a page's content tree.

    Blocks reference their parent by id; ``sort`` orders siblings under a
    common parent. Instances held by the block store are treated as values:
    every change produces a new copy.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(
        ...,
        description="Server-assigned unique identifier"
    )

    page_id: Optional[str] = Field(
        None,
        alias="pageId",
        description="The page this block belongs to"
    )

    type: str = Field(
        ...,
        description="Extensible type tag (paragraph, heading, section, divider, table, ...)"
    )

    parent_id: Optional[str] = Field(
        None,
        alias="parentId",
        description="Parent block id, or None for a root block"
    )

    sort: int = Field(
        0,
        description="Ordinal among siblings under the same parent"
    )

    props: Dict[str, Any] = Field(default_factory=dict)

    content: Dict[str, Any] = Field(default_factory=dict)

    created_at: Optional[str] = Field(None, alias="createdAt")

    updated_at: Optional[str] = Field(None, alias="updatedAt")

    @field_validator("id", "page_id", "parent_id", mode="before")
    @classmethod
    def stringify_ids(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("props", "content", mode="before")
    @classmethod
    def decode_maps(cls, value: Any) -> Dict[str, Any]:
        return parse_maybe_json(value)

    @field_validator("sort", mode="before")
    @classmethod
    def coerce_sort(cls, value: Any) -> int:
        try:
            return int(value or 0)
        except (TypeError, ValueError):
            return 0

    @model_validator(mode="after")
    def check_type_schema(self) -> "Block":
        schemas = BLOCK_SCHEMAS.get(self.type)
        if schemas:
            props_schema, content_schema = schemas
            props_schema.model_validate(self.props)
            content_schema.model_validate(self.content)
        return self

    @classmethod
    def from_record(cls, raw: Any) -> "Block":
        """
        Build a block from a server or database record.

        Accepts the wire form (``propsJson``/``contentJson`` strings, camelCase
        keys) as well as plain ``props``/``content`` mappings.

        Raises:
            BlockValidationError: If the record does not match its type schema
        """
        if isinstance(raw, Block):
            return raw
        data = dict(raw or {})
        for json_key, key in (("propsJson", "props"), ("props_json", "props"),
                              ("contentJson", "content"), ("content_json", "content")):
            if json_key in data:
                encoded = data.pop(json_key)
                if not data.get(key):
                    data[key] = encoded
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise BlockValidationError(f"Invalid block record {data.get('id')!r}: {e}") from e

    def to_wire(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys the persistence server uses."""
        return self.model_dump(by_alias=True)

    def typed_props(self) -> _OpenSchema:
        props_schema = BLOCK_SCHEMAS.get(self.type, (OpenProps, OpenProps))[0]
        return props_schema.model_validate(self.props)

    def typed_content(self) -> _OpenSchema:
        content_schema = BLOCK_SCHEMAS.get(self.type, (OpenProps, OpenProps))[1]
        return content_schema.model_validate(self.content)

    @property
    def is_section(self) -> bool:
        return self.type == "section"

    @property
    def level(self) -> Optional[int]:
        """Heading level of a section or legacy heading, None when plain or invalid."""
        if self.type not in ("section", "heading"):
            return None
        try:
            return _coerce_level(self.props.get("level"))
        except ValueError:
            return None

    @property
    def text(self) -> Optional[str]:
        value = self.content.get("text")
        return value if isinstance(value, str) else None

    def sort_key(self) -> Tuple[int, str, str]:
        """Sibling order: sort, then creation time, then id."""
        return (self.sort, self.created_at or "", self.id)
