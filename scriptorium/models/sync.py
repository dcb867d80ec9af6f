"""
Models exchanged between the sync pipeline and its observers.
"""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field

from .blocks import Block


class SaveStatus(str, Enum):
    IDLE = "idle"
    DIRTY = "dirty"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


class SaveStatusEvent(BaseModel):
    status: SaveStatus
    pending_count: int = 0


class FlushOutcome(str, Enum):
    SAVED = "saved"
    FAILED = "failed"
    REFUSED = "refused"
    DISCARDED = "discarded"


class FlushResult(BaseModel):
    """What happened to one block's pending patch."""

    block_id: str
    outcome: FlushOutcome
    block: Optional[Block] = Field(
        None,
        description="The authoritative record returned by the server on success"
    )
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome == FlushOutcome.SAVED


class GuardVerdict(BaseModel):
    """Result of checking a text change for dropped annotations."""

    allowed: bool
    previous_count: int = 0
    candidate_count: int = 0
    previous_kinds: Dict[str, int] = Field(default_factory=dict)
    reason: Optional[str] = None


class DataLossWarning(BaseModel):
    """Raised to observers when a flush was refused by the data-loss guard."""

    block_id: str
    previous_count: int
    message: str
