"""
Exception types raised by Scriptorium.

Structural no-ops (indenting the first block, outdenting a root block, dragging
onto a descendant) are not errors and never raise; everything here signals a
real failure the caller has to decide about.
"""

from typing import List, Optional


class ScriptoriumError(Exception):
    """Base class for all Scriptorium errors."""


class BlockValidationError(ScriptoriumError):
    """A block record failed schema validation at the store boundary."""


class TreeInvariantError(ScriptoriumError):
    """
    The block forest violates sort contiguity or acyclicity.

    Attributes:
        problems: Human-readable description of every violation found
    """

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "tree invariant violated")


class PersistenceError(ScriptoriumError):
    """A persistence call failed."""


class PersistenceNetworkError(PersistenceError):
    """The persistence server could not be reached."""


class PersistenceHTTPError(PersistenceError):
    """The persistence server answered with a non-success status."""

    def __init__(self, status_code: int, message: str, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(f"{status_code} {message}" + (f" - {body}" if body else ""))


class BlockNotFoundError(PersistenceHTTPError):
    """The addressed block does not exist on the server."""


class DataLossRefusedError(ScriptoriumError):
    """A save was refused because it would erase every inline annotation."""

    def __init__(self, block_id: str, previous_count: int):
        self.block_id = block_id
        self.previous_count = previous_count
        super().__init__(
            f"Refusing to save block {block_id}: the new text drops all "
            f"{previous_count} annotation(s). Reload the page to recover."
        )
