"""Local block storage."""

from .manager import DatabaseManager

__all__ = ["DatabaseManager"]
