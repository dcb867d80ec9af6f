"""Persistence backends."""

from .base import PersistenceAPI
from .http_client import HttpPersistenceAPI
from .local import LocalPersistenceAPI

__all__ = ["PersistenceAPI", "HttpPersistenceAPI", "LocalPersistenceAPI"]
