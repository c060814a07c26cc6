"""Datastore, schema and write batching."""

from .batcher import PersistenceBatcher
from .collections import collection_name
from .sqlite_manager import SQLiteManager

__all__ = ["PersistenceBatcher", "SQLiteManager", "collection_name"]
