"""
Store export module.

- schema.py: SQLite schema, post-load indexes and table groups
- database.py: StoreWriter (checkpointed batch loads, upserts, FTS rebuild)
"""

from .database import StoreWriter, read_store_stats
from .schema import SCHEMA_SQL

__all__ = ['StoreWriter', 'read_store_stats', 'SCHEMA_SQL']
