"""Persistence layer: engine, sessions and shared model helpers."""

from bazaar.storage.db import Database, db
from bazaar.storage.models import Base, new_id, utcnow

__all__ = ["Base", "Database", "db", "new_id", "utcnow"]
