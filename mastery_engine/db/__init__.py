"""
Database Module - SQLAlchemy models, engine and record stores.
"""

from mastery_engine.db.database import get_engine, init_db, session_scope
from mastery_engine.db.store import InMemoryRecordStore, RecordStore, SqlAlchemyRecordStore

__all__ = [
    "InMemoryRecordStore",
    "RecordStore",
    "SqlAlchemyRecordStore",
    "get_engine",
    "init_db",
    "session_scope",
]
