"""
Database Package

Provides SQLAlchemy async engine management, the key-value table model and
the key-value store implementations used for durable persistence.
"""

from .session import create_engine_for, create_session_factory
from .models import Base, KvEntry
from .kv_store import KeyValueStore, SqlKeyValueStore, InMemoryKeyValueStore

__all__ = [
    "create_engine_for",
    "create_session_factory",
    "Base",
    "KvEntry",
    "KeyValueStore",
    "SqlKeyValueStore",
    "InMemoryKeyValueStore",
]
