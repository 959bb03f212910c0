"""Source and target store implementations for ledgermigrate."""

from ledgermigrate.stores.in_memory import InMemorySourceStore, InMemoryTargetStore
from ledgermigrate.stores.interface import SourceStore, TargetStore
from ledgermigrate.stores.mongo import MongoSourceStore
from ledgermigrate.stores.postgresql import PostgreSQLTargetStore
from ledgermigrate.stores.schema import get_schema
from ledgermigrate.stores.sqlite import SQLiteTargetStore

__all__ = [
    # Abstract base classes
    "SourceStore",
    "TargetStore",
    # Concrete implementations
    "InMemorySourceStore",
    "InMemoryTargetStore",
    "MongoSourceStore",
    "PostgreSQLTargetStore",
    "SQLiteTargetStore",
    # Schema
    "get_schema",
]
