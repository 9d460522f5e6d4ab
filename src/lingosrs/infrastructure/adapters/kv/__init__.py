# Key-Value Store Adapters Package
from .memory import InMemoryKeyValueStore
from .sqlite import SqliteKeyValueStore

__all__ = ["InMemoryKeyValueStore", "SqliteKeyValueStore"]
