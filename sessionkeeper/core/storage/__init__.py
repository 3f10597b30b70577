from sessionkeeper.core.storage.kv import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from sessionkeeper.core.storage.scoped import UserScopedStore, scoped_key

__all__ = ["JsonFileKeyValueStore", "KeyValueStore", "MemoryKeyValueStore", "UserScopedStore", "scoped_key"]
