# -*- coding: utf-8 -*-
from .kv import JsonFileStore, KeyValueStore, MemoryStore, read_json, write_json
from .manager import (
    ConsistencyReport,
    ModelStorage,
    PreferencesStorage,
    ProviderStorage,
    StorageManager,
    StorageStats,
)

__all__ = [
    "ConsistencyReport",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "ModelStorage",
    "PreferencesStorage",
    "ProviderStorage",
    "StorageManager",
    "StorageStats",
    "read_json",
    "write_json",
]
