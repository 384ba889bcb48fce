"""
Persistence layer for phonoguard.

- KeyValueStore: the abstract asynchronous store the engine persists through.
- NamespacedStore: key prefixing plus StoreUnavailable normalization.
- KeyedLock: per-key async mutex for read-modify-write sequences.
- InMemoryKeyValueStore / JsonFileKeyValueStore: concrete backends.
- SecureStorage: cipher-backed JSON values for credentials and preferences.
"""

from phonoguard.storage.base import (
    KeyedLock,
    KeyValueStore,
    NamespacedStore,
    load_json,
    save_json,
)
from phonoguard.storage.json_file import JsonFileKeyValueStore
from phonoguard.storage.memory import InMemoryKeyValueStore
from phonoguard.storage.secure import (
    AUTH_TOKENS_KEY,
    DEFAULT_USER_PREFERENCES,
    SECURE_PREFIX,
    SESSION_DATA_KEY,
    USER_PREFERENCES_KEY,
    SecureStorage,
)

__all__ = [
    "AUTH_TOKENS_KEY",
    "DEFAULT_USER_PREFERENCES",
    "SECURE_PREFIX",
    "SESSION_DATA_KEY",
    "USER_PREFERENCES_KEY",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "KeyedLock",
    "NamespacedStore",
    "SecureStorage",
    "load_json",
    "save_json",
]
