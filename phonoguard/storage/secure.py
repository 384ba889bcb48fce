"""
Encrypted storage for cached credentials and preferences.

Values are JSON encoded, passed through a Cipher and stored under keys
carrying the ``secure_`` prefix, so signing out can wipe them in one call.
Decrypted values are cached in memory; the cache is transient and is dropped
when the app goes to the background.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from phonoguard.crypto.cipher import Cipher
from phonoguard.exceptions import CipherError, StoreUnavailable
from phonoguard.storage.base import KeyValueStore

logger = logging.getLogger(__name__)

SECURE_PREFIX = "secure_"

AUTH_TOKENS_KEY = "auth_tokens"
USER_PREFERENCES_KEY = "user_preferences"
SESSION_DATA_KEY = "session_data"

DEFAULT_USER_PREFERENCES: dict[str, Any] = {
    "theme": "light",
    "notifications": True,
    "language": "en",
}


class SecureStorage:
    """
    Cipher-backed JSON storage.

    Reads are forgiving: an unreadable or corrupt value is logged and the
    caller's default is returned. Writes propagate failures so callers know
    the value was not saved.

    Example:
        >>> storage = SecureStorage(store, XorCipher(key_provider))
        >>> await storage.set(USER_PREFERENCES_KEY, {"theme": "dark"})
        >>> await storage.get(USER_PREFERENCES_KEY, DEFAULT_USER_PREFERENCES)
        {'theme': 'dark'}
    """

    def __init__(
        self,
        store: KeyValueStore,
        cipher: Cipher,
        prefix: str = SECURE_PREFIX,
    ) -> None:
        self._store = store
        self._cipher = cipher
        self.prefix = prefix
        self._cache: dict[str, Any] = {}
        # Bumped whenever cached values are dropped; reads that started before
        # a bump must not repopulate the cache.
        self._generation = 0

    def _key(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def _invalidate(self) -> None:
        self._generation += 1
        self._cache.clear()

    async def get(self, name: str, default: Any = None) -> Any:
        """
        Read and decrypt a value.

        Args:
            name: Logical name, without the secure prefix.
            default: Returned when the value is missing or unreadable.
        """
        if name in self._cache:
            return self._cache[name]

        generation = self._generation
        try:
            encrypted = await self._store.get(self._key(name))
            if encrypted is None:
                return default
            value = json.loads(await self._cipher.decrypt(encrypted))
        except (StoreUnavailable, CipherError, json.JSONDecodeError) as e:
            logger.error(f"Error reading secure storage for key '{name}': {e}")
            return default

        if generation == self._generation:
            self._cache[name] = value
        return value

    async def set(self, name: str, value: Any) -> None:
        """
        Encrypt and store a JSON-serializable value.

        Raises:
            CipherError: If encryption fails.
            StoreUnavailable: If the store write fails.
        """
        serialized = json.dumps(value)
        generation = self._generation
        encrypted = await self._cipher.encrypt(serialized)
        await self._store.set(self._key(name), encrypted)
        if generation == self._generation:
            # Cache a private copy so later caller mutations are not visible.
            self._cache[name] = json.loads(serialized)

    async def remove(self, name: str) -> None:
        """Remove a value."""
        self._invalidate()
        await self._store.remove(self._key(name))

    async def clear_all(self) -> int:
        """
        Remove every secure value, e.g. on sign-out.

        Returns:
            Number of keys removed.
        """
        self._invalidate()
        keys = [k for k in await self._store.get_all_keys() if k.startswith(self.prefix)]
        if keys:
            await self._store.multi_remove(keys)
        self._invalidate()
        logger.debug(f"Cleared {len(keys)} secure storage keys")
        return len(keys)

    def clear_cache(self) -> None:
        """Drop decrypted values held in memory. Persisted data is untouched."""
        self._invalidate()

    @property
    def cached_count(self) -> int:
        return len(self._cache)
