"""
At-rest obfuscation of cached values.

XorCipher is the default: each UTF-8 byte of the plaintext is XORed with a
repeating byte of a persisted random key and the result is base64 encoded.
It hides values from casual inspection of device storage and nothing more.
Repeated keys leak structure and there is no integrity protection, so it is
NOT encryption in the cryptographic sense.

AesGcmCipher offers the same interface backed by AES-256-GCM from the
``cryptography`` package for hosts that need real confidentiality.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import os
import uuid
from abc import ABC, abstractmethod

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from phonoguard.exceptions import CipherError, StoreUnavailable
from phonoguard.storage.base import KeyedLock, KeyValueStore

logger = logging.getLogger(__name__)

ENCRYPTION_KEY = "encryption_key"
NONCE_SIZE = 12


class KeyProvider(ABC):
    """Source of the symmetric key material."""

    @abstractmethod
    async def get_key(self) -> str:
        """Return the key, creating it if necessary."""


class StaticKeyProvider(KeyProvider):
    """
    Key provider holding a fixed key.

    Example:
        >>> cipher = XorCipher(StaticKeyProvider("k1"))
    """

    def __init__(self, key: str) -> None:
        if not key:
            raise CipherError("key", "key must not be empty")
        self._key = key

    async def get_key(self) -> str:
        return self._key


class PersistedKeyProvider(KeyProvider):
    """
    Key provider that creates a random key once and persists it forever.

    Concurrent first use is serialized by a keyed mutex and the loaded key is
    cached, so exactly one key is ever generated per store. Regenerating the
    key would make every previously encrypted value unreadable.

    Attributes:
        key_name: Store key holding the encryption key.
    """

    def __init__(
        self,
        store: KeyValueStore,
        locks: KeyedLock | None = None,
        key_name: str = ENCRYPTION_KEY,
    ) -> None:
        self._store = store
        self._locks = locks or KeyedLock()
        self.key_name = key_name
        self._cached: str | None = None

    async def get_key(self) -> str:
        """
        Load the persisted key or create it on first use.

        Raises:
            CipherError: If the key cannot be read or persisted.
        """
        if self._cached is not None:
            return self._cached

        async with self._locks.hold(self.key_name):
            if self._cached is not None:
                return self._cached
            try:
                key = await self._store.get(self.key_name)
                if not key:
                    key = str(uuid.uuid4())
                    await self._store.set(self.key_name, key)
                    logger.info("Created new device encryption key")
            except StoreUnavailable as e:
                logger.error(f"Failed to load or create encryption key: {e}")
                raise CipherError("key", "encryption key unavailable") from e
            self._cached = key
            return key


def xor_bytes(data: bytes, key: bytes) -> bytes:
    """XOR ``data`` against ``key`` repeated to the data's length."""
    if not key:
        raise CipherError("key", "key must not be empty")
    return bytes(b ^ key[i % len(key)] for i, b in enumerate(data))


class Cipher(ABC):
    """Symmetric string-to-string cipher with an asynchronously loaded key."""

    def __init__(self, key_provider: KeyProvider) -> None:
        self.key_provider = key_provider

    @abstractmethod
    async def encrypt(self, plaintext: str) -> str:
        """Encrypt text into an ASCII-safe string."""

    @abstractmethod
    async def decrypt(self, ciphertext: str) -> str:
        """Reverse ``encrypt``."""


class XorCipher(Cipher):
    """
    Repeating-key XOR followed by base64.

    ``decrypt(encrypt(s)) == s`` for any string as long as the key is the
    same. Decrypting with a different key yields garbage text rather than an
    error, because there is nothing to authenticate against.

    Example:
        >>> cipher = XorCipher(StaticKeyProvider("k1"))
        >>> token = await cipher.encrypt("hello")
        >>> await cipher.decrypt(token)
        'hello'
    """

    async def encrypt(self, plaintext: str) -> str:
        key = await self.key_provider.get_key()
        mixed = xor_bytes(plaintext.encode("utf-8"), key.encode("utf-8"))
        return base64.b64encode(mixed).decode("ascii")

    async def decrypt(self, ciphertext: str) -> str:
        key = await self.key_provider.get_key()
        try:
            raw = base64.b64decode(ciphertext.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as e:
            raise CipherError("decrypt", "ciphertext is not valid base64") from e
        return xor_bytes(raw, key.encode("utf-8")).decode("utf-8", errors="replace")


class AesGcmCipher(Cipher):
    """
    AES-256-GCM cipher.

    The 256-bit key is the SHA-256 digest of the provider's key material.
    Output is ``base64(nonce || ciphertext_and_tag)`` with a fresh 96-bit
    nonce per call. Decrypting with the wrong key raises CipherError.
    """

    async def _aead(self) -> AESGCM:
        material = await self.key_provider.get_key()
        return AESGCM(hashlib.sha256(material.encode("utf-8")).digest())

    async def encrypt(self, plaintext: str) -> str:
        aead = await self._aead()
        nonce = os.urandom(NONCE_SIZE)
        sealed = aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    async def decrypt(self, ciphertext: str) -> str:
        aead = await self._aead()
        try:
            raw = base64.b64decode(ciphertext.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as e:
            raise CipherError("decrypt", "ciphertext is not valid base64") from e
        if len(raw) < NONCE_SIZE + 16:
            raise CipherError("decrypt", "ciphertext too short")
        try:
            plain = aead.decrypt(raw[:NONCE_SIZE], raw[NONCE_SIZE:], None)
        except InvalidTag as e:
            raise CipherError("decrypt", "authentication failed") from e
        return plain.decode("utf-8")
