"""
Value obfuscation for phonoguard.

The default XorCipher is an obfuscation layer, not a security guarantee;
use AesGcmCipher when stored values need real confidentiality.
"""

from phonoguard.crypto.cipher import (
    ENCRYPTION_KEY,
    AesGcmCipher,
    Cipher,
    KeyProvider,
    PersistedKeyProvider,
    StaticKeyProvider,
    XorCipher,
    xor_bytes,
)

__all__ = [
    "ENCRYPTION_KEY",
    "AesGcmCipher",
    "Cipher",
    "KeyProvider",
    "PersistedKeyProvider",
    "StaticKeyProvider",
    "XorCipher",
    "xor_bytes",
]
