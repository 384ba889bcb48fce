"""
Engine configuration for phonoguard.

Configuration is read from environment variables with the ``PHONOGUARD_``
prefix. Identity provider settings are required; the engine refuses to start
without them.

Example:
    >>> config = EngineConfig.from_env({
    ...     "PHONOGUARD_IDENTITY_URL": "https://auth.example.com",
    ...     "PHONOGUARD_IDENTITY_ANON_KEY": "anon-key",
    ...     "PHONOGUARD_MAX_LOGIN_ATTEMPTS": "3",
    ... })
    >>> config.max_login_attempts
    3
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from phonoguard.exceptions import ConfigMissing, ConfigurationError
from phonoguard.types import MINUTE_MS

logger = logging.getLogger(__name__)

ENV_PREFIX = "PHONOGUARD_"

CIPHER_XOR = "xor"
CIPHER_AES_GCM = "aes-gcm"
SUPPORTED_CIPHERS = (CIPHER_XOR, CIPHER_AES_GCM)

_ADMIN_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class EngineConfig:
    """
    Configuration for the security engine.

    Attributes:
        identity_url: Identity provider base URL (required).
        identity_anon_key: Identity provider public key (required).
        session_timeout_minutes: Session lifetime.
        max_login_attempts: Failed logins before an account is locked.
        lockout_duration_minutes: Length of an account lockout.
        block_duration_minutes: Length of a device/source block.
        admin_emails: Lower-case admin addresses.
        debug: Enables debug logging in hosts that honor it.
        cipher: "xor" (obfuscation) or "aes-gcm".
        log_checksum_key: HMAC key for event checksums; plain SHA-256 if None.
    """

    identity_url: str = ""
    identity_anon_key: str = ""
    session_timeout_minutes: int = 60
    max_login_attempts: int = 5
    lockout_duration_minutes: int = 15
    block_duration_minutes: int = 60
    admin_emails: tuple[str, ...] = ()
    debug: bool = False
    cipher: str = CIPHER_XOR
    log_checksum_key: bytes | None = None

    @property
    def session_timeout_ms(self) -> int:
        return self.session_timeout_minutes * MINUTE_MS

    @property
    def lockout_duration_ms(self) -> int:
        return self.lockout_duration_minutes * MINUTE_MS

    @property
    def block_duration_ms(self) -> int:
        return self.block_duration_minutes * MINUTE_MS

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        prefix: str = ENV_PREFIX,
    ) -> EngineConfig:
        """
        Build a validated configuration from environment variables.

        Args:
            environ: Mapping to read from; defaults to ``os.environ``.
            prefix: Variable name prefix.

        Raises:
            ConfigMissing: If required variables are absent.
            ConfigurationError: If a value cannot be parsed.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(prefix + name)
            if value is None:
                return None
            value = value.strip()
            return value or None

        def get_int(name: str, default: int) -> int:
            raw = get(name)
            if raw is None:
                return default
            try:
                return int(raw, 10)
            except ValueError:
                raise ConfigurationError(
                    config_key=prefix + name,
                    expected="an integer",
                    received=raw,
                ) from None

        admin_raw = get("ADMIN_EMAILS")
        admin_emails: tuple[str, ...] = ()
        if admin_raw:
            admin_emails = tuple(
                e.strip().lower() for e in admin_raw.split(",") if e.strip()
            )
        else:
            logger.debug("No admin emails configured")

        checksum_key = get("LOG_CHECKSUM_KEY")

        config = cls(
            identity_url=get("IDENTITY_URL") or "",
            identity_anon_key=get("IDENTITY_ANON_KEY") or "",
            session_timeout_minutes=get_int("SESSION_TIMEOUT_MINUTES", 60),
            max_login_attempts=get_int("MAX_LOGIN_ATTEMPTS", 5),
            lockout_duration_minutes=get_int("LOCKOUT_DURATION_MINUTES", 15),
            block_duration_minutes=get_int("BLOCK_DURATION_MINUTES", 60),
            admin_emails=admin_emails,
            debug=(get("DEBUG") or "").lower() in _TRUE_VALUES,
            cipher=(get("CIPHER") or CIPHER_XOR).lower(),
            log_checksum_key=checksum_key.encode("utf-8") if checksum_key else None,
        )
        config.validate(prefix)
        return config

    def validate(self, prefix: str = ENV_PREFIX) -> None:
        """
        Check required values and ranges.

        Raises:
            ConfigMissing: If identity provider settings are empty.
            ConfigurationError: For out-of-range or malformed values.
        """
        missing = []
        if not self.identity_url:
            missing.append(prefix + "IDENTITY_URL")
        if not self.identity_anon_key:
            missing.append(prefix + "IDENTITY_ANON_KEY")
        if missing:
            raise ConfigMissing(missing)

        for name in (
            "session_timeout_minutes",
            "max_login_attempts",
            "lockout_duration_minutes",
            "block_duration_minutes",
        ):
            value = getattr(self, name)
            if value < 1:
                raise ConfigurationError(
                    config_key=prefix + name.upper(),
                    expected="a positive integer",
                    received=value,
                )

        invalid = [e for e in self.admin_emails if not _ADMIN_EMAIL_RE.match(e)]
        if invalid:
            raise ConfigurationError(
                config_key=prefix + "ADMIN_EMAILS",
                expected="comma-separated email addresses",
                received=", ".join(invalid),
            )

        if self.cipher not in SUPPORTED_CIPHERS:
            raise ConfigurationError(
                config_key=prefix + "CIPHER",
                expected=" or ".join(SUPPORTED_CIPHERS),
                received=self.cipher,
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary, with secrets redacted."""
        return {
            "identity_url": self.identity_url,
            "identity_anon_key": "***" if self.identity_anon_key else "",
            "session_timeout_minutes": self.session_timeout_minutes,
            "max_login_attempts": self.max_login_attempts,
            "lockout_duration_minutes": self.lockout_duration_minutes,
            "block_duration_minutes": self.block_duration_minutes,
            "admin_emails": list(self.admin_emails),
            "debug": self.debug,
            "cipher": self.cipher,
            "log_checksum_key": "***" if self.log_checksum_key else None,
        }
