"""
Tests for engine configuration and user-facing messages.
"""

from __future__ import annotations

import pytest

from phonoguard.config import EngineConfig
from phonoguard.exceptions import (
    AccountLockedError,
    ConfigMissing,
    ConfigurationError,
    InputValidationError,
    RateLimitExceeded,
    StoreUnavailable,
)
from phonoguard.messages import (
    EMAIL_NOT_CONFIRMED_MESSAGE,
    GENERIC_ERROR_MESSAGE,
    INVALID_CREDENTIALS_MESSAGE,
    SIGN_IN_FAILED_MESSAGE,
    auth_error_message,
    lockout_message,
    rate_limit_message,
    user_message,
)
from phonoguard.types import MINUTE_MS

REQUIRED_ENV = {
    "PHONOGUARD_IDENTITY_URL": "https://auth.example.com",
    "PHONOGUARD_IDENTITY_ANON_KEY": "anon-key",
}


class TestEngineConfig:
    """Tests for EngineConfig."""

    def test_defaults(self):
        """Test default values from a minimal environment."""
        config = EngineConfig.from_env(REQUIRED_ENV)

        assert config.identity_url == "https://auth.example.com"
        assert config.session_timeout_minutes == 60
        assert config.max_login_attempts == 5
        assert config.lockout_duration_minutes == 15
        assert config.block_duration_minutes == 60
        assert config.admin_emails == ()
        assert config.debug is False
        assert config.cipher == "xor"
        assert config.log_checksum_key is None
        assert config.session_timeout_ms == 60 * MINUTE_MS
        assert config.lockout_duration_ms == 15 * MINUTE_MS

    def test_overrides(self):
        """Test that every variable is read."""
        env = {
            **REQUIRED_ENV,
            "PHONOGUARD_SESSION_TIMEOUT_MINUTES": "30",
            "PHONOGUARD_MAX_LOGIN_ATTEMPTS": " 3 ",
            "PHONOGUARD_LOCKOUT_DURATION_MINUTES": "10",
            "PHONOGUARD_BLOCK_DURATION_MINUTES": "120",
            "PHONOGUARD_ADMIN_EMAILS": "Owner@Shop.com, tech@shop.com,",
            "PHONOGUARD_DEBUG": "true",
            "PHONOGUARD_CIPHER": "AES-GCM",
            "PHONOGUARD_LOG_CHECKSUM_KEY": "s3cret",
        }
        config = EngineConfig.from_env(env)

        assert config.session_timeout_minutes == 30
        assert config.max_login_attempts == 3
        assert config.lockout_duration_ms == 10 * MINUTE_MS
        assert config.block_duration_minutes == 120
        assert config.admin_emails == ("owner@shop.com", "tech@shop.com")
        assert config.debug is True
        assert config.cipher == "aes-gcm"
        assert config.log_checksum_key == b"s3cret"

    def test_missing_identity_settings(self):
        """Test that absent provider settings are fatal."""
        with pytest.raises(ConfigMissing) as exc_info:
            EngineConfig.from_env({"PHONOGUARD_IDENTITY_URL": "  "})
        assert exc_info.value.missing == [
            "PHONOGUARD_IDENTITY_URL",
            "PHONOGUARD_IDENTITY_ANON_KEY",
        ]
        assert isinstance(exc_info.value, ConfigurationError)

    def test_bad_integer(self):
        """Test unparsable numbers."""
        with pytest.raises(ConfigurationError) as exc_info:
            EngineConfig.from_env({**REQUIRED_ENV, "PHONOGUARD_MAX_LOGIN_ATTEMPTS": "five"})
        assert exc_info.value.config_key == "PHONOGUARD_MAX_LOGIN_ATTEMPTS"

    def test_non_positive_value(self):
        """Test range checking."""
        with pytest.raises(ConfigurationError):
            EngineConfig.from_env({**REQUIRED_ENV, "PHONOGUARD_SESSION_TIMEOUT_MINUTES": "0"})

    def test_bad_admin_email(self):
        """Test admin email validation."""
        with pytest.raises(ConfigurationError) as exc_info:
            EngineConfig.from_env({**REQUIRED_ENV, "PHONOGUARD_ADMIN_EMAILS": "not-an-email"})
        assert exc_info.value.config_key == "PHONOGUARD_ADMIN_EMAILS"

    def test_unknown_cipher(self):
        """Test cipher validation."""
        with pytest.raises(ConfigurationError):
            EngineConfig.from_env({**REQUIRED_ENV, "PHONOGUARD_CIPHER": "rot13"})

    def test_custom_prefix(self):
        """Test reading with another prefix."""
        config = EngineConfig.from_env(
            {"APP_IDENTITY_URL": "https://a", "APP_IDENTITY_ANON_KEY": "k"},
            prefix="APP_",
        )
        assert config.identity_url == "https://a"

    def test_to_dict_redacts_secrets(self):
        """Test that secrets never appear in the dict form."""
        config = EngineConfig.from_env(
            {**REQUIRED_ENV, "PHONOGUARD_LOG_CHECKSUM_KEY": "s3cret"}
        )
        data = config.to_dict()
        assert data["identity_anon_key"] == "***"
        assert data["log_checksum_key"] == "***"
        assert "anon-key" not in str(data)
        assert "s3cret" not in str(data)


class TestMessages:
    """Tests for user-facing messages."""

    @pytest.mark.parametrize(
        "remaining_ms,expected",
        [
            (15 * MINUTE_MS, "15 minutes"),
            (14 * MINUTE_MS + 1, "15 minutes"),
            (MINUTE_MS, "1 minute"),
            (1, "1 minute"),
            (0, "1 minute"),
        ],
    )
    def test_lockout_message(self, remaining_ms, expected):
        """Test minute rounding."""
        assert lockout_message(remaining_ms) == (
            f"Too many failed attempts. Please try again in {expected}."
        )

    def test_rate_limit_message(self):
        assert rate_limit_message(90_000) == "Too many requests. Please try again in 2 minutes."
        assert rate_limit_message(None) == "Too many requests. Please try again in 1 minute."

    @pytest.mark.parametrize(
        "provider_error,expected",
        [
            ("Invalid login credentials", INVALID_CREDENTIALS_MESSAGE),
            ("Invalid password", INVALID_CREDENTIALS_MESSAGE),
            ("Email not confirmed", EMAIL_NOT_CONFIRMED_MESSAGE),
            ("Database error querying schema", SIGN_IN_FAILED_MESSAGE),
        ],
    )
    def test_auth_error_message(self, provider_error, expected):
        assert auth_error_message(provider_error) == expected

    def test_user_message(self):
        """Test exception rendering."""
        assert user_message(AccountLockedError("user@x.com", 2 * MINUTE_MS)) == (
            "Too many failed attempts. Please try again in 2 minutes."
        )
        assert user_message(RateLimitExceeded("k", 20, retry_after_ms=30_000)) == (
            "Too many requests. Please try again in 1 minute."
        )
        assert user_message(InputValidationError("Email is required", "email")) == (
            "Email is required"
        )
        assert user_message(StoreUnavailable("get", "session", "disk I/O error")) == (
            GENERIC_ERROR_MESSAGE
        )
        assert user_message(RuntimeError("stack trace")) == GENERIC_ERROR_MESSAGE
