"""
Tests for the authentication guard.

Tests cover:
- Successful sign-in, session creation and admin detection
- Credential failures, monitoring and lockout
- Login attempt limiting
- Sign-out and password changes
"""

from __future__ import annotations

import pytest

from phonoguard.audit.events import EventType
from phonoguard.auth.guard import LOGIN_LIMIT_PREFIX
from phonoguard.exceptions import IdentityProviderError, InputValidationError, StoreUnavailable
from phonoguard.messages import (
    GENERIC_ERROR_MESSAGE,
    INVALID_CREDENTIALS_MESSAGE,
    MISSING_FIELDS_MESSAGE,
)
from phonoguard.types import MINUTE_MS


class TestSignIn:
    """Tests for successful and rejected sign-ins."""

    @pytest.mark.asyncio
    async def test_success_creates_session(self, engine, identity):
        """Test that a correct password signs the user in."""
        result = await engine.auth.sign_in("user@x.com", "Secr3tPass")

        assert result.success is True
        assert result.error is None
        assert result.user.id == "uid_user"
        assert result.is_admin is False

        session = await engine.sessions.get_session()
        assert session.user_id == "uid_user"
        assert await engine.sessions.is_session_valid() is True

    @pytest.mark.asyncio
    async def test_success_is_logged_with_session(self, engine):
        """Test the login-success event."""
        await engine.auth.sign_in("user@x.com", "Secr3tPass")
        session = await engine.sessions.get_session()

        events = await engine.event_log.get_events(event_type=EventType.LOGIN_SUCCESS)
        assert len(events) == 1
        assert events[0].identifier == "user@x.com"
        assert events[0].user_id == "uid_user"
        assert events[0].session_id == session.session_id

    @pytest.mark.asyncio
    async def test_email_is_normalized(self, engine, identity):
        """Test that case and whitespace do not matter."""
        result = await engine.auth.sign_in("  USER@X.com ", "Secr3tPass")
        assert result.success is True
        assert identity.sign_in_calls == ["user@x.com"]

    @pytest.mark.asyncio
    async def test_admin_email(self, engine, identity):
        """Test admin detection."""
        identity.register("owner@shop.com", "0wnerPass")
        result = await engine.auth.sign_in("Owner@Shop.com", "0wnerPass")
        assert result.success is True
        assert result.is_admin is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("email,password", [("", "x"), ("user@x.com", ""), ("   ", "x")])
    async def test_missing_fields(self, engine, identity, email, password):
        """Test that empty credentials are rejected locally."""
        result = await engine.auth.sign_in(email, password)
        assert result.success is False
        assert result.error == MISSING_FIELDS_MESSAGE
        assert identity.sign_in_calls == []

    @pytest.mark.asyncio
    async def test_wrong_password(self, engine):
        """Test a single credential failure."""
        result = await engine.auth.sign_in("user@x.com", "wrong")

        assert result.success is False
        assert result.error == INVALID_CREDENTIALS_MESSAGE
        assert result.locked_out is False

        failures = await engine.event_log.get_events(event_type=EventType.LOGIN_FAILURE)
        assert failures[0].identifier == "user@x.com"
        assert failures[0].details.reason == "Invalid login credentials"
        assert failures[0].details.attempt == 1
        assert await engine.sessions.get_session() is None

    @pytest.mark.asyncio
    async def test_provider_exception_is_generic(self, engine, identity):
        """Test that transport errors never reach the user verbatim."""
        identity.raise_on_sign_in = ConnectionError("connection reset by peer")
        result = await engine.auth.sign_in("user@x.com", "Secr3tPass")
        assert result.success is False
        assert result.error == GENERIC_ERROR_MESSAGE

    @pytest.mark.asyncio
    async def test_session_store_failure_propagates(self, engine, raw_store):
        """Test that a session that cannot be saved is not reported as success."""
        raw_store.fail_on.add("set")
        with pytest.raises(StoreUnavailable):
            await engine.auth.sign_in("user@x.com", "Secr3tPass")


class TestLockout:
    """Tests for brute-force protection."""

    @pytest.mark.asyncio
    async def test_five_failures_lock_account(self, engine, identity):
        """Test that the sixth attempt is rejected without calling the provider."""
        for _ in range(4):
            result = await engine.auth.sign_in("user@x.com", "wrong")
            assert result.locked_out is False

        fifth = await engine.auth.sign_in("user@x.com", "wrong")
        assert fifth.locked_out is True
        assert fifth.remaining_ms == 15 * MINUTE_MS

        sixth = await engine.auth.sign_in("user@x.com", "Secr3tPass")
        assert sixth.success is False
        assert sixth.locked_out is True
        assert sixth.error.startswith("Too many failed attempts")
        assert sixth.error == "Too many failed attempts. Please try again in 15 minutes."
        assert len(identity.sign_in_calls) == 5
        assert await engine.lockouts.is_locked_out("user@x.com") is True

    @pytest.mark.asyncio
    async def test_lockout_raises_alert(self, engine):
        """Test that the monitor records an alert naming the account."""
        for _ in range(5):
            await engine.auth.sign_in("user@x.com", "wrong")

        alerts = await engine.monitor.get_alerts()
        assert len(alerts) == 1
        assert alerts[0].alerts == ["Multiple failed login attempts detected for user@x.com"]

    @pytest.mark.asyncio
    async def test_lockout_lifts_after_duration(self, engine, clock):
        """Test that sign-in works again once the lockout has expired."""
        for _ in range(5):
            await engine.auth.sign_in("user@x.com", "wrong")

        clock.advance(10 * MINUTE_MS)
        waiting = await engine.auth.sign_in("user@x.com", "Secr3tPass")
        assert waiting.error == "Too many failed attempts. Please try again in 5 minutes."

        clock.advance(5 * MINUTE_MS + 1)
        result = await engine.auth.sign_in("user@x.com", "Secr3tPass")
        assert result.success is True
        assert await engine.lockouts.is_locked_out("user@x.com") is False

    @pytest.mark.asyncio
    async def test_other_accounts_unaffected(self, engine, identity):
        """Test that lockouts are per account."""
        identity.register("other@x.com", "0therPass")
        for _ in range(5):
            await engine.auth.sign_in("user@x.com", "wrong")

        result = await engine.auth.sign_in("other@x.com", "0therPass")
        assert result.success is True

    @pytest.mark.asyncio
    async def test_attempt_limiter_locks_without_provider_call(self, engine, identity):
        """Test that exhausted attempts lock the account before the provider is asked."""
        for _ in range(5):
            await engine.auth.sign_in("user@x.com", "wrong")
        await engine.lockouts.clear_lockout("user@x.com")

        result = await engine.auth.sign_in("user@x.com", "Secr3tPass")

        assert result.locked_out is True
        assert len(identity.sign_in_calls) == 5
        assert await engine.lockouts.is_locked_out("user@x.com") is True

    @pytest.mark.asyncio
    async def test_success_resets_attempt_counter(self, engine):
        """Test that a successful sign-in clears the attempt window."""
        for _ in range(3):
            await engine.auth.sign_in("user@x.com", "wrong")
        await engine.auth.sign_in("user@x.com", "Secr3tPass")

        remaining = await engine.login_limiter.get_remaining(
            f"{LOGIN_LIMIT_PREFIX}user@x.com", 5, 15 * MINUTE_MS
        )
        assert remaining == 5


class TestSignOut:
    """Tests for sign-out."""

    @pytest.mark.asyncio
    async def test_sign_out_clears_local_state(self, engine, identity, raw_store):
        """Test that the session and secure values are wiped."""
        await engine.auth.sign_in("user@x.com", "Secr3tPass")
        await engine.secure_storage.set("auth_tokens", {"access": "abc"})

        await engine.auth.sign_out()

        assert identity.sign_out_calls == 1
        assert await engine.sessions.get_session() is None
        assert not any("secure_" in k for k in raw_store.snapshot())
        events = await engine.event_log.get_events(event_type=EventType.SESSION_CLEARED)
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_provider_failure_still_clears(self, engine, identity):
        """Test that local state is cleared even when the provider fails."""
        await engine.auth.sign_in("user@x.com", "Secr3tPass")
        identity.raise_on_sign_out = ConnectionError("offline")

        with pytest.raises(ConnectionError):
            await engine.auth.sign_out()
        assert await engine.sessions.get_session() is None


class TestUpdatePassword:
    """Tests for password changes."""

    @pytest.mark.asyncio
    async def test_weak_password_rejected(self, engine, identity):
        """Test local validation before the provider is called."""
        with pytest.raises(InputValidationError) as exc_info:
            await engine.auth.update_password("password")
        assert exc_info.value.field_name == "password"
        assert identity.updated_passwords == []

    @pytest.mark.asyncio
    async def test_provider_error_raised(self, engine, identity):
        """Test that provider rejections surface."""
        identity.update_error = "New password should be different from the old password."
        with pytest.raises(IdentityProviderError) as exc_info:
            await engine.auth.update_password("Tr1ckyHorse")
        assert exc_info.value.operation == "update_password"

    @pytest.mark.asyncio
    async def test_success(self, engine, identity):
        """Test a valid password change."""
        await engine.auth.update_password("Tr1ckyHorse")
        assert identity.updated_passwords == ["Tr1ckyHorse"]
