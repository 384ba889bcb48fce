"""
Rate-limited, lockout-aware authentication around an identity provider.

Sign-in flow::

    locked out?                    -> reject locally, provider not called
    login limiter exhausted?       -> lock out, reject locally
    provider reports an error      -> report login_failure to the monitor
                                      (which may lock the account)
    provider succeeds              -> clear lockout and limiter, create the
                                      session, report login_success
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from phonoguard.audit.events import EventType, LoginDetails, SecurityEvent, Severity, login_failure
from phonoguard.auth.identity import IdentityProvider, IdentityUser
from phonoguard.exceptions import (
    IdentityProviderError,
    InputValidationError,
    StoreUnavailable,
)
from phonoguard.guards.validators import validate_password
from phonoguard.messages import (
    GENERIC_ERROR_MESSAGE,
    MISSING_FIELDS_MESSAGE,
    auth_error_message,
    lockout_message,
)
from phonoguard.types import MINUTE_MS

if TYPE_CHECKING:
    from phonoguard.context.session import SessionManager
    from phonoguard.monitoring.monitor import SecurityMonitor
    from phonoguard.security.lockout import LockoutTracker
    from phonoguard.security.rate_limiter import SlidingWindowRateLimiter
    from phonoguard.storage.secure import SecureStorage

logger = logging.getLogger(__name__)

LOGIN_LIMIT_PREFIX = "login:"


@dataclass
class SignInResult:
    """
    Outcome of a sign-in attempt.

    Attributes:
        success: Whether the user is now signed in.
        error: User-facing message when not.
        user: The signed-in user.
        is_admin: Whether the email is a configured admin.
        locked_out: True when rejected because of a lockout.
        remaining_ms: Lockout time left, when locked out.
    """

    success: bool
    error: str | None = None
    user: IdentityUser | None = None
    is_admin: bool = False
    locked_out: bool = False
    remaining_ms: int = 0


class AuthGuard:
    """
    Wraps an IdentityProvider with lockout, rate limiting and monitoring.

    Example:
        >>> guard = AuthGuard(provider, sessions, lockouts, login_limiter, monitor)
        >>> result = await guard.sign_in("user@x.com", "Secr3tPass")
        >>> if not result.success:
        ...     show_error(result.error)
    """

    def __init__(
        self,
        identity: IdentityProvider,
        sessions: SessionManager,
        lockouts: LockoutTracker,
        login_limiter: SlidingWindowRateLimiter,
        monitor: SecurityMonitor,
        secure_storage: SecureStorage | None = None,
        max_login_attempts: int = 5,
        attempt_window_ms: int = 15 * MINUTE_MS,
        admin_emails: tuple[str, ...] = (),
    ) -> None:
        """
        Initialize the auth guard.

        Args:
            identity: The hosted identity provider.
            sessions: Session manager; a session is created on success.
            lockouts: Account lockout tracker.
            login_limiter: Persisted limiter counting login attempts.
            monitor: Receives login success and failure events.
            secure_storage: Wiped on sign-out when given.
            max_login_attempts: Attempts allowed per window.
            attempt_window_ms: Window for counting attempts.
            admin_emails: Lower-case admin email addresses.
        """
        self.identity = identity
        self.sessions = sessions
        self.lockouts = lockouts
        self.login_limiter = login_limiter
        self.monitor = monitor
        self.secure_storage = secure_storage
        self.max_login_attempts = max_login_attempts
        self.attempt_window_ms = attempt_window_ms
        self.admin_emails = tuple(e.strip().lower() for e in admin_emails)

    def is_admin(self, email: str) -> bool:
        return email.strip().lower() in self.admin_emails

    async def _locked_result(self, email: str) -> SignInResult:
        remaining = await self.lockouts.get_time_remaining(email)
        return SignInResult(
            success=False,
            error=lockout_message(remaining),
            locked_out=True,
            remaining_ms=remaining,
        )

    async def sign_in(self, email: str, password: str) -> SignInResult:
        """
        Sign in with email and password.

        Returns:
            SignInResult; credential and lockout problems are reported in
            ``error`` rather than raised.

        Raises:
            StoreUnavailable: If the session could not be persisted after a
                successful sign-in.
        """
        email = (email or "").strip().lower()
        if not email or not password:
            return SignInResult(success=False, error=MISSING_FIELDS_MESSAGE)

        if await self.lockouts.is_locked_out(email):
            logger.warning(f"Sign-in rejected for locked account '{email}'")
            return await self._locked_result(email)

        limit = await self.login_limiter.check(
            f"{LOGIN_LIMIT_PREFIX}{email}",
            self.max_login_attempts,
            self.attempt_window_ms,
        )
        if not limit.allowed:
            try:
                await self.lockouts.set_lockout(email)
            except StoreUnavailable as e:
                logger.error(f"Could not persist lockout for '{email}': {e}")
            return await self._locked_result(email)

        try:
            response = await self.identity.sign_in(email, password)
        except Exception as e:
            logger.error(f"Identity provider sign-in failed: {e}")
            return SignInResult(success=False, error=GENERIC_ERROR_MESSAGE)

        if response.error:
            attempt = self.max_login_attempts - limit.remaining
            await self.monitor.monitor_event(
                login_failure(email, reason=response.error, attempt=attempt)
            )
            if await self.lockouts.is_locked_out(email):
                return await self._locked_result(email)
            return SignInResult(success=False, error=auth_error_message(response.error))

        return await self._complete_sign_in(email, response.user)

    async def _complete_sign_in(self, email: str, user: IdentityUser | None) -> SignInResult:
        try:
            await self.lockouts.clear_lockout(email)
            await self.login_limiter.reset(f"{LOGIN_LIMIT_PREFIX}{email}")
        except StoreUnavailable as e:
            logger.error(f"Could not reset login counters for '{email}': {e}")

        if user is None:
            user = await self.identity.get_current_user()
        user_id = user.id if user is not None else email

        session = await self.sessions.create_session(user_id)
        await self.monitor.monitor_event(
            SecurityEvent(
                type=EventType.LOGIN_SUCCESS,
                identifier=email,
                user_id=user_id,
                severity=Severity.LOW,
                session_id=session.session_id,
                details=LoginDetails(),
            )
        )
        logger.info(f"User '{email}' signed in")
        return SignInResult(success=True, user=user, is_admin=self.is_admin(email))

    async def sign_out(self) -> None:
        """
        Sign out from the provider and wipe local session state.

        Local state is cleared even if the provider call fails; the provider
        error is then re-raised.
        """
        try:
            await self.identity.sign_out()
        finally:
            await self.sessions.clear_session()
            if self.secure_storage is not None:
                await self.secure_storage.clear_all()

    async def update_password(self, new_password: str) -> None:
        """
        Change the signed-in user's password.

        Raises:
            InputValidationError: If the password is too weak.
            IdentityProviderError: If the provider rejects the change.
        """
        check = validate_password(new_password)
        if not check.is_valid:
            raise InputValidationError("; ".join(check.errors), field_name="password")

        response = await self.identity.update_password(new_password)
        if response.error:
            raise IdentityProviderError("update_password", response.error)
        logger.info("Password updated")
