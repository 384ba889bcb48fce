"""Identity provider interface consumed by the auth guard."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class IdentityUser:
    """An authenticated user as reported by the identity provider."""

    id: str
    email: str | None = None


@dataclass
class AuthResponse:
    """
    Result of an identity provider call.

    Attributes:
        error: Provider error text, None on success.
        user: The signed-in user, when the provider returns one.
    """

    error: str | None = None
    user: IdentityUser | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@runtime_checkable
class IdentityProvider(Protocol):
    """
    Protocol for hosted authentication backends.

    The engine wraps these calls with rate limiting and lockout but does not
    authenticate users itself. Implementations report credential problems
    through ``AuthResponse.error`` and raise only for transport failures.

    Example:
        >>> class HostedAuth:
        ...     async def sign_in(self, email, password):
        ...         resp = await client.auth.sign_in_with_password(email, password)
        ...         return AuthResponse(error=resp.error_message)
        ...
        ...     async def sign_out(self): ...
        ...     async def get_current_user(self): ...
        ...     async def update_password(self, password): ...
    """

    async def sign_in(self, email: str, password: str) -> AuthResponse:
        """Authenticate with email and password."""
        ...

    async def sign_out(self) -> None:
        """End the provider-side session."""
        ...

    async def get_current_user(self) -> IdentityUser | None:
        """Return the signed-in user, or None."""
        ...

    async def update_password(self, password: str) -> AuthResponse:
        """Change the signed-in user's password."""
        ...
