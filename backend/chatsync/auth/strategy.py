"""Authentication strategies.

Token issuance lives with the identity provider; this service only verifies
bearer tokens and extracts the stable user id.  Which strategy runs is
decided once when the container is built, so handlers stay branch-free:

• :class:`DevAuthStrategy` – *AUTH_DISABLED* / tests, everyone is one user.
• :class:`JWTAuthStrategy` – HS256 tokens verified with *python-jose*.
"""

from __future__ import annotations

from abc import ABC
from abc import abstractmethod
from typing import Any

from fastapi import Request
from jose import JWTError
from jose import jwt

from chatsync.errors import AuthenticationError

# ---------------------------------------------------------------------------
# Strategy base-class
# ---------------------------------------------------------------------------


class AuthStrategy(ABC):
    """Pluggable authentication backend (strategy pattern)."""

    @abstractmethod
    def authenticate(self, request: Request) -> str:  # noqa: D401 – abstract
        """Return the caller's user id or raise :class:`AuthenticationError`."""


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header[7:].strip()
    return token or None


# ---------------------------------------------------------------------------
# Development-mode bypass
# ---------------------------------------------------------------------------


class DevAuthStrategy(AuthStrategy):
    """Bypass all checks – every request belongs to :attr:`user_id`."""

    DEV_USER_ID = "dev-user"

    def __init__(self, user_id: str = DEV_USER_ID):
        self.user_id = user_id

    def authenticate(self, request: Request) -> str:  # noqa: D401 – impl
        return self.user_id


# ---------------------------------------------------------------------------
# HS256 JWT validation (production)
# ---------------------------------------------------------------------------


class JWTAuthStrategy(AuthStrategy):
    """Production strategy that validates HS256 tokens."""

    ALGORITHMS = ["HS256"]

    def __init__(self, secret: str):
        self._secret = secret

    def decode(self, token: str) -> dict[str, Any]:
        """Verify signature and expiry; raises ``JWTError`` on failure."""
        return jwt.decode(token, self._secret, algorithms=self.ALGORITHMS)

    def authenticate(self, request: Request) -> str:  # noqa: D401 – impl
        token = _bearer_token(request)
        if token is None:
            raise AuthenticationError("Unauthorized")

        try:
            payload = self.decode(token)
        except JWTError:
            raise AuthenticationError("Invalid token")

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject.strip():
            raise AuthenticationError("Invalid token")
        return subject


__all__ = [
    "AuthStrategy",
    "DevAuthStrategy",
    "JWTAuthStrategy",
]
