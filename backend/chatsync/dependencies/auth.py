"""FastAPI dependencies for the caller's identity and request quota.

The heavy lifting lives in :mod:`chatsync.auth.strategy`; the concrete
strategy is picked when the container is built.
"""

from __future__ import annotations

from fastapi import Depends
from fastapi import HTTPException
from fastapi import Request
from fastapi import status

from chatsync.core.factory import Container
from chatsync.core.factory import get_container
from chatsync.errors import AuthenticationError
from chatsync.errors import RateLimitExceeded


def get_current_user(request: Request, container: Container = Depends(get_container)) -> str:
    """Return the authenticated user id or raise **401**."""

    try:
        return container.auth_strategy.authenticate(request)
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


def check_sync_rate_limit(
    user_id: str = Depends(get_current_user),
    container: Container = Depends(get_container),
) -> str:
    """Authenticate, then enforce the per-user sync quota (**429**)."""

    try:
        container.rate_limiter.check(user_id)
    except RateLimitExceeded as exc:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=(
                f"Too many sync requests. Limit: {container.rate_limiter.limit} per "
                f"{container.rate_limiter.window_seconds} seconds."
            ),
            headers={"Retry-After": str(exc.retry_after)} if exc.retry_after else {},
        )
    return user_id
