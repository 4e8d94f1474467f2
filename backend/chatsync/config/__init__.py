"""Centralised configuration helper.

Every environment variable chatsync reads is parsed here, once, into a
:class:`Settings` instance.  The app factory and the test fixtures call
:func:`get_settings`; nothing else touches ``os.environ``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# Directory holding ``backend/``; this file is ``backend/chatsync/config/__init__.py``.
_REPO_ROOT = Path(__file__).resolve().parents[3]

_WEAK_SECRETS = {"", "dev-secret"}
_MIN_SECRET_LENGTH = 16


def _truthy(value: str | None) -> bool:  # noqa: D401 – small helper
    """Interpret ``1/true/yes/on`` (any case, surrounding blanks ignored) as *True*."""

    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


@dataclass
class Settings:  # noqa: D401 – simple data container
    """Runtime configuration for the API process."""

    # Mode --------------------------------------------------------------
    testing: bool
    auth_disabled: bool

    # Auth --------------------------------------------------------------
    jwt_secret: str

    # Storage -----------------------------------------------------------
    database_url: str
    redis_url: str | None

    # Cache TTL classes (seconds) ---------------------------------------
    cache_ttl_short: int
    cache_ttl_medium: int
    cache_ttl_long: int

    # Limits ------------------------------------------------------------
    sync_rate_limit_per_minute: int

    # HTTP / logging ----------------------------------------------------
    log_level: str
    environment: Any
    allowed_cors_origins: str

    @property
    def cache_enabled(self) -> bool:  # noqa: D401
        """True when a Redis URL is configured."""
        return bool(self.redis_url)

    def override(self, **kwargs: Any) -> None:
        """Patch fields in place (tests tweak limits before building a container)."""
        unknown = [key for key in kwargs if not hasattr(self, key)]
        if unknown:
            raise AttributeError(f"Settings has no attribute '{unknown[0]}'")
        for key, value in kwargs.items():
            setattr(self, key, value)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


def _dotenv_path(node_env: str) -> Path:
    """``.env.test`` under ``NODE_ENV=test`` when present, else ``.env``."""

    if node_env == "test":
        test_env = _REPO_ROOT / ".env.test"
        if test_env.exists():
            return test_env
    return _REPO_ROOT / ".env"


def _load_settings() -> Settings:  # noqa: D401 – helper
    """Read the dotenv file (exported variables win), then the environment."""

    dotenv_path = _dotenv_path(os.getenv("NODE_ENV", "development"))
    if dotenv_path.exists():
        load_dotenv(dotenv_path, override=False)

    testing = _truthy(os.getenv("TESTING"))

    return Settings(
        testing=testing,
        auth_disabled=_truthy(os.getenv("AUTH_DISABLED")) or testing,
        jwt_secret=os.getenv("JWT_SECRET", "dev-secret"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./chatsync.db" if testing else ""),
        redis_url=os.getenv("REDIS_URL") or None,
        cache_ttl_short=_int_env("CACHE_TTL_SHORT", 60),
        cache_ttl_medium=_int_env("CACHE_TTL_MEDIUM", 300),
        cache_ttl_long=_int_env("CACHE_TTL_LONG", 3600),
        sync_rate_limit_per_minute=_int_env("SYNC_RATE_LIMIT_PER_MINUTE", 60),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        environment=os.getenv("ENVIRONMENT"),
        allowed_cors_origins=os.getenv("ALLOWED_CORS_ORIGINS", ""),
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _problems(settings: Settings) -> list[str]:
    problems = []

    if not settings.database_url:
        problems.append("DATABASE_URL is not set")

    if not settings.auth_disabled:
        secret = settings.jwt_secret.strip()
        if secret in _WEAK_SECRETS or len(secret) < _MIN_SECRET_LENGTH:
            problems.append(f"JWT_SECRET must be at least {_MIN_SECRET_LENGTH} chars and not 'dev-secret'")

    for name in ("cache_ttl_short", "cache_ttl_medium", "cache_ttl_long", "sync_rate_limit_per_minute"):
        if getattr(settings, name) <= 0:
            problems.append(f"{name.upper()} must be a positive integer")

    return problems


def _validate_required(settings: Settings) -> None:  # noqa: D401 – helper
    """Refuse to start with a configuration that cannot serve traffic.

    Skipped under *TESTING*; fixtures inject their own engine and cache.
    """

    if settings.testing:
        return

    problems = _problems(settings)
    if problems:
        raise RuntimeError(
            "Invalid chatsync configuration:\n  - "
            + "\n  - ".join(problems)
            + "\nSet these in .env or the deployment environment."
        )


def get_settings() -> Settings:  # noqa: D401 – public accessor
    """Load and validate a fresh :class:`Settings`."""

    settings = _load_settings()
    _validate_required(settings)
    return settings


__all__ = [
    "Settings",
    "get_settings",
]
