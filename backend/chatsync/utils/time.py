"""Timezone helpers.

Every timestamp in the store is a *naive* UTC ``datetime``.  Timestamps on
the wire are ISO-8601 strings with millisecond precision and a ``Z`` suffix,
which is what JavaScript's ``Date.toISOString()`` produces on the clients.
"""

from datetime import datetime
from datetime import timezone


def utc_now() -> datetime:  # noqa: D401 – simple utility
    """Return *aware* current time in UTC."""

    return datetime.now(timezone.utc)


def utc_now_naive() -> datetime:  # noqa: D401 – simple utility
    """Return *naive* current time in UTC for database compatibility."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalise *value* to naive UTC (aware values are converted first)."""

    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_iso(value: datetime | None) -> str | None:
    """Render *value* as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""

    if value is None:
        return None
    value = to_naive_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def utc_day(value: datetime | None = None) -> str:
    """Return the UTC calendar day (``YYYY-MM-DD``) used for usage counters."""

    return (value or utc_now_naive()).strftime("%Y-%m-%d")


__all__ = ["utc_now", "utc_now_naive", "to_naive_utc", "to_iso", "utc_day"]
