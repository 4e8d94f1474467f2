"""Cache key layout and TTL classes.

Every key is scoped by user id so one user's writes can never evict or leak
into another user's entries.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from chatsync.config import Settings


class TTLClass(str, Enum):
    SHORT = "short"  # per-day usage counters
    MEDIUM = "medium"  # chats, chat lists, message sequences, subscriptions
    LONG = "long"  # profiles and other rarely-changing data


@dataclass(frozen=True)
class TTLPolicy:
    short: int = 60
    medium: int = 300
    long: int = 3600

    @classmethod
    def from_settings(cls, settings: Settings) -> "TTLPolicy":
        return cls(short=settings.cache_ttl_short, medium=settings.cache_ttl_medium, long=settings.cache_ttl_long)

    def seconds(self, ttl_class: TTLClass) -> int:
        return getattr(self, ttl_class.value)


# Key builders ---------------------------------------------------------------


def chat_key(user_id: str, chat_id: str) -> str:
    return f"chat:{user_id}:{chat_id}"


def chats_list_key(user_id: str) -> str:
    return f"chats:{user_id}"


def messages_key(user_id: str, chat_id: str) -> str:
    return f"chat:{user_id}:{chat_id}:messages"


def profile_key(user_id: str) -> str:
    return f"user:{user_id}"


def subscription_key(user_id: str) -> str:
    return f"subscription:{user_id}"


def usage_key(user_id: str, day: str) -> str:
    return f"usage:{user_id}:{day}"
