"""Abstract interfaces for the store and cache seams.

The sync engine and routers depend on these contracts only, which lets the
cache decorate the SQL store transparently and lets tests inject fakes.
"""

from __future__ import annotations

from abc import ABC
from abc import abstractmethod
from datetime import datetime
from typing import List
from typing import Optional
from typing import Tuple

from chatsync.schemas.records import ChatRecord
from chatsync.schemas.records import MessageRecord
from chatsync.schemas.records import ProfileRecord
from chatsync.schemas.records import SubscriptionRecord


class ChatStore(ABC):
    """Per-user persistence for chats and their message sequences."""

    # Chat reads
    @abstractmethod
    def list_active_chats(self, user_id: str) -> List[ChatRecord]:
        """Non-deleted chats, most recently active first."""
        pass

    @abstractmethod
    def list_chats_updated_since(self, user_id: str, since: datetime) -> List[ChatRecord]:
        """Chats changed after *since*, tombstones included."""
        pass

    @abstractmethod
    def get_chat(self, user_id: str, chat_id: str) -> Optional[ChatRecord]:
        """Chat by id, tombstoned or not."""
        pass

    @abstractmethod
    def get_chat_by_contact_id(
        self, user_id: str, contact_id: str, include_deleted: bool = False
    ) -> Optional[ChatRecord]:
        """Live chat for a contact, optionally falling back to its newest tombstone."""
        pass

    # Chat writes
    @abstractmethod
    def create_chat(
        self,
        user_id: str,
        contact_id: str,
        contact_name: str,
        contact_emoji: str = "",
        contact_image: Optional[str] = None,
        contact_purpose: str = "",
        last_message: str = "",
        last_message_at: Optional[datetime] = None,
    ) -> Tuple[ChatRecord, bool]:
        """Create-if-absent; returns ``(chat, created)``."""
        pass

    @abstractmethod
    def update_chat(self, user_id: str, chat_id: str, **fields) -> ChatRecord:
        """Partially update chat metadata."""
        pass

    @abstractmethod
    def soft_delete_chat(self, user_id: str, chat_id: str) -> ChatRecord:
        """Tombstone a chat (idempotent)."""
        pass

    # Messages
    @abstractmethod
    def list_messages(self, user_id: str, chat_id: str, fresh: bool = False) -> List[MessageRecord]:
        """Full message sequence, oldest first.

        *fresh* asks decorators to skip any cached copy; the sync engine
        dedups against it, so it must reflect every committed append.
        """
        pass

    @abstractmethod
    def list_messages_page(
        self, user_id: str, chat_id: str, limit: int, cursor: Optional[str] = None
    ) -> Tuple[List[MessageRecord], bool]:
        """One page walking back from the newest message; ``(messages, has_more)``."""
        pass

    @abstractmethod
    def add_message(
        self,
        user_id: str,
        chat_id: str,
        role: str,
        content: str,
        audio_url: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> MessageRecord:
        """Append a message and refresh the parent chat's preview fields."""
        pass

    @abstractmethod
    def update_message(self, user_id: str, chat_id: str, message_id: str, audio_url: Optional[str]) -> MessageRecord:
        """Backfill a message's audio URL."""
        pass

    @abstractmethod
    def delete_message(self, user_id: str, chat_id: str, message_id: str) -> None:
        """Remove a message and refresh the parent chat's preview fields."""
        pass

    # Snapshot
    def load_snapshot(self, user_id: str) -> List[Tuple[ChatRecord, List[MessageRecord]]]:
        """All live chats paired with their full message sequences."""
        return [(chat, self.list_messages(user_id, chat.id)) for chat in self.list_active_chats(user_id)]


class UserStore(ABC):
    """Profile, subscription and daily-usage records."""

    @abstractmethod
    def get_profile(self, user_id: str) -> Optional[ProfileRecord]:
        pass

    @abstractmethod
    def upsert_profile(
        self,
        user_id: str,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> ProfileRecord:
        pass

    @abstractmethod
    def get_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        pass

    @abstractmethod
    def update_subscription(
        self,
        user_id: str,
        tier: Optional[str] = None,
        status: Optional[str] = None,
        current_period_end: Optional[datetime] = None,
    ) -> SubscriptionRecord:
        pass

    @abstractmethod
    def get_usage(self, user_id: str, day: str) -> int:
        pass

    @abstractmethod
    def increment_usage(self, user_id: str, day: str, amount: int = 1) -> int:
        pass


class CacheBackend(ABC):
    """Minimal key/value contract with per-key expiry.

    Values are JSON strings.  Implementations may raise on transport errors;
    :class:`chatsync.cache.cache.Cache` is responsible for swallowing them.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        pass

    @abstractmethod
    def delete(self, *keys: str) -> None:
        pass

    @abstractmethod
    def ping(self) -> bool:
        pass

    def close(self) -> None:  # noqa: D401 – optional hook
        """Release connections; no-op by default."""
        return None
