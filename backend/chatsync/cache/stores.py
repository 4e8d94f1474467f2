"""Cache-aside decorators for :class:`ChatStore` and :class:`UserStore`.

Reads go through :meth:`Cache.get_or_set`.  Every mutation goes through
``_write``, which deletes the affected keys once the wrapped call returns or
raises.  Cached entries are only ever deleted, never rewritten with derived
data, so the next read always repopulates from the store.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple

from chatsync.cache.cache import Cache
from chatsync.cache.keys import TTLClass
from chatsync.cache.keys import chat_key
from chatsync.cache.keys import chats_list_key
from chatsync.cache.keys import messages_key
from chatsync.cache.keys import profile_key
from chatsync.cache.keys import subscription_key
from chatsync.cache.keys import usage_key
from chatsync.core.interfaces import ChatStore
from chatsync.core.interfaces import UserStore
from chatsync.schemas.records import ChatRecord
from chatsync.schemas.records import MessageRecord
from chatsync.schemas.records import ProfileRecord
from chatsync.schemas.records import SubscriptionRecord
from chatsync.utils.time import utc_day


def _chat_keys(user_id: str, chat_id: Optional[str]) -> List[str]:
    keys = [chats_list_key(user_id)]
    if chat_id is not None:
        keys += [chat_key(user_id, chat_id), messages_key(user_id, chat_id)]
    return keys


def _subscription_keys(user_id: str, _entity_id: Optional[str]) -> List[str]:
    # Limits derive from the tier, so usage goes stale with the subscription.
    return [subscription_key(user_id), usage_key(user_id, utc_day())]


# entity type -> keys to drop after a write
INVALIDATION_MAP: Dict[str, Callable[[str, Optional[str]], List[str]]] = {
    "chat": _chat_keys,
    # Message writes rewrite the parent chat's preview fields too.
    "message": _chat_keys,
    "profile": lambda user_id, _entity_id: [profile_key(user_id)],
    "subscription": _subscription_keys,
    "usage": lambda user_id, day: [usage_key(user_id, day or utc_day())],
}


class _Invalidating:
    def __init__(self, cache: Cache):
        self.cache = cache

    def _write(self, entity: str, user_id: str, entity_id: Optional[str], operation, *args, **kwargs):
        try:
            return operation(*args, **kwargs)
        finally:
            self.cache.delete(*INVALIDATION_MAP[entity](user_id, entity_id))


def _dump_chats(chats: List[ChatRecord]):
    return [c.model_dump(mode="json") for c in chats]


def _load_chats(data) -> List[ChatRecord]:
    return [ChatRecord.model_validate(c) for c in data]


def _dump_messages(messages: List[MessageRecord]):
    return [m.model_dump(mode="json") for m in messages]


def _load_messages(data) -> List[MessageRecord]:
    return [MessageRecord.model_validate(m) for m in data]


class CachedChatStore(_Invalidating, ChatStore):
    """Chat store decorator adding read-through caching."""

    def __init__(self, inner: ChatStore, cache: Cache):
        super().__init__(cache)
        self.inner = inner

    # Reads -------------------------------------------------------------

    def list_active_chats(self, user_id: str) -> List[ChatRecord]:
        return self.cache.get_or_set(
            chats_list_key(user_id),
            TTLClass.MEDIUM,
            lambda: self.inner.list_active_chats(user_id),
            _dump_chats,
            _load_chats,
        )

    def list_chats_updated_since(self, user_id: str, since: datetime) -> List[ChatRecord]:
        return self.inner.list_chats_updated_since(user_id, since)

    def get_chat(self, user_id: str, chat_id: str) -> Optional[ChatRecord]:
        return self.cache.get_or_set(
            chat_key(user_id, chat_id),
            TTLClass.MEDIUM,
            lambda: self.inner.get_chat(user_id, chat_id),
            lambda c: c.model_dump(mode="json"),
            ChatRecord.model_validate,
        )

    def get_chat_by_contact_id(
        self, user_id: str, contact_id: str, include_deleted: bool = False
    ) -> Optional[ChatRecord]:
        # Resolution by contact drives create-if-absent; always ask the store.
        return self.inner.get_chat_by_contact_id(user_id, contact_id, include_deleted=include_deleted)

    def list_messages(self, user_id: str, chat_id: str, fresh: bool = False) -> List[MessageRecord]:
        if fresh:
            # A stale list written back by a racing read would let replays through dedup.
            return self.inner.list_messages(user_id, chat_id, fresh=True)
        return self.cache.get_or_set(
            messages_key(user_id, chat_id),
            TTLClass.MEDIUM,
            lambda: self.inner.list_messages(user_id, chat_id),
            _dump_messages,
            _load_messages,
        )

    def list_messages_page(
        self, user_id: str, chat_id: str, limit: int, cursor: Optional[str] = None
    ) -> Tuple[List[MessageRecord], bool]:
        return self.inner.list_messages_page(user_id, chat_id, limit, cursor=cursor)

    def load_snapshot(self, user_id: str) -> List[Tuple[ChatRecord, List[MessageRecord]]]:
        if not self.cache.enabled:
            return self.inner.load_snapshot(user_id)
        return super().load_snapshot(user_id)

    # Writes ------------------------------------------------------------

    def create_chat(self, user_id: str, contact_id: str, contact_name: str, **kwargs) -> Tuple[ChatRecord, bool]:
        return self._write(
            "chat", user_id, None, self.inner.create_chat, user_id, contact_id, contact_name, **kwargs
        )

    def update_chat(self, user_id: str, chat_id: str, **fields) -> ChatRecord:
        return self._write("chat", user_id, chat_id, self.inner.update_chat, user_id, chat_id, **fields)

    def soft_delete_chat(self, user_id: str, chat_id: str) -> ChatRecord:
        return self._write("chat", user_id, chat_id, self.inner.soft_delete_chat, user_id, chat_id)

    def add_message(self, user_id: str, chat_id: str, role: str, content: str, **kwargs) -> MessageRecord:
        return self._write(
            "message", user_id, chat_id, self.inner.add_message, user_id, chat_id, role, content, **kwargs
        )

    def update_message(self, user_id: str, chat_id: str, message_id: str, audio_url: Optional[str]) -> MessageRecord:
        return self._write(
            "message", user_id, chat_id, self.inner.update_message, user_id, chat_id, message_id, audio_url
        )

    def delete_message(self, user_id: str, chat_id: str, message_id: str) -> None:
        return self._write("message", user_id, chat_id, self.inner.delete_message, user_id, chat_id, message_id)


class CachedUserStore(_Invalidating, UserStore):
    """User store decorator; profiles get the long TTL, usage the short one."""

    def __init__(self, inner: UserStore, cache: Cache):
        super().__init__(cache)
        self.inner = inner

    def get_profile(self, user_id: str) -> Optional[ProfileRecord]:
        return self.cache.get_or_set(
            profile_key(user_id),
            TTLClass.LONG,
            lambda: self.inner.get_profile(user_id),
            lambda p: p.model_dump(mode="json"),
            ProfileRecord.model_validate,
        )

    def upsert_profile(self, user_id: str, **kwargs) -> ProfileRecord:
        return self._write("profile", user_id, None, self.inner.upsert_profile, user_id, **kwargs)

    def get_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        return self.cache.get_or_set(
            subscription_key(user_id),
            TTLClass.MEDIUM,
            lambda: self.inner.get_subscription(user_id),
            lambda s: s.model_dump(mode="json"),
            SubscriptionRecord.model_validate,
        )

    def update_subscription(self, user_id: str, **kwargs) -> SubscriptionRecord:
        return self._write("subscription", user_id, None, self.inner.update_subscription, user_id, **kwargs)

    def get_usage(self, user_id: str, day: str) -> int:
        return self.cache.get_or_set(
            usage_key(user_id, day),
            TTLClass.SHORT,
            lambda: self.inner.get_usage(user_id, day),
            int,
            int,
        )

    def increment_usage(self, user_id: str, day: str, amount: int = 1) -> int:
        return self._write("usage", user_id, day, self.inner.increment_usage, user_id, day, amount=amount)
