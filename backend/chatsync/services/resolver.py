"""Pure decision functions used during a sync exchange.

Nothing in here touches a store; the sync engine feeds in what it looked up
and acts on the returned decision.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from datetime import timedelta
from enum import Enum
from typing import Iterable
from typing import Optional
from typing import Protocol
from typing import Sequence

from chatsync.schemas.records import ChatRecord

# Two messages with identical content closer than this are the same message
# replayed (retry, second device, clock skew).  Not configurable.
DEDUP_WINDOW = timedelta(milliseconds=1000)


class _TimedContent(Protocol):
    content: str
    created_at: datetime


def is_duplicate_message(content: str, created_at: datetime, existing: Iterable[_TimedContent]) -> bool:
    """True when *existing* holds the same content within :data:`DEDUP_WINDOW`.

    The bound is strict: exactly 1000 ms apart counts as two messages.
    """
    for message in existing:
        if message.content == content and abs(message.created_at - created_at) < DEDUP_WINDOW:
            return True
    return False


class ChatAction(str, Enum):
    CREATE = "create"  # no live server chat; populate from the local record
    MERGE = "merge"  # live server chat wins metadata; append new messages
    DELETE = "delete"  # tombstone the live server chat
    NOOP = "noop"  # deletion of something the server no longer has live
    SKIP_STALE = "skip_stale"  # local replica of a chat deleted elsewhere


@dataclass
class ChatResolution:
    action: ChatAction
    target: Optional[ChatRecord] = None
    # For CREATE over a tombstone only messages strictly newer are replayed.
    replay_after: Optional[datetime] = None


def resolve_chat(
    is_deleted: bool,
    server_chat: Optional[ChatRecord],
    message_times: Sequence[datetime] = (),
) -> ChatResolution:
    """Decide what a single local chat does to the server.

    *server_chat* is the live chat for the contact or, when there is none,
    its newest tombstone (or *None*).
    """
    live = server_chat if server_chat is not None and not server_chat.is_deleted else None
    tombstone = server_chat if server_chat is not None and server_chat.is_deleted else None

    if is_deleted:
        if live is not None:
            return ChatResolution(ChatAction.DELETE, target=live)
        return ChatResolution(ChatAction.NOOP, target=tombstone)

    if live is not None:
        return ChatResolution(ChatAction.MERGE, target=live)

    if tombstone is not None:
        deleted_at = tombstone.deleted_at or tombstone.updated_at
        if not any(t > deleted_at for t in message_times):
            return ChatResolution(ChatAction.SKIP_STALE, target=tombstone)
        return ChatResolution(ChatAction.CREATE, replay_after=deleted_at)

    return ChatResolution(ChatAction.CREATE)
