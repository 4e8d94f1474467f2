"""Sync protocol engine.

One exchange takes a client change-set, applies it to the server store one
chat at a time and answers with the converged server state:

* deleted local chats tombstone their live server counterpart;
* unknown contacts become new server chats;
* known contacts keep the server's metadata and only gain messages the
  server does not already have (content + 1 s window dedup).

Failures are isolated per chat and per message.  They are collected into
``SyncResult.errors`` and the exchange carries on; only a failure to read
the final snapshot aborts the request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from typing import Any
from typing import Callable
from typing import List
from typing import Optional
from typing import Sequence
from typing import Tuple

from pydantic import ValidationError as PydanticValidationError

from chatsync.core.interfaces import ChatStore
from chatsync.errors import ChatSyncError
from chatsync.errors import ValidationError
from chatsync.schemas.api import SyncChatIn
from chatsync.schemas.api import SyncMessageIn
from chatsync.schemas.records import ChatRecord
from chatsync.schemas.records import MessageRecord
from chatsync.services.resolver import ChatAction
from chatsync.services.resolver import is_duplicate_message
from chatsync.services.resolver import resolve_chat
from chatsync.utils.time import utc_now_naive

logger = logging.getLogger(__name__)


@dataclass
class SyncStats:
    chats_created: int = 0
    chats_deleted: int = 0
    chats_skipped: int = 0
    messages_appended: int = 0
    messages_duplicate: int = 0


@dataclass
class SyncResult:
    chats: List[Tuple[ChatRecord, List[MessageRecord]]]
    synced_at: datetime
    errors: List[str] = field(default_factory=list)
    stats: SyncStats = field(default_factory=SyncStats)


@dataclass
class _PendingMessage:
    """A validated local message, remembering its position in the request."""

    index: int
    message: SyncMessageIn

    @property
    def content(self) -> str:
        return self.message.content

    @property
    def created_at(self) -> datetime:
        return self.message.createdAt


def _summarise(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "entry"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def _chat_context(index: int, raw: Any) -> str:
    context = f"chat[{index}]"
    if isinstance(raw, dict):
        if raw.get("contactId"):
            context += f" contactId={raw['contactId']}"
        if raw.get("id"):
            context += f" id={raw['id']}"
    return context


def _message_context(index: int, raw: Any) -> str:
    context = f"message[{index}]"
    if isinstance(raw, dict) and raw.get("id"):
        context += f" id={raw['id']}"
    return context


class SyncService:
    """Applies client change-sets to a :class:`ChatStore`."""

    def __init__(self, chat_store: ChatStore, clock: Callable[[], datetime] = utc_now_naive):
        self.chat_store = chat_store
        self._clock = clock

    # Public API --------------------------------------------------------

    def snapshot(self, user_id: str) -> SyncResult:
        """Read-only exchange: the full current state, nothing applied."""
        return SyncResult(chats=self.chat_store.load_snapshot(user_id), synced_at=self._clock())

    def sync(
        self,
        user_id: str,
        local_chats: Optional[Sequence[Any]] = None,
        last_sync_at: Optional[datetime] = None,
    ) -> SyncResult:
        """Apply *local_chats* in order, then return the converged snapshot.

        *last_sync_at* is accepted for protocol compatibility; the response
        is always the full snapshot, never a delta.
        """
        errors: List[str] = []
        stats = SyncStats()

        for index, raw in enumerate(local_chats or ()):
            context = _chat_context(index, raw)
            try:
                self._apply_chat(user_id, raw, context, errors, stats)
            except ChatSyncError as exc:
                logger.warning(f"Sync {context} for user {user_id} failed: {exc}")
                errors.append(f"{context}: {exc}")
            except Exception as exc:  # noqa: BLE001 – isolate per chat
                logger.exception(f"Unexpected error syncing {context} for user {user_id}")
                errors.append(f"{context}: {exc.__class__.__name__}: {exc}")

        # Not isolated: without a snapshot there is nothing to answer with.
        chats = self.chat_store.load_snapshot(user_id)
        synced_at = self._clock()

        logger.info(
            f"Sync for user {user_id} (lastSyncAt={last_sync_at}): "
            f"{len(local_chats or ())} local chats, created={stats.chats_created} "
            f"deleted={stats.chats_deleted} skipped={stats.chats_skipped} "
            f"appended={stats.messages_appended} duplicates={stats.messages_duplicate} "
            f"errors={len(errors)}"
        )
        return SyncResult(chats=chats, synced_at=synced_at, errors=errors, stats=stats)

    # Per-chat processing ----------------------------------------------

    def _apply_chat(self, user_id: str, raw: Any, context: str, errors: List[str], stats: SyncStats) -> None:
        try:
            local = SyncChatIn.model_validate(raw)
        except PydanticValidationError as exc:
            raise ValidationError(_summarise(exc)) from exc

        pending = [] if local.isDeleted else self._validate_messages(local.messages, context, errors)

        # One lookup gives either the live chat or its newest tombstone.
        server_chat = self.chat_store.get_chat_by_contact_id(user_id, local.contactId, include_deleted=True)
        resolution = resolve_chat(local.isDeleted, server_chat, [p.created_at for p in pending])

        if resolution.action is ChatAction.DELETE:
            self.chat_store.soft_delete_chat(user_id, resolution.target.id)
            stats.chats_deleted += 1
            return

        if resolution.action is ChatAction.NOOP:
            logger.debug(f"{context}: nothing live to delete")
            return

        if resolution.action is ChatAction.SKIP_STALE:
            logger.info(f"{context}: skipping replica of chat deleted at {resolution.target.deleted_at}")
            stats.chats_skipped += 1
            return

        if resolution.action is ChatAction.CREATE:
            chat, created = self.chat_store.create_chat(
                user_id,
                local.contactId,
                local.contactName,
                contact_emoji=local.contactEmoji,
                contact_image=local.contactImage,
                contact_purpose=local.contactPurpose,
            )
            if created:
                stats.chats_created += 1
                existing: List[Any] = []
            else:
                # Lost a create race; the winner's chat is now authoritative.
                existing = list(self.chat_store.list_messages(user_id, chat.id, fresh=True))
            if resolution.replay_after is not None:
                pending = [p for p in pending if p.created_at > resolution.replay_after]
        else:
            chat = resolution.target
            existing = list(self.chat_store.list_messages(user_id, chat.id, fresh=True))

        self._append_messages(user_id, chat, pending, existing, context, errors, stats)

    def _validate_messages(self, raw_messages: List[Any], context: str, errors: List[str]) -> List[_PendingMessage]:
        pending = []
        for index, raw in enumerate(raw_messages):
            try:
                pending.append(_PendingMessage(index, SyncMessageIn.model_validate(raw)))
            except PydanticValidationError as exc:
                errors.append(f"{context} {_message_context(index, raw)}: {_summarise(exc)}")
        return pending

    def _append_messages(
        self,
        user_id: str,
        chat: ChatRecord,
        pending: List[_PendingMessage],
        existing: List[Any],
        context: str,
        errors: List[str],
        stats: SyncStats,
    ) -> None:
        for item in pending:
            # ``existing`` grows as we go so in-batch repeats are caught too.
            if is_duplicate_message(item.content, item.created_at, existing):
                stats.messages_duplicate += 1
                continue

            label = f"{context} message[{item.index}]" + (f" id={item.message.id}" if item.message.id else "")
            try:
                record = self.chat_store.add_message(
                    user_id,
                    chat.id,
                    item.message.role.value,
                    item.message.content,
                    audio_url=item.message.audioUrl,
                    created_at=item.created_at,
                )
            except ChatSyncError as exc:
                logger.warning(f"Sync {label} for user {user_id} failed: {exc}")
                errors.append(f"{label}: {exc}")
                continue
            except Exception as exc:  # noqa: BLE001 – isolate per message
                logger.exception(f"Unexpected error appending {label} for user {user_id}")
                errors.append(f"{label}: {exc.__class__.__name__}: {exc}")
                continue

            existing.append(record)
            stats.messages_appended += 1
