"""Production implementations of the store interfaces.

Each operation opens its own short session via :func:`db_session`, calls
into :mod:`chatsync.crud.crud` and converts rows to records before the
session closes.  SQLAlchemy failures surface as :class:`StoreError`.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator
from typing import List
from typing import Optional
from typing import Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm import sessionmaker

from chatsync.core.interfaces import ChatStore
from chatsync.core.interfaces import UserStore
from chatsync.crud import crud
from chatsync.database import db_session
from chatsync.errors import ChatNotFoundError
from chatsync.errors import MessageNotFoundError
from chatsync.errors import StoreError
from chatsync.models.models import Chat
from chatsync.schemas.records import ChatRecord
from chatsync.schemas.records import MessageRecord
from chatsync.schemas.records import ProfileRecord
from chatsync.schemas.records import SubscriptionRecord

logger = logging.getLogger(__name__)


class _SessionScoped:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        try:
            with db_session(self.session_factory) as db:
                yield db
        except SQLAlchemyError as exc:
            raise StoreError(f"{operation} failed: {exc.__class__.__name__}") from exc


class SQLAlchemyChatStore(_SessionScoped, ChatStore):
    """Chat store backed by the relational database."""

    # Helpers -----------------------------------------------------------

    @staticmethod
    def _require_chat(db: Session, user_id: str, chat_id: str, live: bool = False) -> Chat:
        db_chat = crud.get_chat(db, user_id, chat_id)
        if db_chat is None or (live and db_chat.is_deleted):
            raise ChatNotFoundError(chat_id)
        return db_chat

    # Chat reads --------------------------------------------------------

    def list_active_chats(self, user_id: str) -> List[ChatRecord]:
        with self._session("list_active_chats") as db:
            return [ChatRecord.model_validate(c) for c in crud.get_active_chats(db, user_id)]

    def list_chats_updated_since(self, user_id: str, since: datetime) -> List[ChatRecord]:
        with self._session("list_chats_updated_since") as db:
            return [ChatRecord.model_validate(c) for c in crud.get_chats_updated_since(db, user_id, since)]

    def get_chat(self, user_id: str, chat_id: str) -> Optional[ChatRecord]:
        with self._session("get_chat") as db:
            db_chat = crud.get_chat(db, user_id, chat_id)
            return ChatRecord.model_validate(db_chat) if db_chat is not None else None

    def get_chat_by_contact_id(
        self, user_id: str, contact_id: str, include_deleted: bool = False
    ) -> Optional[ChatRecord]:
        with self._session("get_chat_by_contact_id") as db:
            db_chat = crud.get_chat_by_contact_id(db, user_id, contact_id, include_deleted=include_deleted)
            return ChatRecord.model_validate(db_chat) if db_chat is not None else None

    # Chat writes -------------------------------------------------------

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
        with self._session("create_chat") as db:
            db_chat, created = crud.create_chat(
                db,
                user_id=user_id,
                contact_id=contact_id,
                contact_name=contact_name,
                contact_emoji=contact_emoji,
                contact_image=contact_image,
                contact_purpose=contact_purpose,
                last_message=last_message,
                last_message_at=last_message_at,
            )
            if created:
                logger.debug(f"Created chat {db_chat.id} for contact {contact_id}")
            return ChatRecord.model_validate(db_chat), created

    def update_chat(self, user_id: str, chat_id: str, **fields) -> ChatRecord:
        with self._session("update_chat") as db:
            db_chat = crud.update_chat(db, user_id, chat_id, **fields)
            if db_chat is None:
                raise ChatNotFoundError(chat_id)
            return ChatRecord.model_validate(db_chat)

    def soft_delete_chat(self, user_id: str, chat_id: str) -> ChatRecord:
        with self._session("soft_delete_chat") as db:
            db_chat = crud.soft_delete_chat(db, user_id, chat_id)
            if db_chat is None:
                raise ChatNotFoundError(chat_id)
            return ChatRecord.model_validate(db_chat)

    # Messages ----------------------------------------------------------

    def list_messages(self, user_id: str, chat_id: str, fresh: bool = False) -> List[MessageRecord]:
        with self._session("list_messages") as db:
            self._require_chat(db, user_id, chat_id)
            return [MessageRecord.model_validate(m) for m in crud.get_chat_messages(db, chat_id)]

    def list_messages_page(
        self, user_id: str, chat_id: str, limit: int, cursor: Optional[str] = None
    ) -> Tuple[List[MessageRecord], bool]:
        with self._session("list_messages_page") as db:
            self._require_chat(db, user_id, chat_id)
            rows, has_more = crud.get_chat_messages_page(db, chat_id, limit=limit, cursor=cursor)
            return [MessageRecord.model_validate(m) for m in rows], has_more

    def add_message(
        self,
        user_id: str,
        chat_id: str,
        role: str,
        content: str,
        audio_url: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> MessageRecord:
        with self._session("add_message") as db:
            db_chat = self._require_chat(db, user_id, chat_id, live=True)
            db_message = crud.create_chat_message(
                db, db_chat, role=role, content=content, audio_url=audio_url, created_at=created_at
            )
            return MessageRecord.model_validate(db_message)

    def update_message(self, user_id: str, chat_id: str, message_id: str, audio_url: Optional[str]) -> MessageRecord:
        with self._session("update_message") as db:
            self._require_chat(db, user_id, chat_id)
            db_message = crud.update_chat_message(db, chat_id, message_id, audio_url)
            if db_message is None:
                raise MessageNotFoundError(message_id)
            return MessageRecord.model_validate(db_message)

    def delete_message(self, user_id: str, chat_id: str, message_id: str) -> None:
        with self._session("delete_message") as db:
            db_chat = self._require_chat(db, user_id, chat_id, live=True)
            if not crud.delete_chat_message(db, db_chat, message_id):
                raise MessageNotFoundError(message_id)

    # Snapshot ----------------------------------------------------------

    def load_snapshot(self, user_id: str) -> List[Tuple[ChatRecord, List[MessageRecord]]]:
        """All live chats with their messages, read in one session."""
        with self._session("load_snapshot") as db:
            chats = crud.get_active_chats(db, user_id)
            grouped: dict[str, List[MessageRecord]] = {c.id: [] for c in chats}
            for db_message in crud.get_messages_for_chats(db, list(grouped)):
                grouped[db_message.chat_id].append(MessageRecord.model_validate(db_message))
            return [(ChatRecord.model_validate(c), grouped[c.id]) for c in chats]


class SQLAlchemyUserStore(_SessionScoped, UserStore):
    """Profile / subscription / usage store backed by the database."""

    def get_profile(self, user_id: str) -> Optional[ProfileRecord]:
        with self._session("get_profile") as db:
            profile = crud.get_profile(db, user_id)
            return ProfileRecord.model_validate(profile) if profile is not None else None

    def upsert_profile(
        self,
        user_id: str,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> ProfileRecord:
        with self._session("upsert_profile") as db:
            profile = crud.upsert_profile(db, user_id, email=email, display_name=display_name, photo_url=photo_url)
            return ProfileRecord.model_validate(profile)

    def get_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        with self._session("get_subscription") as db:
            subscription = crud.get_subscription(db, user_id)
            return SubscriptionRecord.model_validate(subscription) if subscription is not None else None

    def update_subscription(
        self,
        user_id: str,
        tier: Optional[str] = None,
        status: Optional[str] = None,
        current_period_end: Optional[datetime] = None,
    ) -> SubscriptionRecord:
        with self._session("update_subscription") as db:
            subscription = crud.update_subscription(
                db, user_id, tier=tier, status=status, current_period_end=current_period_end
            )
            return SubscriptionRecord.model_validate(subscription)

    def get_usage(self, user_id: str, day: str) -> int:
        with self._session("get_usage") as db:
            return crud.get_daily_usage(db, user_id, day)

    def increment_usage(self, user_id: str, day: str, amount: int = 1) -> int:
        with self._session("increment_usage") as db:
            return crud.increment_daily_usage(db, user_id, day, amount=amount)
