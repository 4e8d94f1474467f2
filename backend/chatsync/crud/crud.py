from datetime import datetime
from typing import List
from typing import Optional
from typing import Tuple

from sqlalchemy import and_
from sqlalchemy import func
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chatsync.constants import LAST_MESSAGE_PREVIEW_LENGTH
from chatsync.models.models import Chat
from chatsync.models.models import ChatMessage
from chatsync.models.models import DailyUsage
from chatsync.models.models import Subscription
from chatsync.models.models import UserProfile
from chatsync.utils.time import utc_now_naive

# Metadata a client may change after creation.
EDITABLE_CHAT_FIELDS = ("contact_name", "contact_emoji", "contact_image", "contact_purpose")


# ---------------------------------------------------------------------------
# Chats
# ---------------------------------------------------------------------------


def get_active_chats(db: Session, user_id: str) -> List[Chat]:
    """Non-deleted chats of *user_id*, most recently active first."""
    return (
        db.query(Chat)
        .filter(Chat.user_id == user_id, Chat.is_deleted.is_(False))
        .order_by(Chat.last_message_at.desc(), Chat.created_at.desc())
        .all()
    )


def get_chats_updated_since(db: Session, user_id: str, since: datetime) -> List[Chat]:
    """Chats touched after *since*, tombstones included."""
    return (
        db.query(Chat)
        .filter(Chat.user_id == user_id, Chat.updated_at > since)
        .order_by(Chat.updated_at.desc())
        .all()
    )


def get_chat(db: Session, user_id: str, chat_id: str) -> Optional[Chat]:
    """Get a chat by id, tombstoned or not"""
    return db.query(Chat).filter(Chat.user_id == user_id, Chat.id == chat_id).first()


def get_chat_by_contact_id(db: Session, user_id: str, contact_id: str, include_deleted: bool = False) -> Optional[Chat]:
    """Return the live chat for *contact_id*.

    With *include_deleted* the newest tombstone is returned when no live chat
    exists, which is what the sync resolver needs to detect stale replicas.
    """
    active = (
        db.query(Chat)
        .filter(Chat.user_id == user_id, Chat.contact_id == contact_id, Chat.is_deleted.is_(False))
        .first()
    )
    if active is not None or not include_deleted:
        return active

    return (
        db.query(Chat)
        .filter(Chat.user_id == user_id, Chat.contact_id == contact_id, Chat.is_deleted.is_(True))
        .order_by(Chat.deleted_at.desc())
        .first()
    )


def create_chat(
    db: Session,
    user_id: str,
    contact_id: str,
    contact_name: str,
    contact_emoji: str = "",
    contact_image: Optional[str] = None,
    contact_purpose: str = "",
    last_message: str = "",
    last_message_at: Optional[datetime] = None,
    created_at: Optional[datetime] = None,
) -> Tuple[Chat, bool]:
    """Create-if-absent keyed by ``(user_id, contact_id)``.

    Returns ``(chat, created)``.  When a concurrent writer wins the race the
    partial unique index rejects our insert; we roll back and hand back the
    winner's row instead of a duplicate.
    """
    existing = get_chat_by_contact_id(db, user_id, contact_id)
    if existing is not None:
        return existing, False

    now = utc_now_naive()
    db_chat = Chat(
        user_id=user_id,
        contact_id=contact_id,
        contact_name=contact_name,
        contact_emoji=contact_emoji or "",
        contact_image=contact_image,
        contact_purpose=contact_purpose or "",
        last_message=(last_message or "")[:LAST_MESSAGE_PREVIEW_LENGTH],
        last_message_at=last_message_at or now,
        message_count=0,
        created_at=created_at or now,
        updated_at=now,
    )
    db.add(db_chat)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        winner = get_chat_by_contact_id(db, user_id, contact_id)
        if winner is None:
            raise
        return winner, False

    db.refresh(db_chat)
    return db_chat, True


def update_chat(db: Session, user_id: str, chat_id: str, **fields) -> Optional[Chat]:
    """Partially update editable chat metadata; unknown keys are rejected."""
    unknown = set(fields) - set(EDITABLE_CHAT_FIELDS)
    if unknown:
        raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

    db_chat = get_chat(db, user_id, chat_id)
    if db_chat is None:
        return None

    for key, value in fields.items():
        setattr(db_chat, key, value)
    db_chat.updated_at = utc_now_naive()

    db.commit()
    db.refresh(db_chat)
    return db_chat


def soft_delete_chat(db: Session, user_id: str, chat_id: str) -> Optional[Chat]:
    """Tombstone a chat.  Re-deleting leaves the original ``deleted_at``."""
    db_chat = get_chat(db, user_id, chat_id)
    if db_chat is None:
        return None
    if db_chat.is_deleted:
        return db_chat

    now = utc_now_naive()
    db_chat.is_deleted = True
    db_chat.deleted_at = now
    db_chat.updated_at = now
    db.commit()
    db.refresh(db_chat)
    return db_chat


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def get_chat_messages(db: Session, chat_id: str) -> List[ChatMessage]:
    """All messages of a chat, oldest first"""
    # ``seq`` is strictly monotonic and breaks createdAt ties in insertion order.
    return (
        db.query(ChatMessage)
        .filter(ChatMessage.chat_id == chat_id)
        .order_by(ChatMessage.created_at, ChatMessage.seq)
        .all()
    )


def get_messages_for_chats(db: Session, chat_ids: List[str]) -> List[ChatMessage]:
    """Bulk variant of :func:`get_chat_messages` for snapshot reads."""
    if not chat_ids:
        return []
    return (
        db.query(ChatMessage)
        .filter(ChatMessage.chat_id.in_(chat_ids))
        .order_by(ChatMessage.chat_id, ChatMessage.created_at, ChatMessage.seq)
        .all()
    )


def get_chat_message(db: Session, chat_id: str, message_id: str) -> Optional[ChatMessage]:
    return db.query(ChatMessage).filter(ChatMessage.chat_id == chat_id, ChatMessage.id == message_id).first()


def get_chat_messages_page(
    db: Session, chat_id: str, limit: int, cursor: Optional[str] = None
) -> Tuple[List[ChatMessage], bool]:
    """Return one page of messages and whether older ones remain.

    Pages walk backwards from the newest message; *cursor* is the id of the
    oldest message of the previous page.  Each page is returned oldest-first.
    An unknown cursor yields an empty page.
    """
    query = db.query(ChatMessage).filter(ChatMessage.chat_id == chat_id)

    if cursor is not None:
        anchor = get_chat_message(db, chat_id, cursor)
        if anchor is None:
            return [], False
        query = query.filter(
            or_(
                ChatMessage.created_at < anchor.created_at,
                and_(ChatMessage.created_at == anchor.created_at, ChatMessage.seq < anchor.seq),
            )
        )

    rows = query.order_by(ChatMessage.created_at.desc(), ChatMessage.seq.desc()).limit(limit + 1).all()
    has_more = len(rows) > limit
    page = rows[:limit]
    page.reverse()
    return page, has_more


def _refresh_chat_summary(db: Session, db_chat: Chat) -> None:
    """Rewrite the denormalised preview columns from the message sequence."""
    db.flush()

    latest = (
        db.query(ChatMessage)
        .filter(ChatMessage.chat_id == db_chat.id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.seq.desc())
        .first()
    )
    count = db.query(func.count(ChatMessage.seq)).filter(ChatMessage.chat_id == db_chat.id).scalar() or 0

    if latest is not None:
        db_chat.last_message = latest.content[:LAST_MESSAGE_PREVIEW_LENGTH]
        db_chat.last_message_at = latest.created_at
    else:
        db_chat.last_message = ""
        db_chat.last_message_at = db_chat.created_at
    db_chat.message_count = count
    db_chat.updated_at = utc_now_naive()


def create_chat_message(
    db: Session,
    db_chat: Chat,
    role: str,
    content: str,
    audio_url: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> ChatMessage:
    """Append a message and refresh the parent chat in the same transaction."""
    db_message = ChatMessage(
        chat_id=db_chat.id,
        role=role,
        content=content,
        audio_url=audio_url,
        created_at=created_at or utc_now_naive(),
    )
    db.add(db_message)
    _refresh_chat_summary(db, db_chat)

    db.commit()
    db.refresh(db_message)
    return db_message


def update_chat_message(db: Session, chat_id: str, message_id: str, audio_url: Optional[str]) -> Optional[ChatMessage]:
    """Backfill the audio URL; content and timestamps stay immutable."""
    db_message = get_chat_message(db, chat_id, message_id)
    if db_message is None:
        return None

    db_message.audio_url = audio_url
    db.commit()
    db.refresh(db_message)
    return db_message


def delete_chat_message(db: Session, db_chat: Chat, message_id: str) -> bool:
    db_message = get_chat_message(db, db_chat.id, message_id)
    if db_message is None:
        return False

    db.delete(db_message)
    _refresh_chat_summary(db, db_chat)
    db.commit()
    return True


# ---------------------------------------------------------------------------
# Profiles, subscriptions & usage
# ---------------------------------------------------------------------------


def get_profile(db: Session, user_id: str) -> Optional[UserProfile]:
    return db.query(UserProfile).filter(UserProfile.id == user_id).first()


def upsert_profile(
    db: Session,
    user_id: str,
    email: Optional[str] = None,
    display_name: Optional[str] = None,
    photo_url: Optional[str] = None,
) -> UserProfile:
    """Create the profile or overwrite the provided (non-None) fields"""
    profile = get_profile(db, user_id)
    if profile is None:
        profile = UserProfile(id=user_id)
        db.add(profile)

    if email is not None:
        profile.email = email
    if display_name is not None:
        profile.display_name = display_name
    if photo_url is not None:
        profile.photo_url = photo_url
    profile.updated_at = utc_now_naive()

    db.commit()
    db.refresh(profile)
    return profile


def get_subscription(db: Session, user_id: str) -> Optional[Subscription]:
    return db.query(Subscription).filter(Subscription.user_id == user_id).first()


def update_subscription(
    db: Session,
    user_id: str,
    tier: Optional[str] = None,
    status: Optional[str] = None,
    current_period_end: Optional[datetime] = None,
) -> Subscription:
    subscription = get_subscription(db, user_id)
    if subscription is None:
        subscription = Subscription(user_id=user_id)
        db.add(subscription)

    if tier is not None:
        subscription.tier = tier
    if status is not None:
        subscription.status = status
    if current_period_end is not None:
        subscription.current_period_end = current_period_end
    subscription.updated_at = utc_now_naive()

    db.commit()
    db.refresh(subscription)
    return subscription


def get_daily_usage(db: Session, user_id: str, day: str) -> int:
    row = db.query(DailyUsage).filter(DailyUsage.user_id == user_id, DailyUsage.day == day).first()
    return row.message_count if row is not None else 0


def increment_daily_usage(db: Session, user_id: str, day: str, amount: int = 1) -> int:
    """Add *amount* to the day's counter and return the new total."""
    query = db.query(DailyUsage).filter(DailyUsage.user_id == user_id, DailyUsage.day == day)
    row = query.first()
    if row is None:
        db.add(DailyUsage(user_id=user_id, day=day, message_count=amount))
        try:
            db.commit()
            return amount
        except IntegrityError:
            # Another request created today's row first.
            db.rollback()
            row = query.one()

    # Server-side increment so concurrent writers do not lose updates.
    row.message_count = DailyUsage.message_count + amount
    row.updated_at = utc_now_naive()
    db.commit()
    db.refresh(row)
    return row.message_count
