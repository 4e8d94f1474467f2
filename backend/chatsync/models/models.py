import uuid

# SQLAlchemy core imports
from sqlalchemy import Boolean
from sqlalchemy import Column
from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey
from sqlalchemy import Index
from sqlalchemy import Integer
from sqlalchemy import String
from sqlalchemy import Text
from sqlalchemy import UniqueConstraint
from sqlalchemy import text
from sqlalchemy.orm import relationship

# Local helpers / enums
from chatsync.database import Base
from chatsync.models.enums import MessageRole
from chatsync.models.enums import SubscriptionStatus
from chatsync.models.enums import SubscriptionTier
from chatsync.utils.time import utc_now_naive


def _new_id() -> str:
    return str(uuid.uuid4())


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------


class Chat(Base):
    """One conversation between a user and a contact.

    Chats are never hard-deleted.  ``is_deleted`` / ``deleted_at`` form the
    tombstone that tells other devices to drop their local copy.  The
    ``last_message*`` and ``message_count`` columns are denormalised from the
    message sequence and rewritten on every append or delete.
    """

    __tablename__ = "chats"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String, nullable=False, index=True)

    # Contact snapshot ------------------------------------------------------
    contact_id = Column(String, nullable=False)
    contact_name = Column(String, nullable=False)
    contact_emoji = Column(String, nullable=False, default="")
    contact_image = Column(String, nullable=True)
    contact_purpose = Column(Text, nullable=False, default="")

    # Denormalised preview --------------------------------------------------
    last_message = Column(Text, nullable=False, default="")
    last_message_at = Column(DateTime, nullable=False, default=utc_now_naive)
    message_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utc_now_naive)
    updated_at = Column(DateTime, nullable=False, default=utc_now_naive, onupdate=utc_now_naive)

    # Tombstone -------------------------------------------------------------
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)

    messages = relationship(
        "ChatMessage",
        back_populates="chat",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        # At most one live chat per contact; tombstones may pile up.
        Index(
            "uq_chats_user_contact_active",
            "user_id",
            "contact_id",
            unique=True,
            sqlite_where=text("is_deleted = 0"),
            postgresql_where=text("is_deleted = false"),
        ),
        Index("ix_chats_user_updated", "user_id", "updated_at"),
    )


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    # Insertion sequence, breaks createdAt ties deterministically.
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), unique=True, nullable=False, default=_new_id)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(
        SAEnum(MessageRole, native_enum=False, name="message_role_enum", values_callable=_enum_values),
        nullable=False,
    )
    content = Column(Text, nullable=False)
    audio_url = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now_naive)

    chat = relationship("Chat", back_populates="messages")


# ---------------------------------------------------------------------------
# User-scoped reference data
# ---------------------------------------------------------------------------


class UserProfile(Base):
    """Profile keyed by the identity provider's stable user id."""

    __tablename__ = "user_profiles"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=True)
    display_name = Column(String, nullable=True)
    photo_url = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now_naive)
    updated_at = Column(DateTime, nullable=False, default=utc_now_naive, onupdate=utc_now_naive)


class Subscription(Base):
    __tablename__ = "subscriptions"

    user_id = Column(String, primary_key=True)
    tier = Column(
        SAEnum(SubscriptionTier, native_enum=False, name="subscription_tier_enum", values_callable=_enum_values),
        nullable=False,
        default=SubscriptionTier.FREE.value,
    )
    status = Column(
        SAEnum(SubscriptionStatus, native_enum=False, name="subscription_status_enum", values_callable=_enum_values),
        nullable=False,
        default=SubscriptionStatus.NONE.value,
    )
    current_period_end = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utc_now_naive, onupdate=utc_now_naive)


class DailyUsage(Base):
    """Per-user message counter for one UTC calendar day."""

    __tablename__ = "daily_usage"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    day = Column(String(10), nullable=False)  # YYYY-MM-DD
    message_count = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=utc_now_naive, onupdate=utc_now_naive)

    __table_args__ = (UniqueConstraint("user_id", "day", name="uq_daily_usage_user_day"),)
