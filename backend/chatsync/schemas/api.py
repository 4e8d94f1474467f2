"""Wire models for the sync, chats and user endpoints.

Field names are camelCase because the clients are JavaScript.  Timestamps
serialise as ``YYYY-MM-DDTHH:MM:SS.mmmZ``.
"""

from datetime import datetime
from typing import Annotated
from typing import Any
from typing import Dict
from typing import List
from typing import Optional

from pydantic import BaseModel
from pydantic import Field
from pydantic import PlainSerializer
from pydantic import field_validator
from pydantic import model_validator

from chatsync.constants import MAX_CONTACT_NAME_LENGTH
from chatsync.constants import MAX_LOCAL_CHATS
from chatsync.constants import MAX_MESSAGE_LENGTH
from chatsync.constants import MAX_MESSAGES_PER_CHAT
from chatsync.models.enums import MessageRole
from chatsync.schemas.records import ChatRecord
from chatsync.schemas.records import MessageRecord
from chatsync.schemas.records import ProfileRecord
from chatsync.schemas.records import SubscriptionRecord
from chatsync.utils.time import to_iso
from chatsync.utils.time import to_naive_utc

IsoDatetime = Annotated[datetime, PlainSerializer(to_iso, return_type=str)]


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    return to_naive_utc(value) if value is not None else None


# ---------------------------------------------------------------------------
# Sync request
# ---------------------------------------------------------------------------


class SyncMessageIn(BaseModel):
    id: Optional[str] = None
    role: MessageRole
    content: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)
    audioUrl: Optional[str] = None
    createdAt: datetime

    @field_validator("createdAt")
    @classmethod
    def normalise_created_at(cls, value: datetime) -> datetime:
        return to_naive_utc(value)


class SyncChatIn(BaseModel):
    """One entry of a client change-set.

    ``messages`` stays raw here; the sync engine validates each message on
    its own so one malformed message does not discard its siblings.
    """

    id: Optional[str] = None
    contactId: str = Field(min_length=1)
    contactName: str = Field(default="", max_length=MAX_CONTACT_NAME_LENGTH)
    contactEmoji: str = ""
    contactImage: Optional[str] = None
    contactPurpose: str = ""
    lastMessage: str = ""
    lastMessageAt: Optional[datetime] = None
    messages: List[Any] = Field(default_factory=list, max_length=MAX_MESSAGES_PER_CHAT)
    isDeleted: bool = False

    @field_validator("lastMessageAt")
    @classmethod
    def normalise_last_message_at(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _naive(value)

    @model_validator(mode="after")
    def require_name_for_live_chats(self):
        # A deletion only needs the contact id to locate the server chat.
        if not self.isDeleted and not self.contactName.strip():
            raise ValueError("contactName is required")
        return self


class SyncRequest(BaseModel):
    lastSyncAt: Optional[datetime] = None
    localChats: List[Any] = Field(default_factory=list, max_length=MAX_LOCAL_CHATS)

    @field_validator("lastSyncAt")
    @classmethod
    def normalise_last_sync_at(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _naive(value)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class MessageOut(BaseModel):
    id: str
    chatId: str
    role: MessageRole
    content: str
    audioUrl: Optional[str] = None
    createdAt: IsoDatetime

    @classmethod
    def from_record(cls, record: MessageRecord) -> "MessageOut":
        return cls(
            id=record.id,
            chatId=record.chat_id,
            role=record.role,
            content=record.content,
            audioUrl=record.audio_url,
            createdAt=record.created_at,
        )


class ChatOut(BaseModel):
    id: str
    contactId: str
    contactName: str
    contactEmoji: str
    contactImage: Optional[str] = None
    contactPurpose: str
    lastMessage: str
    lastMessageAt: IsoDatetime
    messageCount: int
    createdAt: IsoDatetime
    updatedAt: IsoDatetime
    isDeleted: bool = False
    deletedAt: Optional[IsoDatetime] = None
    messages: Optional[List[MessageOut]] = None

    @classmethod
    def from_record(cls, record: ChatRecord, messages: Optional[List[MessageRecord]] = None) -> "ChatOut":
        return cls(
            id=record.id,
            contactId=record.contact_id,
            contactName=record.contact_name,
            contactEmoji=record.contact_emoji,
            contactImage=record.contact_image,
            contactPurpose=record.contact_purpose,
            lastMessage=record.last_message,
            lastMessageAt=record.last_message_at,
            messageCount=record.message_count,
            createdAt=record.created_at,
            updatedAt=record.updated_at,
            isDeleted=record.is_deleted,
            deletedAt=record.deleted_at,
            messages=[MessageOut.from_record(m) for m in messages] if messages is not None else None,
        )


class SyncResponse(BaseModel):
    chats: List[ChatOut]
    syncedAt: IsoDatetime
    # Omitted from the body when empty (routes use ``response_model_exclude_none``).
    errors: Optional[List[str]] = None


# ---------------------------------------------------------------------------
# Chats API
# ---------------------------------------------------------------------------


class ChatCreate(BaseModel):
    contactId: str = Field(min_length=1)
    contactName: str = Field(min_length=1, max_length=MAX_CONTACT_NAME_LENGTH)
    contactEmoji: str = ""
    contactImage: Optional[str] = None
    contactPurpose: str = ""


class ChatUpdate(BaseModel):
    contactName: Optional[str] = Field(default=None, min_length=1, max_length=MAX_CONTACT_NAME_LENGTH)
    contactEmoji: Optional[str] = None
    contactImage: Optional[str] = None
    contactPurpose: Optional[str] = None

    class Config:
        extra = "forbid"

    def to_fields(self) -> Dict[str, Any]:
        """Map the explicitly sent fields onto store column names."""
        mapping = {
            "contactName": "contact_name",
            "contactEmoji": "contact_emoji",
            "contactImage": "contact_image",
            "contactPurpose": "contact_purpose",
        }
        fields = {}
        for key, value in self.model_dump(exclude_unset=True).items():
            # Only the image may be cleared; null for the others means "unchanged".
            if value is None and key != "contactImage":
                continue
            fields[mapping[key]] = value
        return fields


class ChatCreateResponse(BaseModel):
    chat: ChatOut
    isExisting: bool


class ChatList(BaseModel):
    chats: List[ChatOut]


class MessageCreate(BaseModel):
    role: MessageRole
    content: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)
    audioUrl: Optional[str] = None


class MessageUpdate(BaseModel):
    audioUrl: Optional[str] = None

    class Config:
        extra = "forbid"


class MessagePage(BaseModel):
    messages: List[MessageOut]
    hasMore: bool
    nextCursor: Optional[str] = None


# ---------------------------------------------------------------------------
# User API
# ---------------------------------------------------------------------------


class ProfileOut(BaseModel):
    id: str
    email: Optional[str] = None
    displayName: Optional[str] = None
    photoUrl: Optional[str] = None
    createdAt: IsoDatetime
    updatedAt: IsoDatetime

    @classmethod
    def from_record(cls, record: ProfileRecord) -> "ProfileOut":
        return cls(
            id=record.id,
            email=record.email,
            displayName=record.display_name,
            photoUrl=record.photo_url,
            createdAt=record.created_at,
            updatedAt=record.updated_at,
        )


class ProfileUpdate(BaseModel):
    email: Optional[str] = None
    displayName: Optional[str] = Field(default=None, max_length=MAX_CONTACT_NAME_LENGTH)
    photoUrl: Optional[str] = None


class UsageOut(BaseModel):
    day: str
    messageCount: int


class SubscriptionOut(BaseModel):
    tier: str
    status: str
    currentPeriodEnd: Optional[IsoDatetime] = None
    usage: UsageOut

    @classmethod
    def from_record(cls, record: Optional[SubscriptionRecord], usage: UsageOut) -> "SubscriptionOut":
        if record is None:
            return cls(tier="free", status="none", usage=usage)
        return cls(
            tier=record.tier.value,
            status=record.status.value,
            currentPeriodEnd=record.current_period_end,
            usage=usage,
        )
