"""Internal snapshots of stored rows.

Stores hand these out instead of ORM instances so that callers never touch
a detached session and the cache can serialise them as JSON.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from chatsync.models.enums import MessageRole
from chatsync.models.enums import SubscriptionStatus
from chatsync.models.enums import SubscriptionTier


class ChatRecord(BaseModel):
    id: str
    user_id: str
    contact_id: str
    contact_name: str
    contact_emoji: str = ""
    contact_image: Optional[str] = None
    contact_purpose: str = ""
    last_message: str = ""
    last_message_at: datetime
    message_count: int = 0
    created_at: datetime
    updated_at: datetime
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MessageRecord(BaseModel):
    id: str
    chat_id: str
    role: MessageRole
    content: str
    audio_url: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ProfileRecord(BaseModel):
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SubscriptionRecord(BaseModel):
    user_id: str
    tier: SubscriptionTier
    status: SubscriptionStatus
    current_period_end: Optional[datetime] = None
    updated_at: datetime

    class Config:
        from_attributes = True
