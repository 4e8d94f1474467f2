"""
Router for chat and message endpoints.

Live (non-sync) access to a user's conversations: listing, idempotent
creation by contact, metadata edits, soft deletion and paginated messages.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter
from fastapi import Depends
from fastapi import HTTPException
from fastapi import Query
from fastapi import Response
from fastapi import status

from chatsync.constants import DEFAULT_PAGE_SIZE
from chatsync.constants import MAX_PAGE_SIZE
from chatsync.core.factory import get_chat_store
from chatsync.core.factory import get_user_store
from chatsync.core.interfaces import ChatStore
from chatsync.core.interfaces import UserStore
from chatsync.dependencies.auth import get_current_user
from chatsync.errors import ChatNotFoundError
from chatsync.errors import MessageNotFoundError
from chatsync.schemas.api import ChatCreate
from chatsync.schemas.api import ChatCreateResponse
from chatsync.schemas.api import ChatList
from chatsync.schemas.api import ChatOut
from chatsync.schemas.api import ChatUpdate
from chatsync.schemas.api import MessageCreate
from chatsync.schemas.api import MessageOut
from chatsync.schemas.api import MessagePage
from chatsync.schemas.api import MessageUpdate
from chatsync.schemas.records import ChatRecord
from chatsync.utils.time import to_naive_utc
from chatsync.utils.time import utc_day

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["chats"],
)


def _live_chat_or_404(chat_store: ChatStore, user_id: str, chat_id: str) -> ChatRecord:
    chat = chat_store.get_chat(user_id, chat_id)
    if chat is None or chat.is_deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
    return chat


# ---------------------------------------------------------------------------
# Chats
# ---------------------------------------------------------------------------


@router.get("", response_model=ChatList, response_model_exclude_none=True)
def read_chats(
    since: Optional[datetime] = None,
    user_id: str = Depends(get_current_user),
    chat_store: ChatStore = Depends(get_chat_store),
):
    """List live chats, or every chat changed after *since* (tombstones included)"""
    if since is not None:
        chats = chat_store.list_chats_updated_since(user_id, to_naive_utc(since))
    else:
        chats = chat_store.list_active_chats(user_id)
    return ChatList(chats=[ChatOut.from_record(c) for c in chats])


@router.post("", response_model=ChatCreateResponse, response_model_exclude_none=True)
def create_chat(
    payload: ChatCreate,
    response: Response,
    user_id: str = Depends(get_current_user),
    chat_store: ChatStore = Depends(get_chat_store),
):
    """Create a chat for a contact, or return the live one that already exists"""
    chat, created = chat_store.create_chat(
        user_id,
        payload.contactId,
        payload.contactName,
        contact_emoji=payload.contactEmoji,
        contact_image=payload.contactImage,
        contact_purpose=payload.contactPurpose,
    )
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return ChatCreateResponse(chat=ChatOut.from_record(chat), isExisting=not created)


@router.get("/{chat_id}", response_model=ChatOut, response_model_exclude_none=True)
def read_chat(
    chat_id: str,
    messages: bool = False,
    user_id: str = Depends(get_current_user),
    chat_store: ChatStore = Depends(get_chat_store),
):
    """Get one chat, optionally with its full message sequence"""
    chat = chat_store.get_chat(user_id, chat_id)
    if chat is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
    history = chat_store.list_messages(user_id, chat_id) if messages else None
    return ChatOut.from_record(chat, history)


@router.patch("/{chat_id}", response_model=ChatOut, response_model_exclude_none=True)
def update_chat(
    chat_id: str,
    payload: ChatUpdate,
    user_id: str = Depends(get_current_user),
    chat_store: ChatStore = Depends(get_chat_store),
):
    """Edit contact metadata; message-derived fields are not editable"""
    chat = _live_chat_or_404(chat_store, user_id, chat_id)
    fields = payload.to_fields()
    if not fields:
        return ChatOut.from_record(chat)
    try:
        updated = chat_store.update_chat(user_id, chat_id, **fields)
    except ChatNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
    return ChatOut.from_record(updated)


@router.delete("/{chat_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_chat(
    chat_id: str,
    user_id: str = Depends(get_current_user),
    chat_store: ChatStore = Depends(get_chat_store),
):
    """Soft-delete a chat; deleting a tombstone again is a no-op"""
    try:
        chat_store.soft_delete_chat(user_id, chat_id)
    except ChatNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@router.get("/{chat_id}/messages", response_model=MessagePage, response_model_exclude_none=True)
def read_messages(
    chat_id: str,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    cursor: Optional[str] = None,
    user_id: str = Depends(get_current_user),
    chat_store: ChatStore = Depends(get_chat_store),
):
    """Page backwards through a chat; pass ``nextCursor`` to get older messages"""
    try:
        page, has_more = chat_store.list_messages_page(user_id, chat_id, limit, cursor=cursor)
    except ChatNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
    return MessagePage(
        messages=[MessageOut.from_record(m) for m in page],
        hasMore=has_more,
        nextCursor=page[0].id if has_more and page else None,
    )


@router.post(
    "/{chat_id}/messages",
    response_model=MessageOut,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
def create_message(
    chat_id: str,
    payload: MessageCreate,
    user_id: str = Depends(get_current_user),
    chat_store: ChatStore = Depends(get_chat_store),
    user_store: UserStore = Depends(get_user_store),
):
    """Append a message with a server timestamp and count it toward today's usage"""
    try:
        message = chat_store.add_message(
            user_id, chat_id, payload.role.value, payload.content, audio_url=payload.audioUrl
        )
    except ChatNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")

    if payload.role.value == "user":
        user_store.increment_usage(user_id, utc_day())
    return MessageOut.from_record(message)


@router.patch("/{chat_id}/messages/{message_id}", response_model=MessageOut, response_model_exclude_none=True)
def update_message(
    chat_id: str,
    message_id: str,
    payload: MessageUpdate,
    user_id: str = Depends(get_current_user),
    chat_store: ChatStore = Depends(get_chat_store),
):
    """Backfill the audio URL of a message"""
    try:
        message = chat_store.update_message(user_id, chat_id, message_id, payload.audioUrl)
    except ChatNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
    except MessageNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return MessageOut.from_record(message)


@router.delete("/{chat_id}/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_message(
    chat_id: str,
    message_id: str,
    user_id: str = Depends(get_current_user),
    chat_store: ChatStore = Depends(get_chat_store),
):
    try:
        chat_store.delete_message(user_id, chat_id, message_id)
    except ChatNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
    except MessageNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
