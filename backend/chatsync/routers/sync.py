"""Sync endpoints.

``POST`` applies a client change-set and returns the converged snapshot;
``GET`` is the read-only variant.  Both are authenticated and rate limited
before any store access.
"""

import logging

from fastapi import APIRouter
from fastapi import Depends
from fastapi import HTTPException
from fastapi import status

from chatsync.core.factory import get_sync_service
from chatsync.dependencies.auth import check_sync_rate_limit
from chatsync.schemas.api import ChatOut
from chatsync.schemas.api import SyncRequest
from chatsync.schemas.api import SyncResponse
from chatsync.services.sync_service import SyncResult
from chatsync.services.sync_service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["sync"],
)


def _to_response(result: SyncResult) -> SyncResponse:
    return SyncResponse(
        chats=[ChatOut.from_record(chat, messages) for chat, messages in result.chats],
        syncedAt=result.synced_at,
        errors=result.errors or None,
    )


@router.post("", response_model=SyncResponse, response_model_exclude_none=True)
def sync_chats(
    request: SyncRequest,
    user_id: str = Depends(check_sync_rate_limit),
    sync_service: SyncService = Depends(get_sync_service),
):
    """Apply the local change-set, then return every live chat with messages."""
    try:
        result = sync_service.sync(user_id, request.localChats, last_sync_at=request.lastSyncAt)
    except Exception as e:
        logger.error(f"Sync failed for user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to sync")
    return _to_response(result)


@router.get("", response_model=SyncResponse, response_model_exclude_none=True)
def get_snapshot(
    user_id: str = Depends(check_sync_rate_limit),
    sync_service: SyncService = Depends(get_sync_service),
):
    """Return the current server state without applying anything."""
    try:
        result = sync_service.snapshot(user_id)
    except Exception as e:
        logger.error(f"Snapshot failed for user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to sync")
    return _to_response(result)
