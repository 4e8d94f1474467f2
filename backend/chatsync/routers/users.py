"""User profile and subscription endpoints."""

import logging

from fastapi import APIRouter
from fastapi import Depends
from fastapi import HTTPException
from fastapi import status

from chatsync.core.factory import get_user_store
from chatsync.core.interfaces import UserStore
from chatsync.dependencies.auth import get_current_user
from chatsync.schemas.api import ProfileOut
from chatsync.schemas.api import ProfileUpdate
from chatsync.schemas.api import SubscriptionOut
from chatsync.schemas.api import UsageOut
from chatsync.utils.time import utc_day

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])


@router.get("/profile", response_model=ProfileOut, response_model_exclude_none=True)
def read_profile(
    user_id: str = Depends(get_current_user),
    user_store: UserStore = Depends(get_user_store),
):
    profile = user_store.get_profile(user_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return ProfileOut.from_record(profile)


@router.put("/profile", response_model=ProfileOut, response_model_exclude_none=True)
def update_profile(
    payload: ProfileUpdate,
    user_id: str = Depends(get_current_user),
    user_store: UserStore = Depends(get_user_store),
):
    """Create or update the caller's profile"""
    profile = user_store.upsert_profile(
        user_id,
        email=payload.email,
        display_name=payload.displayName,
        photo_url=payload.photoUrl,
    )
    return ProfileOut.from_record(profile)


@router.get("/subscription", response_model=SubscriptionOut, response_model_exclude_none=True)
def read_subscription(
    user_id: str = Depends(get_current_user),
    user_store: UserStore = Depends(get_user_store),
):
    """Subscription tier plus today's message usage (free tier when none exists)"""
    day = utc_day()
    usage = UsageOut(day=day, messageCount=user_store.get_usage(user_id, day))
    return SubscriptionOut.from_record(user_store.get_subscription(user_id), usage)
