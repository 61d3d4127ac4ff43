"""Friend endpoints."""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.auth.dependencies import get_current_user
from cowork.database import get_session
from cowork.db.models import FriendRequest, Profile
from cowork.dependencies import get_redis_dep
from cowork.notifications.hub import publish_counts
from cowork.social.friends_service import (
    count_friends,
    list_friends,
    list_incoming_requests,
    respond_to_friend_request,
    send_friend_request,
)
from cowork.social.schemas import (
    FriendCountResponse,
    FriendListResponse,
    FriendProfileResponse,
    FriendRequestResponse,
    RespondFriendRequest,
    SendFriendRequest,
)

router = APIRouter(prefix="/api/v1", tags=["Friends"])


def _profile_response(profile: Profile) -> FriendProfileResponse:
    return FriendProfileResponse(
        id=profile.id,
        username=profile.username,
        display_name=profile.display_name,
        avatar_url=profile.avatar_url,
        color_hex=profile.color_hex,
    )


def _request_response(request: FriendRequest, sender: Profile | None = None) -> FriendRequestResponse:
    return FriendRequestResponse(
        id=request.id,
        sender_id=request.sender_id,
        receiver_id=request.receiver_id,
        status=request.status,
        created_at=request.created_at,
        updated_at=request.updated_at,
        sender=_profile_response(sender) if sender else None,
    )


@router.post("/friends/requests", response_model=FriendRequestResponse, status_code=201)
async def send_request(
    body: SendFriendRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Any = Depends(get_redis_dep),
):
    """Send a friend request."""
    request = await send_friend_request(db, user.id, body.receiver_id)
    await db.commit()
    response = _request_response(request)
    await publish_counts(db, redis, body.receiver_id)
    return response


@router.post("/friends/requests/{request_id}/respond", response_model=FriendRequestResponse)
async def respond_request(
    request_id: uuid.UUID,
    body: RespondFriendRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Any = Depends(get_redis_dep),
):
    """Accept or reject a friend request addressed to the caller."""
    user_id = user.id
    request = await respond_to_friend_request(db, user_id, request_id, body.accept)
    await db.commit()
    response = _request_response(request)
    await publish_counts(db, redis, user_id)
    return response


@router.get("/friends/requests/incoming", response_model=list[FriendRequestResponse])
async def incoming_requests(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Pending requests addressed to the caller."""
    rows = await list_incoming_requests(db, user.id)
    return [_request_response(request, sender) for request, sender in rows]


@router.get("/friends", response_model=FriendListResponse)
async def get_friends(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """The caller's friends."""
    friends = await list_friends(db, user.id)
    return FriendListResponse(friends=[_profile_response(p) for p in friends], total=len(friends))


@router.get("/friends/count", response_model=FriendCountResponse)
async def get_friend_count(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return FriendCountResponse(count=await count_friends(db, user.id))
