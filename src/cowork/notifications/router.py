"""Notification inbox endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.auth.dependencies import get_current_user
from cowork.database import get_session
from cowork.db.models import Profile
from cowork.dependencies import get_redis_dep
from cowork.exceptions import ServiceUnavailableError
from cowork.notifications.aggregator import NotificationAggregator
from cowork.notifications.hub import publish_counts
from cowork.notifications.schemas import InboxCountResponse, InboxResponse
from cowork.notifications.service import mark_all_as_read, mark_as_read

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Notifications"])


@router.get("/notifications/inbox", response_model=InboxResponse)
async def get_inbox(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Everything waiting for the caller: friend requests, invitations, rejected checkpoints, notices."""
    user_id = user.id
    try:
        inbox = await NotificationAggregator(db).collect(user_id)
    except Exception as e:
        logger.exception("Failed to load notifications for %s", user_id)
        raise ServiceUnavailableError("Failed to load notifications") from e

    return InboxResponse(
        friend_requests=inbox.friend_requests,
        project_invitations=inbox.project_invitations,
        rejected_checkpoints=inbox.rejected_checkpoints,
        system_notifications=inbox.system_notifications,
        pending_count=inbox.pending_count,
    )


@router.get("/notifications/inbox/count", response_model=InboxCountResponse)
async def get_inbox_count(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Badge counts per category."""
    return InboxCountResponse(**await NotificationAggregator(db).counts(user.id))


@router.post("/notifications/{notification_id}/read", status_code=200)
async def mark_notification_read(
    notification_id: int,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Any = Depends(get_redis_dep),
):
    """Mark a system notification as read."""
    user_id = user.id
    found = await mark_as_read(db, user_id, notification_id)
    if not found:
        raise HTTPException(status_code=404, detail="Notification not found")
    await db.commit()
    await publish_counts(db, redis, user_id)
    return {"detail": "Notification marked as read"}


@router.post("/notifications/read-all", status_code=200)
async def mark_all_read(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Any = Depends(get_redis_dep),
):
    """Mark all system notifications as read."""
    user_id = user.id
    count = await mark_all_as_read(db, user_id)
    await db.commit()
    await publish_counts(db, redis, user_id)
    return {"detail": f"Marked {count} notifications as read"}
