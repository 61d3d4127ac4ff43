"""System notification persistence.

System notifications complement the derived inbox items (friend requests,
invitations, rejected checkpoints) with one-off notices:

- ``checkpoint_rejected``: a reviewer sent a checkpoint back for rework
- ``achievement_unlocked``: the rule engine recorded a new achievement
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.db.models import Notification, utcnow

logger = logging.getLogger(__name__)

VALID_TYPES = {"checkpoint_rejected", "achievement_unlocked", "project_invitation", "system"}


async def create_notification(
    db: AsyncSession,
    user_id: uuid.UUID,
    type_: str,
    title: str,
    message: str | None = None,
    url: str | None = None,
) -> Notification:
    """Persist a system notification (flushed, not committed)."""
    if type_ not in VALID_TYPES:
        raise ValueError(f"Invalid notification type: {type_}. Must be one of {VALID_TYPES}")

    notification = Notification(
        user_id=user_id,
        type=type_,
        title=title,
        message=message,
        url=url,
        is_read=False,
        created_at=utcnow(),
    )
    db.add(notification)
    await db.flush()
    return notification


async def list_notifications(db: AsyncSession, user_id: uuid.UUID, limit: int = 20) -> list[Notification]:
    """Latest system notifications, most recent first."""
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def mark_as_read(db: AsyncSession, user_id: uuid.UUID, notification_id: int) -> bool:
    """Mark a single notification as read. Returns True if found."""
    result = await db.execute(
        update(Notification)
        .where(Notification.id == notification_id, Notification.user_id == user_id)
        .values(is_read=True)
    )
    await db.flush()
    return result.rowcount > 0


async def mark_all_as_read(db: AsyncSession, user_id: uuid.UUID) -> int:
    """Mark all unread notifications as read. Returns count updated."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    await db.flush()
    return result.rowcount


async def get_unread_count(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
    )
    return result.scalar_one()
