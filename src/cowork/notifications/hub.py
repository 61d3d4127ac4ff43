"""Publish inbox changes over Redis pub/sub for per-user WebSocket delivery.

The bridge pattern-subscribes to ``ws:user:*`` and routes each message to all
of the user's open WebSocket connections, so clients observe one stream
instead of polling the inbox.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from cowork.notifications.aggregator import NotificationAggregator
from cowork.redis_client import publish_json

EVENT_COUNTS = "notification_counts"
EVENT_ACHIEVEMENT = "achievement_unlocked"


def user_channel(user_id: uuid.UUID | str) -> str:
    return f"ws:user:{user_id}"


async def publish_counts(db: AsyncSession, redis: Any | None, user_id: uuid.UUID) -> bool:
    """Recompute the badge counts for ``user_id`` and publish them."""
    if redis is None:
        return False
    counts = await NotificationAggregator(db).counts(user_id)
    return await publish_json(redis, user_channel(user_id), {"event": EVENT_COUNTS, "data": counts})


async def publish_counts_many(db: AsyncSession, redis: Any | None, user_ids: list[uuid.UUID]) -> None:
    if redis is None:
        return
    for user_id in dict.fromkeys(user_ids):
        await publish_counts(db, redis, user_id)


async def publish_achievement_unlocked(redis: Any | None, user_id: uuid.UUID, achievement: dict[str, Any]) -> bool:
    return await publish_json(redis, user_channel(user_id), {"event": EVENT_ACHIEVEMENT, "data": achievement})
