"""arq jobs: push queue draining and membership cleanup.

Runs as a separate process next to the API:

    arq cowork.workers.settings.WorkerSettings
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from cowork.config import get_settings
from cowork.database import close_db, get_session_factory, init_db
from cowork.db.models import utcnow
from cowork.projects.membership_service import purge_rejected_memberships
from cowork.push.service import PushService, WebPushSender, push_configured

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Open the database engine for the worker process."""
    settings = get_settings()
    await init_db(settings.database_url)
    ctx["session_factory"] = get_session_factory()
    logger.info("COWork worker started")


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    await close_db()
    logger.info("COWork worker shut down")


async def drain_notification_queue(ctx: dict) -> dict:  # type: ignore[type-arg]
    """Deliver the next batch of queued push notifications (every minute)."""
    if not push_configured():
        logger.debug("Push not configured; skipping queue drain")
        return {"message": "Push notification service not configured"}

    async with ctx["session_factory"]() as db:
        result = await PushService(db, WebPushSender.from_settings()).drain_queue()
        await db.commit()
    return result


def rejected_cutoff(now: datetime | None = None) -> datetime:
    days = get_settings().rejected_membership_retention_days
    return (now or utcnow()) - timedelta(days=days)


async def purge_memberships(ctx: dict) -> int:  # type: ignore[type-arg]
    """Delete declined invitations past the retention window (daily)."""
    async with ctx["session_factory"]() as db:
        deleted = await purge_rejected_memberships(db, rejected_cutoff())
        await db.commit()
    return deleted
