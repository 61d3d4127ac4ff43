"""
Web push delivery.

Fans a message out to every browser subscription of a user through
pywebpush, pruning subscriptions the push service reports as gone (410),
and drains the ``notification_queue`` table in batches.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog
from pywebpush import WebPushException, webpush
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.config import get_settings
from cowork.database import upsert_insert
from cowork.db.models import NotificationQueueItem, PushSubscription, utcnow

logger = structlog.get_logger()

PUSH_ICON = "/icon-192.png"
PUSH_BADGE = "/badge-72.png"
DEFAULT_TAG = "notification"


class PushNotConfiguredError(Exception):
    """VAPID keys are missing; nothing can be delivered."""


@dataclass
class PushMessage:
    title: str
    body: str
    url: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    tag: str | None = None

    def to_payload(self) -> str:
        return json.dumps({
            "title": self.title,
            "body": self.body,
            "icon": PUSH_ICON,
            "badge": PUSH_BADGE,
            "url": self.url or get_settings().push_default_url,
            "tag": self.tag or DEFAULT_TAG,
            "data": self.data or {},
        })


def push_configured() -> bool:
    settings = get_settings()
    return bool(settings.vapid_public_key and settings.vapid_private_key)


class WebPushSender:
    """Send one payload to one subscription via pywebpush (blocking call run in a thread)."""

    def __init__(self, private_key: str, subject: str) -> None:
        self.private_key = private_key
        self.subject = subject

    @classmethod
    def from_settings(cls) -> WebPushSender:
        if not push_configured():
            raise PushNotConfiguredError("Push notification service not configured")
        settings = get_settings()
        return cls(private_key=settings.vapid_private_key, subject=settings.vapid_subject)

    async def send(self, subscription: PushSubscription, payload: str) -> None:
        """Raises WebPushException when the push service rejects the message."""
        await asyncio.to_thread(
            webpush,
            subscription_info={
                "endpoint": subscription.endpoint,
                "keys": {"p256dh": subscription.p256dh_key, "auth": subscription.auth_key},
            },
            data=payload,
            vapid_private_key=self.private_key,
            vapid_claims={"sub": self.subject},
        )


def _status_code(exc: WebPushException) -> int | None:
    response = getattr(exc, "response", None)
    return getattr(response, "status_code", None) if response is not None else None


class PushService:
    """Subscription fan-out and queue draining."""

    def __init__(self, db: AsyncSession, sender: WebPushSender | None = None) -> None:
        self.db = db
        self.sender = sender or WebPushSender.from_settings()

    async def deliver(self, user_id: uuid.UUID, message: PushMessage) -> dict[str, Any] | None:
        """Send ``message`` to every subscription of ``user_id``.

        Returns None when the user has no subscriptions, otherwise a report
        ``{success, sent, failed, results}``.
        """
        subscriptions = await list_subscriptions(self.db, user_id)
        if not subscriptions:
            return None

        payload = message.to_payload()
        results: list[dict[str, Any]] = []
        for sub in subscriptions:
            endpoint = sub.endpoint
            try:
                await self.sender.send(sub, payload)
                results.append({"endpoint": endpoint, "success": True})
            except WebPushException as exc:
                status = _status_code(exc)
                if status == 410:
                    await self.db.delete(sub)
                    logger.info("push_subscription_removed", user_id=str(user_id), endpoint=endpoint)
                    results.append({"endpoint": endpoint, "success": False, "removed": True})
                else:
                    logger.warning("push_send_failed", user_id=str(user_id), status=status, error=str(exc))
                    results.append({"endpoint": endpoint, "success": False, "error": str(exc)})
            except Exception as exc:
                # Transport errors (connection refused, timeouts) are not wrapped by pywebpush
                logger.warning("push_send_failed", user_id=str(user_id), endpoint=endpoint, error=str(exc))
                results.append({"endpoint": endpoint, "success": False, "error": str(exc)})

        await self.db.flush()
        sent = sum(1 for r in results if r["success"])
        return {"success": True, "sent": sent, "failed": len(results) - sent, "results": results}

    async def drain_queue(self, batch_size: int | None = None) -> dict[str, Any]:
        """Deliver the oldest unsent queue items and mark them sent.

        An item counts as processed once its fan-out ran to completion,
        whether or not any subscription accepted it.
        """
        limit = batch_size or get_settings().push_queue_batch_size
        result = await self.db.execute(
            select(NotificationQueueItem)
            .where(NotificationQueueItem.sent.is_(False))
            .order_by(NotificationQueueItem.created_at.asc(), NotificationQueueItem.id.asc())
            .limit(limit)
        )
        items = list(result.scalars().all())
        if not items:
            return {"message": "No pending notifications"}

        successful = 0
        for item in items:
            data = item.data or {}
            message = PushMessage(title=item.title, body=item.body, url=data.get("url"), data=data)
            try:
                await self.deliver(item.user_id, message)
            except Exception:
                logger.exception("push_queue_item_failed", item_id=item.id)
                continue
            item.sent = True
            item.sent_at = utcnow()
            successful += 1

        await self.db.flush()
        logger.info("push_queue_drained", processed=len(items), successful=successful)
        return {"processed": len(items), "successful": successful}


# ---------------------------------------------------------------------------
# Subscriptions and queue
# ---------------------------------------------------------------------------


async def list_subscriptions(db: AsyncSession, user_id: uuid.UUID) -> list[PushSubscription]:
    result = await db.execute(
        select(PushSubscription).where(PushSubscription.user_id == user_id).order_by(PushSubscription.id)
    )
    return list(result.scalars().all())


async def save_subscription(
    db: AsyncSession,
    user_id: uuid.UUID,
    endpoint: str,
    p256dh_key: str,
    auth_key: str,
) -> PushSubscription:
    """Register a browser subscription; an existing endpoint is re-bound to this user (upsert on ``endpoint``)."""
    insert = upsert_insert(db)
    stmt = insert(PushSubscription).values(
        user_id=user_id,
        endpoint=endpoint,
        p256dh_key=p256dh_key,
        auth_key=auth_key,
        created_at=utcnow(),
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["endpoint"],
        set_={
            "user_id": stmt.excluded.user_id,
            "p256dh_key": stmt.excluded.p256dh_key,
            "auth_key": stmt.excluded.auth_key,
        },
    ).returning(PushSubscription)
    result = await db.execute(stmt, execution_options={"populate_existing": True})
    return result.scalar_one()


async def delete_subscription(db: AsyncSession, user_id: uuid.UUID, endpoint: str) -> bool:
    result = await db.execute(
        delete(PushSubscription).where(
            PushSubscription.user_id == user_id,
            PushSubscription.endpoint == endpoint,
        )
    )
    await db.flush()
    return result.rowcount > 0


async def enqueue_push(
    db: AsyncSession,
    user_id: uuid.UUID,
    title: str,
    body: str,
    data: dict[str, Any] | None = None,
) -> NotificationQueueItem:
    """Queue a push for the next drain (flushed, not committed)."""
    item = NotificationQueueItem(
        user_id=user_id,
        title=title,
        body=body,
        data=data or {},
        sent=False,
        created_at=utcnow(),
    )
    db.add(item)
    await db.flush()
    return item
