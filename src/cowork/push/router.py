"""Push endpoints.

``/api/push/send`` is service-to-service (``X-Internal-Token``); the
subscription routes are called by the signed-in browser.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.auth.dependencies import get_current_user, require_internal_token
from cowork.database import get_session
from cowork.db.models import Profile
from cowork.push.schemas import (
    PushSendRequest,
    SubscribeRequest,
    SubscriptionResponse,
    UnsubscribeRequest,
)
from cowork.push.service import (
    PushMessage,
    PushService,
    WebPushSender,
    delete_subscription,
    push_configured,
    save_subscription,
)

internal_router = APIRouter(
    prefix="/api/push",
    tags=["Push"],
    dependencies=[Depends(require_internal_token)],
)
router = APIRouter(prefix="/api/v1", tags=["Push"])

NOT_CONFIGURED = {"error": "Push notification service not configured"}


def get_push_sender() -> WebPushSender | None:
    """The configured sender, or None when VAPID keys are missing."""
    if not push_configured():
        return None
    return WebPushSender.from_settings()


@internal_router.post("/send")
async def send_push(
    body: PushSendRequest,
    db: AsyncSession = Depends(get_session),
    sender: WebPushSender | None = Depends(get_push_sender),
):
    """Fan a notification out to every subscription of a user."""
    if sender is None:
        return JSONResponse(status_code=500, content=NOT_CONFIGURED)
    if not body.user_id or not body.title or not body.body:
        return JSONResponse(status_code=400, content={"error": "Missing required fields"})

    message = PushMessage(title=body.title, body=body.body, url=body.url, data=body.data or {}, tag=body.tag)
    report = await PushService(db, sender).deliver(body.user_id, message)
    await db.commit()
    if report is None:
        return {"message": "No subscriptions found for user"}
    return report


@internal_router.get("/send")
async def drain_queue(
    db: AsyncSession = Depends(get_session),
    sender: WebPushSender | None = Depends(get_push_sender),
):
    """Deliver the next batch of queued notifications."""
    if sender is None:
        return JSONResponse(status_code=500, content=NOT_CONFIGURED)
    result = await PushService(db, sender).drain_queue()
    await db.commit()
    return result


@router.post("/push/subscriptions", response_model=SubscriptionResponse, status_code=201)
async def subscribe(
    body: SubscribeRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Register (or re-bind) a browser push subscription."""
    sub = await save_subscription(db, user.id, body.endpoint, body.keys.p256dh, body.keys.auth)
    await db.commit()
    return SubscriptionResponse(id=sub.id, endpoint=sub.endpoint)


@router.delete("/push/subscriptions", status_code=200)
async def unsubscribe(
    body: UnsubscribeRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    found = await delete_subscription(db, user.id, body.endpoint)
    if not found:
        raise HTTPException(status_code=404, detail="Subscription not found")
    await db.commit()
    return {"detail": "Subscription removed"}
