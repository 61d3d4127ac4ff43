"""Pydantic schemas for push endpoints."""

from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PushSendRequest(BaseModel):
    """Internal fan-out request. Required fields are checked by the route (400, not 422)."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: uuid.UUID | None = Field(None, alias="userId")
    title: str | None = None
    body: str | None = None
    url: str | None = None
    data: dict[str, Any] | None = None
    tag: str | None = None


class SubscriptionKeys(BaseModel):
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class SubscribeRequest(BaseModel):
    """Matches the browser's ``PushSubscription.toJSON()`` shape."""

    endpoint: str = Field(..., min_length=1, max_length=2048)
    keys: SubscriptionKeys


class UnsubscribeRequest(BaseModel):
    endpoint: str = Field(..., min_length=1, max_length=2048)


class SubscriptionResponse(BaseModel):
    id: int
    endpoint: str
