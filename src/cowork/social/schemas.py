"""Pydantic schemas for friend endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel


class SendFriendRequest(BaseModel):
    receiver_id: uuid.UUID


class RespondFriendRequest(BaseModel):
    accept: bool


class FriendProfileResponse(BaseModel):
    id: uuid.UUID
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    color_hex: str | None = None


class FriendRequestResponse(BaseModel):
    id: uuid.UUID
    sender_id: uuid.UUID
    receiver_id: uuid.UUID
    status: str
    created_at: datetime
    updated_at: datetime
    sender: FriendProfileResponse | None = None


class FriendListResponse(BaseModel):
    friends: list[FriendProfileResponse]
    total: int


class FriendCountResponse(BaseModel):
    count: int
