"""Pydantic schemas for the notification inbox."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel


class ProfileSummary(BaseModel):
    id: uuid.UUID
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None


class FriendRequestItem(BaseModel):
    id: uuid.UUID
    sender_id: uuid.UUID
    status: str
    created_at: datetime
    sender: ProfileSummary | None = None


class ProjectInvitationItem(BaseModel):
    project_id: uuid.UUID
    project_title: str
    project_color: str | None = None
    role: str
    invited_at: datetime
    inviter: ProfileSummary | None = None


class RejectedCheckpointItem(BaseModel):
    id: uuid.UUID
    title: str
    project_id: uuid.UUID
    project_title: str
    rating: int | None = None
    admin_comment: str | None = None
    rejection_reason: str
    created_at: datetime


class SystemNotificationItem(BaseModel):
    id: int
    type: str
    title: str
    message: str | None = None
    url: str | None = None
    is_read: bool
    created_at: datetime


class InboxResponse(BaseModel):
    friend_requests: list[FriendRequestItem]
    project_invitations: list[ProjectInvitationItem]
    rejected_checkpoints: list[RejectedCheckpointItem]
    system_notifications: list[SystemNotificationItem]
    pending_count: int


class InboxCountResponse(BaseModel):
    friend_requests: int
    project_invitations: int
    rejected_checkpoints: int
    system_notifications: int
    total: int
