"""Pydantic schemas for project, membership and checkpoint endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from cowork.gamification.schemas import UnlockedAchievementResponse

HEX_COLOR = r"^#[0-9a-fA-F]{6}$"


# --- Projects ---


class CreateProjectRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=128)
    description: str | None = Field(None, max_length=2000)
    category: str | None = Field(None, max_length=64)
    color: str | None = Field(None, pattern=HEX_COLOR)
    max_users: int = Field(10, ge=1, le=100)
    is_public: bool = False
    invited_user_ids: list[uuid.UUID] = []


class ProjectResponse(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    title: str
    description: str | None = None
    category: str | None = None
    color: str | None = None
    max_users: int
    is_public: bool
    status: str
    created_at: datetime


class ProjectCreatedResponse(BaseModel):
    project: ProjectResponse
    invited_user_ids: list[uuid.UUID] = []
    unlocked_achievements: list[UnlockedAchievementResponse] = []


class ProjectRoleResponse(BaseModel):
    project_id: uuid.UUID
    role: str | None = None
    is_owner: bool
    is_member: bool
    can_manage: bool


# --- Members ---


class InviteMemberRequest(BaseModel):
    user_id: uuid.UUID
    role: str = "member"


class UpdateMemberRoleRequest(BaseModel):
    role: str


class RespondInvitationRequest(BaseModel):
    accept: bool


class MemberResponse(BaseModel):
    user_id: uuid.UUID
    role: str
    status: str
    member_color: str | None = None
    invited_by: uuid.UUID | None = None
    joined_at: datetime
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None


class ProjectDetailResponse(BaseModel):
    project: ProjectResponse
    members: list[MemberResponse]
    role: str | None = None
    is_owner: bool
    can_manage: bool


class InvitationResultResponse(BaseModel):
    membership: MemberResponse
    unlocked_achievements: list[UnlockedAchievementResponse] = []


# --- Checkpoints ---


class CreateCheckpointRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=256)


class SubmitEvidenceRequest(BaseModel):
    note: str | None = Field(None, max_length=4000)
    image_url: str | None = Field(None, max_length=2048)


class ReviewCheckpointRequest(BaseModel):
    rating: int = Field(..., ge=1, le=10)
    admin_comment: str | None = Field(None, max_length=2000)
    rejection_reason: str | None = Field(None, max_length=2000)


class CheckpointResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    title: str
    order: int
    is_completed: bool
    completed_by: uuid.UUID | None = None
    completed_at: datetime | None = None
    rating: int | None = None
    admin_comment: str | None = None
    rejection_reason: str | None = None
    image_url: str | None = None
    created_at: datetime


class EvidenceSubmittedResponse(BaseModel):
    checkpoint: CheckpointResponse
    evidence_id: uuid.UUID
    unlocked_achievements: list[UnlockedAchievementResponse] = []
