"""Project, membership and checkpoint endpoints.

Every mutating route commits its change first and only then runs the
achievement engine, which commits each unlock on its own.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.auth.dependencies import get_current_user, get_profile_by_id
from cowork.database import get_session
from cowork.db.models import Checkpoint, Profile, Project, ProjectMember
from cowork.dependencies import get_redis_dep
from cowork.gamification.achievement_engine import (
    CHECKPOINT_COMPLETED,
    PROJECT_CREATED,
    PROJECT_JOINED,
    check_and_unlock,
)
from cowork.notifications.hub import publish_counts, publish_counts_many
from cowork.projects.checkpoint_service import (
    create_checkpoint,
    list_checkpoints,
    review_checkpoint,
    submit_evidence,
)
from cowork.projects.membership_service import (
    active_member_ids,
    invite_member,
    leave_project,
    remove_member,
    respond_to_invitation,
    update_member_role,
)
from cowork.projects.policies import load_access
from cowork.projects.schemas import (
    CheckpointResponse,
    CreateCheckpointRequest,
    CreateProjectRequest,
    EvidenceSubmittedResponse,
    InvitationResultResponse,
    InviteMemberRequest,
    MemberResponse,
    ProjectCreatedResponse,
    ProjectDetailResponse,
    ProjectResponse,
    ProjectRoleResponse,
    RespondInvitationRequest,
    ReviewCheckpointRequest,
    SubmitEvidenceRequest,
    UpdateMemberRoleRequest,
)
from cowork.projects.service import create_project, get_project_detail

router = APIRouter(prefix="/api/v1", tags=["Projects"])


# ── Helpers ──


def _project_response(project: Project) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        owner_id=project.owner_id,
        title=project.title,
        description=project.description,
        category=project.category,
        color=project.color,
        max_users=project.max_users,
        is_public=project.is_public,
        status=project.status,
        created_at=project.created_at,
    )


def _member_response(membership: ProjectMember, profile: Profile | None = None) -> MemberResponse:
    return MemberResponse(
        user_id=membership.user_id,
        role=membership.role,
        status=membership.status,
        member_color=membership.member_color,
        invited_by=membership.invited_by,
        joined_at=membership.joined_at,
        username=profile.username if profile else None,
        display_name=profile.display_name if profile else None,
        avatar_url=profile.avatar_url if profile else None,
    )


def _checkpoint_response(checkpoint: Checkpoint) -> CheckpointResponse:
    return CheckpointResponse(
        id=checkpoint.id,
        project_id=checkpoint.project_id,
        title=checkpoint.title,
        order=checkpoint.order,
        is_completed=checkpoint.is_completed,
        completed_by=checkpoint.completed_by,
        completed_at=checkpoint.completed_at,
        rating=checkpoint.rating,
        admin_comment=checkpoint.admin_comment,
        rejection_reason=checkpoint.rejection_reason,
        image_url=checkpoint.image_url,
        created_at=checkpoint.created_at,
    )


# ── Projects ──


@router.post("/projects", response_model=ProjectCreatedResponse, status_code=201)
async def create_new_project(
    body: CreateProjectRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Any = Depends(get_redis_dep),
):
    """Create a project; the caller becomes its owner and admin."""
    user_id = user.id
    project, invitations = await create_project(
        db,
        owner_id=user_id,
        title=body.title,
        description=body.description,
        category=body.category,
        color=body.color,
        max_users=body.max_users,
        is_public=body.is_public,
        invited_user_ids=body.invited_user_ids,
    )
    await db.commit()
    project_data = _project_response(project)
    invited_ids = [inv.user_id for inv in invitations]

    unlocked = await check_and_unlock(db, user_id, PROJECT_CREATED, redis)
    await publish_counts_many(db, redis, invited_ids)
    return ProjectCreatedResponse(
        project=project_data,
        invited_user_ids=invited_ids,
        unlocked_achievements=unlocked,
    )


@router.get("/projects/{project_id}", response_model=ProjectDetailResponse)
async def get_project(
    project_id: uuid.UUID,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    access, members = await get_project_detail(db, user.id, project_id)
    return ProjectDetailResponse(
        project=_project_response(access.project),
        members=[_member_response(m, p) for m, p in members],
        role=access.role,
        is_owner=access.is_owner,
        can_manage=access.can_manage,
    )


@router.get("/projects/{project_id}/role", response_model=ProjectRoleResponse)
async def get_my_role(
    project_id: uuid.UUID,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """The caller's standing in a project (presentation hint for the client)."""
    access = await load_access(db, project_id, user.id)
    return ProjectRoleResponse(
        project_id=project_id,
        role=access.role,
        is_owner=access.is_owner,
        is_member=access.is_active_member,
        can_manage=access.can_manage,
    )


# ── Members ──


@router.post("/projects/{project_id}/members", response_model=MemberResponse, status_code=201)
async def invite(
    project_id: uuid.UUID,
    body: InviteMemberRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Any = Depends(get_redis_dep),
):
    """Invite a user (owner, admins and managers only)."""
    membership = await invite_member(db, user.id, project_id, body.user_id, body.role)
    await db.commit()
    response = _member_response(membership, await get_profile_by_id(db, body.user_id))
    await publish_counts(db, redis, body.user_id)
    return response


@router.patch("/projects/{project_id}/members/{member_id}", response_model=MemberResponse)
async def change_role(
    project_id: uuid.UUID,
    member_id: uuid.UUID,
    body: UpdateMemberRoleRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    membership = await update_member_role(db, user.id, project_id, member_id, body.role)
    await db.commit()
    return _member_response(membership, await get_profile_by_id(db, member_id))


@router.delete("/projects/{project_id}/members/{member_id}", status_code=200)
async def remove(
    project_id: uuid.UUID,
    member_id: uuid.UUID,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Any = Depends(get_redis_dep),
):
    """Remove a member (owner, admins and managers only)."""
    await remove_member(db, user.id, project_id, member_id)
    await db.commit()
    await publish_counts(db, redis, member_id)
    return {"detail": "Member removed"}


@router.post("/projects/{project_id}/invitation/respond", response_model=InvitationResultResponse)
async def respond_invitation(
    project_id: uuid.UUID,
    body: RespondInvitationRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Any = Depends(get_redis_dep),
):
    """Accept or decline a pending invitation."""
    user_id = user.id
    membership = await respond_to_invitation(db, user_id, project_id, body.accept)
    await db.commit()
    membership_data = _member_response(membership, await get_profile_by_id(db, user_id))

    unlocked = []
    if body.accept:
        unlocked = await check_and_unlock(db, user_id, PROJECT_JOINED, redis)
    await publish_counts(db, redis, user_id)
    return InvitationResultResponse(membership=membership_data, unlocked_achievements=unlocked)


@router.post("/projects/{project_id}/leave", status_code=200)
async def leave(
    project_id: uuid.UUID,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Any = Depends(get_redis_dep),
):
    user_id = user.id
    await leave_project(db, user_id, project_id)
    await db.commit()
    await publish_counts(db, redis, user_id)
    return {"detail": "You left the project"}


# ── Checkpoints ──


@router.post("/projects/{project_id}/checkpoints", response_model=CheckpointResponse, status_code=201)
async def add_checkpoint(
    project_id: uuid.UUID,
    body: CreateCheckpointRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    checkpoint = await create_checkpoint(db, user.id, project_id, body.title)
    await db.commit()
    return _checkpoint_response(checkpoint)


@router.get("/projects/{project_id}/checkpoints", response_model=list[CheckpointResponse])
async def get_checkpoints(
    project_id: uuid.UUID,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    return [_checkpoint_response(c) for c in await list_checkpoints(db, user.id, project_id)]


@router.post("/checkpoints/{checkpoint_id}/evidence", response_model=EvidenceSubmittedResponse)
async def add_evidence(
    checkpoint_id: uuid.UUID,
    body: SubmitEvidenceRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Any = Depends(get_redis_dep),
):
    """Submit evidence; completes the checkpoint for the caller."""
    user_id = user.id
    checkpoint, evidence = await submit_evidence(db, user_id, checkpoint_id, body.note, body.image_url)
    await db.commit()
    checkpoint_data = _checkpoint_response(checkpoint)
    evidence_id = evidence.id
    members = await active_member_ids(db, checkpoint_data.project_id)

    unlocked = await check_and_unlock(db, user_id, CHECKPOINT_COMPLETED, redis)
    await publish_counts_many(db, redis, members)
    return EvidenceSubmittedResponse(
        checkpoint=checkpoint_data,
        evidence_id=evidence_id,
        unlocked_achievements=unlocked,
    )


@router.post("/checkpoints/{checkpoint_id}/review", response_model=CheckpointResponse)
async def review(
    checkpoint_id: uuid.UUID,
    body: ReviewCheckpointRequest,
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    redis: Any = Depends(get_redis_dep),
):
    """Rate a completed checkpoint; a rejection reason sends it back for rework."""
    outcome = await review_checkpoint(
        db,
        user.id,
        checkpoint_id,
        rating=body.rating,
        admin_comment=body.admin_comment,
        rejection_reason=body.rejection_reason,
    )
    await db.commit()
    response = _checkpoint_response(outcome.checkpoint)
    if outcome.rejected:
        await publish_counts_many(db, redis, await active_member_ids(db, response.project_id))
    return response
