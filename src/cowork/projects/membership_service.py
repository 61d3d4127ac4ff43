"""Project membership state machine.

    (no row) --invite--> pending --accept--> active --leave--> left
                            |                   \\--remove--> (deleted)
                            \\--decline--> rejected --purge--> (deleted)

Rules:
- Only the owner, admins and managers invite, remove and change roles
- Only the owner and admins grant or revoke the admin role
- The owner can neither leave nor be removed, and keeps the admin role
- Active members are capped at ``project.max_users``
- ``rejected`` and ``left`` rows are only revived by a fresh invitation
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.auth.dependencies import get_profile_by_id
from cowork.db.models import MemberRole, MemberStatus, Profile, Project, ProjectMember, utcnow
from cowork.exceptions import ConflictError, InvalidOperationError, NotFoundError
from cowork.projects.policies import get_membership, get_project, require_manager, require_role_grant

logger = logging.getLogger(__name__)

VALID_ROLES = {r.value for r in MemberRole}


def _validate_role(role: str) -> str:
    if role not in VALID_ROLES:
        raise InvalidOperationError(f"Invalid role: {role}. Must be one of {sorted(VALID_ROLES)}")
    return role


async def count_active_members(db: AsyncSession, project_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(ProjectMember)
        .where(
            ProjectMember.project_id == project_id,
            ProjectMember.status == MemberStatus.ACTIVE.value,
        )
    )
    return result.scalar_one()


async def active_member_ids(db: AsyncSession, project_id: uuid.UUID) -> list[uuid.UUID]:
    result = await db.execute(
        select(ProjectMember.user_id).where(
            ProjectMember.project_id == project_id,
            ProjectMember.status == MemberStatus.ACTIVE.value,
        )
    )
    return list(result.scalars().all())


async def list_members(db: AsyncSession, project_id: uuid.UUID) -> list[tuple[ProjectMember, Profile | None]]:
    """Active and pending memberships with their profiles."""
    result = await db.execute(
        select(ProjectMember, Profile)
        .outerjoin(Profile, Profile.id == ProjectMember.user_id)
        .where(
            ProjectMember.project_id == project_id,
            ProjectMember.status.in_([MemberStatus.ACTIVE.value, MemberStatus.PENDING.value]),
        )
        .order_by(ProjectMember.joined_at.asc())
    )
    return [(membership, profile) for membership, profile in result.all()]


async def _ensure_capacity(db: AsyncSession, project: Project) -> None:
    if await count_active_members(db, project.id) >= project.max_users:
        raise InvalidOperationError(f"This project is full ({project.max_users} members maximum)")


async def invite_member(
    db: AsyncSession,
    actor_id: uuid.UUID,
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    role: str = MemberRole.MEMBER.value,
) -> ProjectMember:
    """Invite ``user_id`` to the project as a pending member."""
    access = await require_manager(db, project_id, actor_id)
    _validate_role(role)
    require_role_grant(access, role)

    if await get_profile_by_id(db, user_id) is None:
        raise NotFoundError("User not found")

    existing = await get_membership(db, project_id, user_id)
    if access.project.owner_id == user_id or (
        existing is not None and existing.status == MemberStatus.ACTIVE.value
    ):
        raise ConflictError("User is already a member of this project")
    if existing is not None and existing.status == MemberStatus.PENDING.value:
        raise ConflictError("User already has a pending invitation to this project")

    await _ensure_capacity(db, access.project)

    now = utcnow()
    if existing is None:
        membership = ProjectMember(
            project_id=project_id,
            user_id=user_id,
            role=role,
            status=MemberStatus.PENDING.value,
            invited_by=actor_id,
            joined_at=now,
            updated_at=now,
        )
        db.add(membership)
    else:
        # Stale rejected/left row: reset it into a fresh invitation
        membership = existing
        membership.role = role
        membership.status = MemberStatus.PENDING.value
        membership.invited_by = actor_id
        membership.member_color = None
        membership.joined_at = now
        membership.updated_at = now

    try:
        await db.flush()
    except IntegrityError:
        # A concurrent invite for the same user won the insert
        await db.rollback()
        raise ConflictError("User already has a pending invitation to this project") from None
    logger.info("User %s invited to project %s by %s (role=%s)", user_id, project_id, actor_id, role)
    return membership


async def respond_to_invitation(
    db: AsyncSession,
    user_id: uuid.UUID,
    project_id: uuid.UUID,
    accept: bool,
) -> ProjectMember:
    """Accept (pending -> active) or decline (pending -> rejected) an invitation."""
    project = await get_project(db, project_id)
    if project is None:
        raise NotFoundError("Project not found")

    pending = await get_membership(db, project_id, user_id)
    if pending is None or pending.status != MemberStatus.PENDING.value:
        raise NotFoundError("No pending invitation for this project")

    if accept:
        await _ensure_capacity(db, project)

    now = utcnow()
    values: dict[str, object] = {"updated_at": now}
    if accept:
        values.update(status=MemberStatus.ACTIVE.value, joined_at=now)
    else:
        values.update(status=MemberStatus.REJECTED.value)

    result = await db.execute(
        update(ProjectMember)
        .where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
            ProjectMember.status == MemberStatus.PENDING.value,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("No pending invitation for this project")

    membership = await get_membership(db, project_id, user_id)
    await db.refresh(membership)
    logger.info(
        "User %s %s invitation to project %s",
        user_id,
        "accepted" if accept else "declined",
        project_id,
    )
    return membership


async def leave_project(db: AsyncSession, user_id: uuid.UUID, project_id: uuid.UUID) -> ProjectMember:
    """Active member leaves; the row stays as ``left``."""
    project = await get_project(db, project_id)
    if project is None:
        raise NotFoundError("Project not found")
    if project.owner_id == user_id:
        raise InvalidOperationError("The project owner cannot leave the project")

    membership = await get_membership(db, project_id, user_id)
    if membership is None or membership.status != MemberStatus.ACTIVE.value:
        raise NotFoundError("You are not an active member of this project")

    membership.status = MemberStatus.LEFT.value
    membership.updated_at = utcnow()
    await db.flush()
    logger.info("User %s left project %s", user_id, project_id)
    return membership


async def remove_member(
    db: AsyncSession,
    actor_id: uuid.UUID,
    project_id: uuid.UUID,
    user_id: uuid.UUID,
) -> None:
    """Delete a membership row (any status except the owner's)."""
    access = await require_manager(db, project_id, actor_id)
    if access.project.owner_id == user_id:
        raise InvalidOperationError("The project owner cannot be removed")

    membership = await get_membership(db, project_id, user_id)
    if membership is None:
        raise NotFoundError("Member not found")

    await db.delete(membership)
    await db.flush()
    logger.info("User %s removed from project %s by %s", user_id, project_id, actor_id)


async def update_member_role(
    db: AsyncSession,
    actor_id: uuid.UUID,
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    role: str,
) -> ProjectMember:
    access = await require_manager(db, project_id, actor_id)
    _validate_role(role)
    if access.project.owner_id == user_id:
        raise InvalidOperationError("The project owner's role cannot be changed")

    membership = await get_membership(db, project_id, user_id)
    if membership is None or membership.status not in (MemberStatus.ACTIVE.value, MemberStatus.PENDING.value):
        raise NotFoundError("Member not found")
    require_role_grant(access, role, membership.role)

    membership.role = role
    membership.updated_at = utcnow()
    await db.flush()
    logger.info("User %s role in project %s set to %s by %s", user_id, project_id, role, actor_id)
    return membership


async def purge_rejected_memberships(db: AsyncSession, older_than: datetime) -> int:
    """Delete declined invitations last touched before ``older_than``. Returns rows deleted."""
    result = await db.execute(
        delete(ProjectMember).where(
            ProjectMember.status == MemberStatus.REJECTED.value,
            ProjectMember.updated_at < older_than,
        )
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    if result.rowcount:
        logger.info("Purged %d rejected memberships older than %s", result.rowcount, older_than.isoformat())
    return result.rowcount
