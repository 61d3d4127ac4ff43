"""Project creation and lookup."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.db.models import MemberRole, MemberStatus, Profile, Project, ProjectMember, ProjectStatus, utcnow
from cowork.exceptions import InvalidOperationError, NotFoundError, PermissionDeniedError
from cowork.projects.membership_service import list_members
from cowork.projects.policies import ProjectAccess, load_access

logger = logging.getLogger(__name__)


async def create_project(
    db: AsyncSession,
    owner_id: uuid.UUID,
    title: str,
    description: str | None = None,
    category: str | None = None,
    color: str | None = None,
    max_users: int = 10,
    is_public: bool = False,
    invited_user_ids: list[uuid.UUID] | None = None,
) -> tuple[Project, list[ProjectMember]]:
    """Create a project owned by ``owner_id``.

    The owner gets an active admin membership; each invited user gets a
    pending member row. Returns the project and the pending invitations.
    """
    invitee_ids = [uid for uid in dict.fromkeys(invited_user_ids or []) if uid != owner_id]
    if len(invitee_ids) + 1 > max_users:
        raise InvalidOperationError(f"A project can have at most {max_users} members")

    if invitee_ids:
        found = await db.execute(select(Profile.id).where(Profile.id.in_(invitee_ids)))
        missing = set(invitee_ids) - set(found.scalars().all())
        if missing:
            raise NotFoundError(f"Unknown users: {', '.join(sorted(str(m) for m in missing))}")

    now = utcnow()
    project = Project(
        owner_id=owner_id,
        title=title,
        description=description,
        category=category,
        color=color,
        max_users=max_users,
        is_public=is_public,
        status=ProjectStatus.ACTIVE.value,
        created_at=now,
    )
    db.add(project)
    await db.flush()

    db.add(ProjectMember(
        project_id=project.id,
        user_id=owner_id,
        role=MemberRole.ADMIN.value,
        status=MemberStatus.ACTIVE.value,
        member_color=color,
        joined_at=now,
        updated_at=now,
    ))

    invitations = []
    for invitee_id in invitee_ids:
        invitation = ProjectMember(
            project_id=project.id,
            user_id=invitee_id,
            role=MemberRole.MEMBER.value,
            status=MemberStatus.PENDING.value,
            invited_by=owner_id,
            joined_at=now,
            updated_at=now,
        )
        db.add(invitation)
        invitations.append(invitation)

    await db.flush()
    logger.info("Project created: %s (id=%s, owner=%s, invited=%d)", title, project.id, owner_id, len(invitations))
    return project, invitations


async def get_project_detail(
    db: AsyncSession,
    user_id: uuid.UUID,
    project_id: uuid.UUID,
) -> tuple[ProjectAccess, list[tuple[ProjectMember, Profile | None]]]:
    """Project, caller access and member list. Private projects are visible to members only."""
    access = await load_access(db, project_id, user_id)
    if not access.project.is_public and not access.is_active_member:
        raise PermissionDeniedError("You are not a member of this project")
    return access, await list_members(db, project_id)
