"""Project authorization policies.

Checked on every mutating call at the API boundary:

- owner: ``project.owner_id == user``
- can_manage: owner, or an active member with role admin/manager
- is_active_member: owner, or an active membership
- is_admin: owner, or an active admin; only admins grant or revoke the admin role
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.db.models import MANAGER_ROLES, MemberRole, MemberStatus, Project, ProjectMember
from cowork.exceptions import NotFoundError, PermissionDeniedError


@dataclass(frozen=True)
class ProjectAccess:
    project: Project
    membership: ProjectMember | None
    user_id: uuid.UUID

    @property
    def is_owner(self) -> bool:
        return self.project.owner_id == self.user_id

    @property
    def is_active_member(self) -> bool:
        return self.is_owner or (
            self.membership is not None and self.membership.status == MemberStatus.ACTIVE.value
        )

    @property
    def can_manage(self) -> bool:
        return self.is_owner or (
            self.membership is not None
            and self.membership.status == MemberStatus.ACTIVE.value
            and self.membership.role in MANAGER_ROLES
        )

    @property
    def is_admin(self) -> bool:
        return self.is_owner or (
            self.membership is not None
            and self.membership.status == MemberStatus.ACTIVE.value
            and self.membership.role == MemberRole.ADMIN.value
        )

    @property
    def role(self) -> str | None:
        if self.is_owner:
            return "owner"
        if self.is_active_member and self.membership is not None:
            return self.membership.role
        return None


async def get_project(db: AsyncSession, project_id: uuid.UUID) -> Project | None:
    result = await db.execute(select(Project).where(Project.id == project_id))
    return result.scalar_one_or_none()


async def get_membership(db: AsyncSession, project_id: uuid.UUID, user_id: uuid.UUID) -> ProjectMember | None:
    result = await db.execute(
        select(ProjectMember).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def load_access(db: AsyncSession, project_id: uuid.UUID, user_id: uuid.UUID) -> ProjectAccess:
    """Resolve the caller's standing in a project. Raises NotFoundError for unknown projects."""
    project = await get_project(db, project_id)
    if project is None:
        raise NotFoundError("Project not found")
    membership = await get_membership(db, project_id, user_id)
    return ProjectAccess(project=project, membership=membership, user_id=user_id)


async def require_member(db: AsyncSession, project_id: uuid.UUID, user_id: uuid.UUID) -> ProjectAccess:
    access = await load_access(db, project_id, user_id)
    if not access.is_active_member:
        raise PermissionDeniedError("You are not a member of this project")
    return access


async def require_manager(db: AsyncSession, project_id: uuid.UUID, user_id: uuid.UUID) -> ProjectAccess:
    access = await load_access(db, project_id, user_id)
    if not access.can_manage:
        raise PermissionDeniedError("Only the project owner, admins and managers can do this")
    return access


def require_role_grant(access: ProjectAccess, role: str, current_role: str | None = None) -> None:
    """Managers may hand out ``member`` and ``manager`` but never touch the admin role."""
    touches_admin = MemberRole.ADMIN.value in (role, current_role)
    if touches_admin and not access.is_admin:
        raise PermissionDeniedError("Only the project owner and admins can grant or revoke the admin role")
