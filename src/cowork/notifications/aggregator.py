"""Inbox aggregation.

Builds the "things that need my attention" view from four independent
sources: incoming friend requests, pending project invitations, rejected
checkpoints in the user's projects and system notifications.

Every slice is fetched on its own; a store error in one of them is logged
and that slice comes back empty while the others are still returned.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from cowork.config import get_settings
from cowork.db.models import (
    Checkpoint,
    FriendRequest,
    FriendRequestStatus,
    MemberStatus,
    Profile,
    Project,
    ProjectMember,
)
from cowork.notifications import service as notification_service

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Inbox:
    friend_requests: list[dict[str, Any]] = field(default_factory=list)
    project_invitations: list[dict[str, Any]] = field(default_factory=list)
    rejected_checkpoints: list[dict[str, Any]] = field(default_factory=list)
    system_notifications: list[dict[str, Any]] = field(default_factory=list)
    unread_system_count: int = 0

    @property
    def pending_count(self) -> int:
        return (
            len(self.friend_requests)
            + len(self.project_invitations)
            + len(self.rejected_checkpoints)
            + self.unread_system_count
        )


def _profile_info(profile: Profile | None) -> dict[str, Any] | None:
    if profile is None:
        return None
    return {
        "id": profile.id,
        "username": profile.username,
        "display_name": profile.display_name,
        "avatar_url": profile.avatar_url,
    }


class NotificationAggregator:
    """Read-only view over everything pending for one user."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _isolated(self, name: str, fetch: Callable[[], Awaitable[T]], fallback: T) -> T:
        try:
            return await fetch()
        except SQLAlchemyError:
            logger.warning("Inbox slice %s failed, returning empty", name, exc_info=True)
            # A failed statement poisons the transaction on Postgres
            await self.db.rollback()
            return fallback

    # ------------------------------------------------------------------
    # Slice queries
    # ------------------------------------------------------------------

    def _in_visible_projects(self, user_id: uuid.UUID):
        """Checkpoint filter: projects the user owns or is an active member of."""
        member_projects = select(ProjectMember.project_id).where(
            ProjectMember.user_id == user_id,
            ProjectMember.status == MemberStatus.ACTIVE.value,
        )
        owned_projects = select(Project.id).where(Project.owner_id == user_id)
        return or_(
            Checkpoint.project_id.in_(member_projects),
            Checkpoint.project_id.in_(owned_projects),
        )

    async def fetch_friend_requests(self, user_id: uuid.UUID) -> list[dict[str, Any]]:
        result = await self.db.execute(
            select(FriendRequest, Profile)
            .outerjoin(Profile, Profile.id == FriendRequest.sender_id)
            .where(
                FriendRequest.receiver_id == user_id,
                FriendRequest.status == FriendRequestStatus.PENDING.value,
            )
            .order_by(FriendRequest.created_at.desc())
        )
        return [
            {
                "id": request.id,
                "sender_id": request.sender_id,
                "status": request.status,
                "created_at": request.created_at,
                "sender": _profile_info(sender),
            }
            for request, sender in result.all()
        ]

    async def fetch_project_invitations(self, user_id: uuid.UUID) -> list[dict[str, Any]]:
        inviter = aliased(Profile)
        # Inner join on projects drops invitations whose project is gone
        result = await self.db.execute(
            select(ProjectMember, Project, inviter)
            .join(Project, Project.id == ProjectMember.project_id)
            .outerjoin(inviter, inviter.id == func.coalesce(ProjectMember.invited_by, Project.owner_id))
            .where(
                ProjectMember.user_id == user_id,
                ProjectMember.status == MemberStatus.PENDING.value,
            )
            .order_by(ProjectMember.joined_at.desc())
        )
        return [
            {
                "project_id": project.id,
                "project_title": project.title,
                "project_color": project.color,
                "role": membership.role,
                "invited_at": membership.joined_at,
                "inviter": _profile_info(invited_by),
            }
            for membership, project, invited_by in result.all()
        ]

    async def fetch_rejected_checkpoints(self, user_id: uuid.UUID) -> list[dict[str, Any]]:
        result = await self.db.execute(
            select(Checkpoint, Project)
            .join(Project, Project.id == Checkpoint.project_id)
            .where(
                self._in_visible_projects(user_id),
                Checkpoint.rejection_reason.is_not(None),
                Checkpoint.is_completed.is_(False),
            )
            .order_by(Checkpoint.created_at.desc())
        )
        return [
            {
                "id": checkpoint.id,
                "title": checkpoint.title,
                "project_id": project.id,
                "project_title": project.title,
                "rating": checkpoint.rating,
                "admin_comment": checkpoint.admin_comment,
                "rejection_reason": checkpoint.rejection_reason,
                "created_at": checkpoint.created_at,
            }
            for checkpoint, project in result.all()
        ]

    async def fetch_system_notifications(self, user_id: uuid.UUID) -> list[dict[str, Any]]:
        limit = get_settings().notification_list_limit
        rows = await notification_service.list_notifications(self.db, user_id, limit=limit)
        return [
            {
                "id": n.id,
                "type": n.type,
                "title": n.title,
                "message": n.message,
                "url": n.url,
                "is_read": n.is_read,
                "created_at": n.created_at,
            }
            for n in rows
        ]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def collect(self, user_id: uuid.UUID) -> Inbox:
        """Build the full inbox for ``user_id``."""
        return Inbox(
            friend_requests=await self._isolated(
                "friend_requests", lambda: self.fetch_friend_requests(user_id), [],
            ),
            project_invitations=await self._isolated(
                "project_invitations", lambda: self.fetch_project_invitations(user_id), [],
            ),
            rejected_checkpoints=await self._isolated(
                "rejected_checkpoints", lambda: self.fetch_rejected_checkpoints(user_id), [],
            ),
            system_notifications=await self._isolated(
                "system_notifications", lambda: self.fetch_system_notifications(user_id), [],
            ),
            unread_system_count=await self._isolated(
                "unread_system_count",
                lambda: notification_service.get_unread_count(self.db, user_id),
                0,
            ),
        )

    async def counts(self, user_id: uuid.UUID) -> dict[str, int]:
        """Per-category counts only (the badge)."""

        async def count_friend_requests() -> int:
            result = await self.db.execute(
                select(func.count())
                .select_from(FriendRequest)
                .where(
                    FriendRequest.receiver_id == user_id,
                    FriendRequest.status == FriendRequestStatus.PENDING.value,
                )
            )
            return result.scalar_one()

        async def count_invitations() -> int:
            result = await self.db.execute(
                select(func.count())
                .select_from(ProjectMember)
                .join(Project, Project.id == ProjectMember.project_id)
                .where(
                    ProjectMember.user_id == user_id,
                    ProjectMember.status == MemberStatus.PENDING.value,
                )
            )
            return result.scalar_one()

        async def count_rejected() -> int:
            result = await self.db.execute(
                select(func.count())
                .select_from(Checkpoint)
                .where(
                    self._in_visible_projects(user_id),
                    Checkpoint.rejection_reason.is_not(None),
                    Checkpoint.is_completed.is_(False),
                )
            )
            return result.scalar_one()

        counts = {
            "friend_requests": await self._isolated("friend_requests", count_friend_requests, 0),
            "project_invitations": await self._isolated("project_invitations", count_invitations, 0),
            "rejected_checkpoints": await self._isolated("rejected_checkpoints", count_rejected, 0),
            "system_notifications": await self._isolated(
                "unread_system_count",
                lambda: notification_service.get_unread_count(self.db, user_id),
                0,
            ),
        }
        counts["total"] = sum(counts.values())
        return counts
