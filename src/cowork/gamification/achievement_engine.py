"""Achievement rule engine: evaluates user actions against the achievement catalog."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.db.models import (
    Achievement,
    Checkpoint,
    MemberStatus,
    Project,
    ProjectMember,
    UserAchievement,
    utcnow,
)
from cowork.notifications.hub import publish_achievement_unlocked, publish_counts
from cowork.notifications.service import create_notification

logger = logging.getLogger(__name__)

PROJECT_CREATED = "project_created"
CHECKPOINT_COMPLETED = "checkpoint_completed"
PROJECT_JOINED = "project_joined"

# Catalog rows were written with several spellings of the same requirement
REQUIREMENT_ALIASES: dict[str, tuple[str, ...]] = {
    PROJECT_CREATED: ("projects_created", "project_created", "projects"),
    CHECKPOINT_COMPLETED: ("checkpoints_completed", "checkpoint_completed", "checkpoints"),
    PROJECT_JOINED: ("projects_joined", "project_joined", "collaborations"),
}


def _serialize(achievement: Achievement) -> dict[str, Any]:
    return {
        "id": str(achievement.id),
        "name": achievement.name,
        "description": achievement.description,
        "icon": achievement.icon,
        "tier": achievement.tier,
    }


class AchievementEngine:
    """Checks which catalog achievements a user's action unlocks and records them."""

    def __init__(self, db: AsyncSession, redis: object | None = None) -> None:
        self.db = db
        self.redis = redis

    async def _candidates(self, action: str, user_id: uuid.UUID) -> list[Achievement]:
        """Catalog rows for the action that the user has not earned yet."""
        earned = select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
        result = await self.db.execute(
            select(Achievement)
            .where(
                Achievement.requirement_type.in_(REQUIREMENT_ALIASES[action]),
                Achievement.id.not_in(earned),
            )
            .order_by(Achievement.requirement_value.asc(), Achievement.name.asc())
        )
        return list(result.scalars().all())

    async def metric(self, action: str, user_id: uuid.UUID) -> int:
        """Current value of the user's metric for an action category."""
        if action == PROJECT_CREATED:
            stmt = select(func.count()).select_from(Project).where(Project.owner_id == user_id)
        elif action == CHECKPOINT_COMPLETED:
            stmt = select(func.count()).select_from(Checkpoint).where(Checkpoint.completed_by == user_id)
        elif action == PROJECT_JOINED:
            stmt = (
                select(func.count())
                .select_from(ProjectMember)
                .join(Project, Project.id == ProjectMember.project_id)
                .where(
                    ProjectMember.user_id == user_id,
                    ProjectMember.status == MemberStatus.ACTIVE.value,
                    Project.owner_id != user_id,
                )
            )
        else:
            raise ValueError(f"Unknown achievement action: {action}")
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def _record_unlock(self, user_id: uuid.UUID, achievement_id: uuid.UUID, name: str) -> bool:
        """Insert the earned row. A unique-constraint violation means it was already earned."""
        self.db.add(UserAchievement(user_id=user_id, achievement_id=achievement_id, earned_at=utcnow()))
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info("Achievement %s already earned by %s", name, user_id)
            return False
        return True

    async def check(self, user_id: uuid.UUID, action: str) -> list[dict[str, Any]]:
        """Record and return the achievements newly unlocked by ``action``.

        Never raises: any store error aborts the check and returns ``[]``.
        """
        if action not in REQUIREMENT_ALIASES:
            logger.warning("Unknown achievement action: %s", action)
            return []

        try:
            candidates = await self._candidates(action, user_id)
            if not candidates:
                return []
            count = await self.metric(action, user_id)

            # Plain values only: a rollback inside the loop expires ORM instances
            qualifying = [
                (achievement.id, _serialize(achievement))
                for achievement in candidates
                if count >= (achievement.requirement_value or 1)
            ]

            unlocked: list[dict[str, Any]] = []
            for achievement_id, info in qualifying:
                if await self._record_unlock(user_id, achievement_id, info["name"]):
                    unlocked.append(info)
        except SQLAlchemyError:
            logger.exception("Achievement check failed for user %s (action=%s)", user_id, action)
            await self.db.rollback()
            return []

        if unlocked:
            logger.info("User %s unlocked %d achievement(s): %s", user_id, len(unlocked),
                        ", ".join(a["name"] for a in unlocked))
            await self._notify(user_id, unlocked)
        return unlocked

    async def _notify(self, user_id: uuid.UUID, unlocked: list[dict[str, Any]]) -> None:
        """System notification plus realtime event per unlock; failures are logged only."""
        try:
            for info in unlocked:
                await create_notification(
                    self.db,
                    user_id,
                    "achievement_unlocked",
                    title=f'Achievement unlocked: "{info["name"]}"',
                    message=info["description"],
                    url="/profile",
                )
            await self.db.commit()
        except SQLAlchemyError:
            logger.warning("Failed to store achievement notifications for %s", user_id, exc_info=True)
            await self.db.rollback()
            return

        for info in unlocked:
            await publish_achievement_unlocked(self.redis, user_id, info)
        await publish_counts(self.db, self.redis, user_id)


async def check_and_unlock(
    db: AsyncSession,
    user_id: uuid.UUID,
    action: str,
    redis: object | None = None,
) -> list[dict[str, Any]]:
    """Convenience wrapper used by the project and checkpoint services."""
    return await AchievementEngine(db, redis).check(user_id, action)
