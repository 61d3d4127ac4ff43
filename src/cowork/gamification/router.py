"""Achievement endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.auth.dependencies import get_current_user
from cowork.database import get_session
from cowork.db.models import Achievement, Profile, UserAchievement
from cowork.gamification.schemas import (
    AchievementCatalogResponse,
    AchievementResponse,
    EarnedAchievementResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Achievements"])

TIER_ORDER = {"bronze": 0, "silver": 1, "gold": 2, "platinum": 3}


@router.get("/achievements", response_model=AchievementCatalogResponse)
async def list_achievements(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Full catalog with the caller's earned state."""
    catalog = (await db.execute(select(Achievement))).scalars().all()
    earned_result = await db.execute(
        select(UserAchievement.achievement_id, UserAchievement.earned_at)
        .where(UserAchievement.user_id == user.id)
    )
    earned = {achievement_id: earned_at for achievement_id, earned_at in earned_result.all()}

    achievements = [
        AchievementResponse(
            id=str(a.id),
            name=a.name,
            description=a.description,
            icon=a.icon,
            tier=a.tier,
            requirement_type=a.requirement_type,
            requirement_value=a.requirement_value or 1,
            is_earned=a.id in earned,
            earned_at=earned.get(a.id),
        )
        for a in sorted(
            catalog,
            key=lambda a: (a.requirement_type or "", a.requirement_value or 1, TIER_ORDER.get(a.tier, 99)),
        )
    ]
    return AchievementCatalogResponse(
        achievements=achievements,
        total=len(achievements),
        earned=sum(1 for a in achievements if a.is_earned),
    )


@router.get("/achievements/me", response_model=list[EarnedAchievementResponse])
async def my_achievements(
    user: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Achievements the caller has earned, most recent first."""
    result = await db.execute(
        select(Achievement, UserAchievement.earned_at)
        .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
        .where(UserAchievement.user_id == user.id)
        .order_by(UserAchievement.earned_at.desc())
    )
    return [
        EarnedAchievementResponse(
            id=str(a.id),
            name=a.name,
            description=a.description,
            icon=a.icon,
            tier=a.tier,
            earned_at=earned_at,
        )
        for a, earned_at in result.all()
    ]
