"""Pydantic schemas for achievement endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class UnlockedAchievementResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    icon: str | None = None
    tier: str


class AchievementResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    icon: str | None = None
    tier: str
    requirement_type: str | None = None
    requirement_value: int
    is_earned: bool = False
    earned_at: datetime | None = None


class AchievementCatalogResponse(BaseModel):
    achievements: list[AchievementResponse]
    total: int
    earned: int


class EarnedAchievementResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    icon: str | None = None
    tier: str
    earned_at: datetime
