"""Achievement catalog seed data."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from cowork.database import upsert_insert
from cowork.db.models import Achievement

logger = logging.getLogger(__name__)

ACHIEVEMENT_SEED_DATA: list[dict] = [
    # Projects created
    {
        "name": "First Project",
        "description": "Create your first project",
        "icon": "folder-plus",
        "tier": "bronze",
        "requirement_type": "projects_created",
        "requirement_value": 1,
    },
    {
        "name": "Productive",
        "description": "Create 5 projects",
        "icon": "briefcase",
        "tier": "silver",
        "requirement_type": "projects_created",
        "requirement_value": 5,
    },
    {
        "name": "Expert",
        "description": "Create 10 projects",
        "icon": "star",
        "tier": "gold",
        "requirement_type": "projects_created",
        "requirement_value": 10,
    },
    {
        "name": "Master",
        "description": "Create 25 projects",
        "icon": "crown",
        "tier": "platinum",
        "requirement_type": "projects_created",
        "requirement_value": 25,
    },
    # Checkpoints completed
    {
        "name": "First Success",
        "description": "Complete your first checkpoint",
        "icon": "check-circle",
        "tier": "bronze",
        "requirement_type": "checkpoints_completed",
        "requirement_value": 1,
    },
    {
        "name": "Verifier",
        "description": "Complete 25 checkpoints",
        "icon": "badge-check",
        "tier": "gold",
        "requirement_type": "checkpoints_completed",
        "requirement_value": 25,
    },
    # Collaborations
    {
        "name": "Collaborator",
        "description": "Join a project created by someone else",
        "icon": "users",
        "tier": "bronze",
        "requirement_type": "projects_joined",
        "requirement_value": 1,
    },
    {
        "name": "Strong Team",
        "description": "Collaborate on 5 projects",
        "icon": "handshake",
        "tier": "silver",
        "requirement_type": "projects_joined",
        "requirement_value": 5,
    },
]


async def seed_achievements(db: AsyncSession) -> int:
    """Upsert the achievement catalog on ``name``. Returns number of rows seeded."""
    insert = upsert_insert(db)
    seeded = 0
    for achievement_data in ACHIEVEMENT_SEED_DATA:
        stmt = insert(Achievement).values(**achievement_data)
        stmt = stmt.on_conflict_do_update(
            index_elements=["name"],
            set_={
                "description": stmt.excluded.description,
                "icon": stmt.excluded.icon,
                "tier": stmt.excluded.tier,
                "requirement_type": stmt.excluded.requirement_type,
                "requirement_value": stmt.excluded.requirement_value,
            },
        )
        await db.execute(stmt)
        seeded += 1

    await db.commit()
    logger.info("Seeded %d achievements", seeded)
    return seeded
