"""Checkpoint lifecycle: creation, evidence submission and review.

A rejection re-opens the checkpoint (``is_completed = False``) and keeps the
reason, which makes it show up in the inbox of every active member until
evidence is submitted again.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.db.models import Checkpoint, Evidence, Notification, utcnow
from cowork.exceptions import InvalidOperationError, NotFoundError
from cowork.notifications.service import create_notification
from cowork.projects.policies import require_manager, require_member
from cowork.push.service import enqueue_push

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 10

REWORK_TITLE = 'Checkpoint "{}" needs rework'
# Shared by notifications.title and notification_queue.title
NOTIFICATION_TITLE_MAX = Notification.__table__.c.title.type.length


def rework_title(checkpoint_title: str) -> str:
    """Rejection notice title, shortening the checkpoint title to fit the column."""
    room = NOTIFICATION_TITLE_MAX - len(REWORK_TITLE.format(""))
    if len(checkpoint_title) > room:
        checkpoint_title = checkpoint_title[: room - 1] + "\u2026"
    return REWORK_TITLE.format(checkpoint_title)


@dataclass
class ReviewOutcome:
    checkpoint: Checkpoint
    rejected: bool
    submitter_id: uuid.UUID | None


async def get_checkpoint(db: AsyncSession, checkpoint_id: uuid.UUID) -> Checkpoint | None:
    result = await db.execute(select(Checkpoint).where(Checkpoint.id == checkpoint_id))
    return result.scalar_one_or_none()


async def _require_checkpoint(db: AsyncSession, checkpoint_id: uuid.UUID) -> Checkpoint:
    checkpoint = await get_checkpoint(db, checkpoint_id)
    if checkpoint is None:
        raise NotFoundError("Checkpoint not found")
    return checkpoint


async def create_checkpoint(
    db: AsyncSession,
    actor_id: uuid.UUID,
    project_id: uuid.UUID,
    title: str,
) -> Checkpoint:
    await require_manager(db, project_id, actor_id)

    result = await db.execute(
        select(func.coalesce(func.max(Checkpoint.order), 0)).where(Checkpoint.project_id == project_id)
    )
    checkpoint = Checkpoint(
        project_id=project_id,
        title=title,
        order=result.scalar_one() + 1,
        is_completed=False,
        created_at=utcnow(),
    )
    db.add(checkpoint)
    await db.flush()
    logger.info("Checkpoint %s created in project %s by %s", checkpoint.id, project_id, actor_id)
    return checkpoint


async def list_checkpoints(db: AsyncSession, user_id: uuid.UUID, project_id: uuid.UUID) -> list[Checkpoint]:
    await require_member(db, project_id, user_id)
    result = await db.execute(
        select(Checkpoint).where(Checkpoint.project_id == project_id).order_by(Checkpoint.order.asc())
    )
    return list(result.scalars().all())


async def submit_evidence(
    db: AsyncSession,
    user_id: uuid.UUID,
    checkpoint_id: uuid.UUID,
    note: str | None = None,
    image_url: str | None = None,
) -> tuple[Checkpoint, Evidence]:
    """Attach evidence and mark the checkpoint completed by ``user_id``."""
    checkpoint = await _require_checkpoint(db, checkpoint_id)
    await require_member(db, checkpoint.project_id, user_id)

    if not (note and note.strip()) and not image_url:
        raise InvalidOperationError("Evidence needs a note or an image")
    if checkpoint.is_completed:
        raise InvalidOperationError("Checkpoint is already completed")

    now = utcnow()
    evidence = Evidence(
        checkpoint_id=checkpoint.id,
        user_id=user_id,
        note=note,
        image_url=image_url,
        created_at=now,
    )
    db.add(evidence)

    checkpoint.is_completed = True
    checkpoint.completed_by = user_id
    checkpoint.completed_at = now
    if image_url:
        checkpoint.image_url = image_url

    await db.flush()
    logger.info("Evidence submitted for checkpoint %s by %s", checkpoint.id, user_id)
    return checkpoint, evidence


async def review_checkpoint(
    db: AsyncSession,
    actor_id: uuid.UUID,
    checkpoint_id: uuid.UUID,
    rating: int,
    admin_comment: str | None = None,
    rejection_reason: str | None = None,
) -> ReviewOutcome:
    """Rate a completed checkpoint, optionally sending it back for rework."""
    checkpoint = await _require_checkpoint(db, checkpoint_id)
    await require_manager(db, checkpoint.project_id, actor_id)

    if not MIN_RATING <= rating <= MAX_RATING:
        raise InvalidOperationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
    if not checkpoint.is_completed:
        raise InvalidOperationError("Only completed checkpoints can be reviewed")

    checkpoint.rating = rating
    checkpoint.admin_comment = admin_comment
    submitter_id = checkpoint.completed_by
    reason = (rejection_reason or "").strip() or None

    if reason is None:
        checkpoint.rejection_reason = None
        await db.flush()
        logger.info("Checkpoint %s approved by %s (rating=%d)", checkpoint.id, actor_id, rating)
        return ReviewOutcome(checkpoint=checkpoint, rejected=False, submitter_id=submitter_id)

    checkpoint.rejection_reason = reason
    checkpoint.is_completed = False
    checkpoint.completed_by = None
    checkpoint.completed_at = None

    if submitter_id is not None:
        url = f"/projects/{checkpoint.project_id}"
        title = rework_title(checkpoint.title)
        await create_notification(db, submitter_id, "checkpoint_rejected", title=title, message=reason, url=url)
        await enqueue_push(db, submitter_id, title=title, body=reason, data={"url": url})

    await db.flush()
    logger.info("Checkpoint %s rejected by %s (rating=%d)", checkpoint.id, actor_id, rating)
    return ReviewOutcome(checkpoint=checkpoint, rejected=True, submitter_id=submitter_id)
