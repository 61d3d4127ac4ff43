"""Checkpoint lifecycle and project policies."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.db.models import Notification, NotificationQueueItem, Profile
from cowork.exceptions import InvalidOperationError, NotFoundError, PermissionDeniedError
from cowork.projects.checkpoint_service import (
    create_checkpoint,
    list_checkpoints,
    review_checkpoint,
    submit_evidence,
)
from cowork.projects.membership_service import invite_member, respond_to_invitation
from cowork.projects.service import create_project, get_project_detail


@pytest.fixture
def team(db_session: AsyncSession, alice: Profile, bob: Profile):
    """alice owns the project, bob is an active member."""

    async def build(**kwargs):
        project, _ = await create_project(db_session, alice.id, "Renovation", **kwargs)
        await invite_member(db_session, alice.id, project.id, bob.id)
        await respond_to_invitation(db_session, bob.id, project.id, accept=True)
        await db_session.commit()
        return project

    return build


class TestCheckpoints:
    @pytest.mark.asyncio
    async def test_order_increments(self, db_session: AsyncSession, alice: Profile, team):
        project = await team()
        first = await create_checkpoint(db_session, alice.id, project.id, "Paint")
        second = await create_checkpoint(db_session, alice.id, project.id, "Floor")
        assert (first.order, second.order) == (1, 2)

    @pytest.mark.asyncio
    async def test_member_cannot_create(self, db_session: AsyncSession, bob: Profile, team):
        project = await team()
        with pytest.raises(PermissionDeniedError):
            await create_checkpoint(db_session, bob.id, project.id, "Paint")

    @pytest.mark.asyncio
    async def test_outsider_cannot_list(self, db_session: AsyncSession, carol: Profile, team):
        project = await team()
        with pytest.raises(PermissionDeniedError):
            await list_checkpoints(db_session, carol.id, project.id)

    @pytest.mark.asyncio
    async def test_submit_marks_completed(self, db_session: AsyncSession, alice: Profile, bob: Profile, team):
        project = await team()
        checkpoint = await create_checkpoint(db_session, alice.id, project.id, "Paint")

        checkpoint, evidence = await submit_evidence(db_session, bob.id, checkpoint.id, note="Two coats")
        assert checkpoint.is_completed
        assert checkpoint.completed_by == bob.id
        assert evidence.note == "Two coats"

        with pytest.raises(InvalidOperationError, match="already completed"):
            await submit_evidence(db_session, bob.id, checkpoint.id, note="Again")

    @pytest.mark.asyncio
    async def test_empty_evidence_rejected(self, db_session: AsyncSession, alice: Profile, bob: Profile, team):
        project = await team()
        checkpoint = await create_checkpoint(db_session, alice.id, project.id, "Paint")
        with pytest.raises(InvalidOperationError):
            await submit_evidence(db_session, bob.id, checkpoint.id, note="   ")

    @pytest.mark.asyncio
    async def test_unknown_checkpoint(self, db_session: AsyncSession, bob: Profile):
        with pytest.raises(NotFoundError):
            await submit_evidence(db_session, bob.id, uuid.uuid4(), note="x")


class TestReview:
    @pytest.mark.asyncio
    async def test_approval_keeps_completed(self, db_session: AsyncSession, alice: Profile, bob: Profile, team):
        project = await team()
        checkpoint = await create_checkpoint(db_session, alice.id, project.id, "Paint")
        await submit_evidence(db_session, bob.id, checkpoint.id, note="Done")

        outcome = await review_checkpoint(db_session, alice.id, checkpoint.id, rating=9, admin_comment="Great")
        assert not outcome.rejected
        assert outcome.checkpoint.is_completed
        assert outcome.checkpoint.rating == 9

    @pytest.mark.asyncio
    async def test_rejection_reopens_and_queues_push(
        self, db_session: AsyncSession, alice: Profile, bob: Profile, team,
    ):
        project = await team()
        checkpoint = await create_checkpoint(db_session, alice.id, project.id, "Paint")
        await submit_evidence(db_session, bob.id, checkpoint.id, note="Done")

        outcome = await review_checkpoint(
            db_session, alice.id, checkpoint.id, rating=2, rejection_reason="Streaks everywhere",
        )
        assert outcome.rejected
        assert outcome.submitter_id == bob.id
        assert not outcome.checkpoint.is_completed
        assert outcome.checkpoint.completed_by is None

        queued = (await db_session.execute(select(NotificationQueueItem))).scalars().all()
        assert [(q.user_id, q.body) for q in queued] == [(bob.id, "Streaks everywhere")]
        assert queued[0].data == {"url": f"/projects/{project.id}"}
        assert queued[0].title == 'Checkpoint "Paint" needs rework'

    @pytest.mark.asyncio
    async def test_rejection_notice_fits_title_column(
        self, db_session: AsyncSession, alice: Profile, bob: Profile, team,
    ):
        project = await team()
        long_title = "x" * 256
        checkpoint = await create_checkpoint(db_session, alice.id, project.id, long_title)
        await submit_evidence(db_session, bob.id, checkpoint.id, note="Done")

        await review_checkpoint(db_session, alice.id, checkpoint.id, rating=2, rejection_reason="Redo")

        notice = (await db_session.execute(select(Notification))).scalars().one()
        queued = (await db_session.execute(select(NotificationQueueItem))).scalars().one()
        assert len(notice.title) == 256
        assert queued.title == notice.title
        assert notice.title.startswith('Checkpoint "xxx')
        assert notice.title.endswith('…" needs rework')

    @pytest.mark.asyncio
    async def test_only_completed_can_be_reviewed(self, db_session: AsyncSession, alice: Profile, team):
        project = await team()
        checkpoint = await create_checkpoint(db_session, alice.id, project.id, "Paint")
        with pytest.raises(InvalidOperationError):
            await review_checkpoint(db_session, alice.id, checkpoint.id, rating=5)

    @pytest.mark.asyncio
    async def test_member_cannot_review(self, db_session: AsyncSession, alice: Profile, bob: Profile, team):
        project = await team()
        checkpoint = await create_checkpoint(db_session, alice.id, project.id, "Paint")
        await submit_evidence(db_session, bob.id, checkpoint.id, note="Done")
        with pytest.raises(PermissionDeniedError):
            await review_checkpoint(db_session, bob.id, checkpoint.id, rating=10)

    @pytest.mark.asyncio
    async def test_rating_bounds(self, db_session: AsyncSession, alice: Profile, bob: Profile, team):
        project = await team()
        checkpoint = await create_checkpoint(db_session, alice.id, project.id, "Paint")
        await submit_evidence(db_session, bob.id, checkpoint.id, note="Done")
        with pytest.raises(InvalidOperationError):
            await review_checkpoint(db_session, alice.id, checkpoint.id, rating=11)


class TestProjectVisibility:
    @pytest.mark.asyncio
    async def test_private_project_hidden_from_outsiders(self, db_session: AsyncSession, carol: Profile, team):
        project = await team()
        with pytest.raises(PermissionDeniedError):
            await get_project_detail(db_session, carol.id, project.id)

    @pytest.mark.asyncio
    async def test_public_project_visible(self, db_session: AsyncSession, carol: Profile, team):
        project = await team(is_public=True)
        access, members = await get_project_detail(db_session, carol.id, project.id)
        assert access.role is None
        assert len(members) == 2
