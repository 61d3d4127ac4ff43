"""arq job functions, called directly with a hand-built ctx."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.database import get_session_factory
from cowork.db.models import NotificationQueueItem, Profile, PushSubscription
from cowork.projects.membership_service import invite_member, respond_to_invitation
from cowork.projects.policies import get_membership
from cowork.projects.service import create_project
from cowork.push.service import enqueue_push, save_subscription
from cowork.workers.jobs import drain_notification_queue, purge_memberships, rejected_cutoff
from cowork.workers.settings import WorkerSettings


class TestPurgeMemberships:
    def test_cutoff_uses_retention_window(self):
        now = datetime(2026, 3, 31, tzinfo=timezone.utc)
        assert rejected_cutoff(now) == now - timedelta(days=30)

    @pytest.mark.asyncio
    async def test_purges_expired_declines(self, db_session: AsyncSession, alice: Profile, bob: Profile):
        project, _ = await create_project(db_session, alice.id, "Choir", invited_user_ids=[bob.id])
        await respond_to_invitation(db_session, bob.id, project.id, accept=False)
        membership = await get_membership(db_session, project.id, bob.id)
        membership.updated_at = rejected_cutoff() - timedelta(minutes=1)
        await db_session.commit()

        deleted = await purge_memberships({"session_factory": get_session_factory()})

        assert deleted == 1
        assert await get_membership(db_session, project.id, bob.id) is None

    @pytest.mark.asyncio
    async def test_recent_declines_survive(self, db_session: AsyncSession, alice: Profile, bob: Profile):
        project, _ = await create_project(db_session, alice.id, "Choir")
        await invite_member(db_session, alice.id, project.id, bob.id)
        await respond_to_invitation(db_session, bob.id, project.id, accept=False)
        await db_session.commit()

        assert await purge_memberships({"session_factory": get_session_factory()}) == 0


class QueueSender:
    """Records delivered endpoints; ``unreachable`` ones fail like a refused connection."""

    def __init__(self, unreachable: set[str]) -> None:
        self.unreachable = unreachable
        self.endpoints: list[str] = []

    async def send(self, subscription: PushSubscription, payload: str) -> None:
        if subscription.endpoint in self.unreachable:
            raise ConnectionError("Connection refused")
        self.endpoints.append(subscription.endpoint)


class TestDrainQueue:
    @pytest.mark.asyncio
    async def test_skipped_without_vapid_keys(self):
        result = await drain_notification_queue({})
        assert result == {"message": "Push notification service not configured"}

    @pytest.mark.asyncio
    async def test_drains_when_configured(self, db_session: AsyncSession, alice: Profile, bob: Profile):
        await save_subscription(db_session, alice.id, "https://push.example/alice", "p256dh-key", "auth-key")
        await save_subscription(db_session, bob.id, "https://push.example/down", "p256dh-key", "auth-key")
        await enqueue_push(db_session, alice.id, "Checkpoint rejected", "Redo it")
        await enqueue_push(db_session, bob.id, "Checkpoint rejected", "Again")
        await db_session.commit()
        sender = QueueSender(unreachable={"https://push.example/down"})

        with (
            patch("cowork.workers.jobs.push_configured", return_value=True),
            patch("cowork.workers.jobs.WebPushSender.from_settings", return_value=sender),
        ):
            result = await drain_notification_queue({"session_factory": get_session_factory()})

        assert result == {"processed": 2, "successful": 2}
        assert sender.endpoints == ["https://push.example/alice"]
        sent = await db_session.execute(select(NotificationQueueItem.sent))
        assert sent.scalars().all() == [True, True]


class TestWorkerSettings:
    def test_jobs_registered(self):
        names = {job.coroutine.__name__ for job in WorkerSettings.cron_jobs}
        assert names == {"drain_notification_queue", "purge_memberships"}
