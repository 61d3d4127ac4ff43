"""Friend request rules."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.db.models import FriendRequest, Profile
from cowork.exceptions import ConflictError, InvalidOperationError, NotFoundError, PermissionDeniedError
from cowork.social.friends_service import (
    count_friends,
    list_friends,
    list_incoming_requests,
    respond_to_friend_request,
    send_friend_request,
)


class TestSendFriendRequest:
    @pytest.mark.asyncio
    async def test_creates_pending_request(self, db_session: AsyncSession, alice: Profile, bob: Profile):
        request = await send_friend_request(db_session, alice.id, bob.id)
        assert request.status == "pending"
        assert request.sender_id == alice.id
        assert request.receiver_id == bob.id

    @pytest.mark.asyncio
    async def test_self_request_rejected(self, db_session: AsyncSession, alice: Profile):
        with pytest.raises(InvalidOperationError):
            await send_friend_request(db_session, alice.id, alice.id)

    @pytest.mark.asyncio
    async def test_unknown_receiver(self, db_session: AsyncSession, alice: Profile):
        with pytest.raises(NotFoundError):
            await send_friend_request(db_session, alice.id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_duplicate_pending_in_either_direction(self, db_session: AsyncSession, alice: Profile, bob: Profile):
        await send_friend_request(db_session, alice.id, bob.id)
        with pytest.raises(ConflictError, match="already pending"):
            await send_friend_request(db_session, alice.id, bob.id)
        with pytest.raises(ConflictError, match="already pending"):
            await send_friend_request(db_session, bob.id, alice.id)

    @pytest.mark.asyncio
    async def test_already_friends(self, db_session: AsyncSession, alice: Profile, bob: Profile):
        request = await send_friend_request(db_session, alice.id, bob.id)
        await respond_to_friend_request(db_session, bob.id, request.id, accept=True)
        with pytest.raises(ConflictError, match="already friends"):
            await send_friend_request(db_session, bob.id, alice.id)

    @pytest.mark.asyncio
    async def test_can_ask_again_after_rejection(self, db_session: AsyncSession, alice: Profile, bob: Profile):
        request = await send_friend_request(db_session, alice.id, bob.id)
        await respond_to_friend_request(db_session, bob.id, request.id, accept=False)
        again = await send_friend_request(db_session, alice.id, bob.id)
        assert again.id != request.id
        assert again.status == "pending"

    @pytest.mark.asyncio
    async def test_lost_insert_race_is_conflict(self, db_session: AsyncSession, alice: Profile, bob: Profile):
        alice_id, bob_id = alice.id, bob.id
        duplicate = IntegrityError("INSERT INTO friend_requests", {}, Exception("idx_friend_requests_open_pair"))

        with patch.object(db_session, "flush", AsyncMock(side_effect=duplicate)):
            with pytest.raises(ConflictError, match="already pending"):
                await send_friend_request(db_session, alice_id, bob_id)

        count = await db_session.execute(select(func.count()).select_from(FriendRequest))
        assert count.scalar_one() == 0


class TestRespondToFriendRequest:
    @pytest.mark.asyncio
    async def test_accept_makes_both_sides_friends(self, db_session: AsyncSession, alice: Profile, bob: Profile):
        """A sends, B accepts: the request leaves B's pending list and both count each other."""
        request = await send_friend_request(db_session, alice.id, bob.id)
        await db_session.commit()

        answered = await respond_to_friend_request(db_session, bob.id, request.id, accept=True)
        await db_session.commit()

        assert answered.status == "accepted"
        assert await list_incoming_requests(db_session, bob.id) == []
        assert [p.id for p in await list_friends(db_session, alice.id)] == [bob.id]
        assert [p.id for p in await list_friends(db_session, bob.id)] == [alice.id]
        assert await count_friends(db_session, alice.id) == 1
        assert await count_friends(db_session, bob.id) == 1

    @pytest.mark.asyncio
    async def test_reject_keeps_row(self, db_session: AsyncSession, alice: Profile, bob: Profile):
        request = await send_friend_request(db_session, alice.id, bob.id)
        answered = await respond_to_friend_request(db_session, bob.id, request.id, accept=False)
        assert answered.status == "rejected"
        assert await count_friends(db_session, alice.id) == 0

    @pytest.mark.asyncio
    async def test_only_receiver_may_answer(self, db_session: AsyncSession, alice: Profile, bob: Profile):
        request = await send_friend_request(db_session, alice.id, bob.id)
        with pytest.raises(PermissionDeniedError):
            await respond_to_friend_request(db_session, alice.id, request.id, accept=True)

    @pytest.mark.asyncio
    async def test_second_answer_conflicts(self, db_session: AsyncSession, alice: Profile, bob: Profile):
        request = await send_friend_request(db_session, alice.id, bob.id)
        await respond_to_friend_request(db_session, bob.id, request.id, accept=True)
        with pytest.raises(ConflictError):
            await respond_to_friend_request(db_session, bob.id, request.id, accept=False)

    @pytest.mark.asyncio
    async def test_unknown_request(self, db_session: AsyncSession, bob: Profile):
        with pytest.raises(NotFoundError):
            await respond_to_friend_request(db_session, bob.id, uuid.uuid4(), accept=True)


class TestIncomingRequests:
    @pytest.mark.asyncio
    async def test_lists_only_pending_with_sender(
        self, db_session: AsyncSession, alice: Profile, bob: Profile, carol: Profile,
    ):
        first = await send_friend_request(db_session, alice.id, bob.id)
        await send_friend_request(db_session, carol.id, bob.id)
        await respond_to_friend_request(db_session, bob.id, first.id, accept=False)

        rows = await list_incoming_requests(db_session, bob.id)
        assert len(rows) == 1
        request, sender = rows[0]
        assert request.sender_id == carol.id
        assert sender.username == "carol"
