"""Friend request business logic.

Rules:
- No self requests
- At most one pending-or-accepted request per unordered pair of users
- Only the receiver answers a request, and only while it is pending
- Rejection is a status change; rows are never deleted
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.auth.dependencies import get_profile_by_id
from cowork.db.models import FriendRequest, FriendRequestStatus, Profile, utcnow
from cowork.exceptions import ConflictError, InvalidOperationError, NotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)


def _pair_filter(a: uuid.UUID, b: uuid.UUID):
    return or_(
        and_(FriendRequest.sender_id == a, FriendRequest.receiver_id == b),
        and_(FriendRequest.sender_id == b, FriendRequest.receiver_id == a),
    )


async def get_friend_request(db: AsyncSession, request_id: uuid.UUID) -> FriendRequest | None:
    result = await db.execute(select(FriendRequest).where(FriendRequest.id == request_id))
    return result.scalar_one_or_none()


async def send_friend_request(db: AsyncSession, sender_id: uuid.UUID, receiver_id: uuid.UUID) -> FriendRequest:
    """Create a pending request from ``sender_id`` to ``receiver_id``."""
    if sender_id == receiver_id:
        raise InvalidOperationError("You cannot send a friend request to yourself")

    if await get_profile_by_id(db, receiver_id) is None:
        raise NotFoundError("User not found")

    existing = await db.execute(
        select(FriendRequest).where(
            _pair_filter(sender_id, receiver_id),
            FriendRequest.status.in_([FriendRequestStatus.PENDING.value, FriendRequestStatus.ACCEPTED.value]),
        )
    )
    current = existing.scalars().first()
    if current is not None:
        if current.status == FriendRequestStatus.ACCEPTED.value:
            raise ConflictError("You are already friends")
        raise ConflictError("A friend request between you is already pending")

    now = utcnow()
    request = FriendRequest(
        sender_id=sender_id,
        receiver_id=receiver_id,
        status=FriendRequestStatus.PENDING.value,
        created_at=now,
        updated_at=now,
    )
    db.add(request)
    try:
        await db.flush()
    except IntegrityError:
        # Open-pair unique index: a concurrent request for the same pair won the insert
        await db.rollback()
        raise ConflictError("A friend request between you is already pending") from None
    logger.info("Friend request %s sent: %s -> %s", request.id, sender_id, receiver_id)
    return request


async def respond_to_friend_request(
    db: AsyncSession,
    user_id: uuid.UUID,
    request_id: uuid.UUID,
    accept: bool,
) -> FriendRequest:
    """Accept or reject a pending request addressed to ``user_id``."""
    request = await get_friend_request(db, request_id)
    if request is None:
        raise NotFoundError("Friend request not found")
    if request.receiver_id != user_id:
        raise PermissionDeniedError("Only the receiver can respond to this friend request")

    new_status = FriendRequestStatus.ACCEPTED if accept else FriendRequestStatus.REJECTED
    # Conditional on pending: a repeated or concurrent answer matches no row
    result = await db.execute(
        update(FriendRequest)
        .where(
            FriendRequest.id == request_id,
            FriendRequest.status == FriendRequestStatus.PENDING.value,
        )
        .values(status=new_status.value, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise ConflictError("This friend request has already been answered")

    await db.refresh(request)
    logger.info("Friend request %s %s by %s", request_id, new_status.value, user_id)
    return request


async def list_friends(db: AsyncSession, user_id: uuid.UUID) -> list[Profile]:
    """Profiles on the other side of every accepted request involving ``user_id``."""
    result = await db.execute(
        select(FriendRequest.sender_id, FriendRequest.receiver_id).where(
            or_(FriendRequest.sender_id == user_id, FriendRequest.receiver_id == user_id),
            FriendRequest.status == FriendRequestStatus.ACCEPTED.value,
        )
    )
    friend_ids = {
        receiver if sender == user_id else sender
        for sender, receiver in result.all()
    }
    if not friend_ids:
        return []

    profiles = await db.execute(
        select(Profile).where(Profile.id.in_(friend_ids)).order_by(Profile.username)
    )
    return list(profiles.scalars().all())


async def count_friends(db: AsyncSession, user_id: uuid.UUID) -> int:
    return len(await list_friends(db, user_id))


async def list_incoming_requests(db: AsyncSession, user_id: uuid.UUID) -> list[tuple[FriendRequest, Profile | None]]:
    """Pending requests addressed to ``user_id``, newest first, with the sender profile."""
    result = await db.execute(
        select(FriendRequest, Profile)
        .outerjoin(Profile, Profile.id == FriendRequest.sender_id)
        .where(
            FriendRequest.receiver_id == user_id,
            FriendRequest.status == FriendRequestStatus.PENDING.value,
        )
        .order_by(FriendRequest.created_at.desc())
    )
    return [(request, sender) for request, sender in result.all()]
