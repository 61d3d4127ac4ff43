"""FastAPI authentication dependencies."""

from __future__ import annotations

import secrets
import uuid

import jwt
from fastapi import Depends, Header, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cowork.auth.jwt import verify_token
from cowork.config import get_settings
from cowork.database import get_session
from cowork.db.models import Profile

_bearer = HTTPBearer()


async def get_profile_by_id(db: AsyncSession, user_id: uuid.UUID) -> Profile | None:
    """Fetch a profile by id."""
    result = await db.execute(select(Profile).where(Profile.id == user_id))
    return result.scalar_one_or_none()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> Profile:
    """
    Verify the bearer token and return the caller's profile.

    Raises 401 when the token is invalid or the profile does not exist.
    """
    try:
        payload = verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    profile = await get_profile_by_id(db, uuid.UUID(payload["sub"]))
    if profile is None:
        raise HTTPException(status_code=401, detail="User not found")
    return profile


async def require_internal_token(
    x_internal_token: str | None = Header(default=None),
) -> None:
    """Guard for service-to-service endpoints (push fan-out, queue drain)."""
    expected = get_settings().internal_api_token
    if not x_internal_token or not secrets.compare_digest(x_internal_token, expected):
        raise HTTPException(status_code=403, detail="Invalid internal token")
