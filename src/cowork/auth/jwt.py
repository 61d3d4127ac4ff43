"""
Access-token verification for the hosted auth provider.

The provider signs session tokens with a shared secret (HS256 by default);
the API only verifies them. ``sub`` is the user's profile id and ``aud`` is
``authenticated`` for signed-in sessions.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from cowork.config import get_settings


def create_access_token(user_id: uuid.UUID | str, expires_in_minutes: int = 60) -> str:
    """
    Mint an access token shaped like the provider's (local development and tests).

    Args:
        user_id: The profile id placed in ``sub``.
        expires_in_minutes: Token lifetime.

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "aud": settings.jwt_audience,
        "role": "authenticated",
        "iat": now,
        "exp": now + timedelta(minutes=expires_in_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify and decode an access token.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, for another
            audience, or lacks a UUID subject.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    try:
        uuid.UUID(str(payload.get("sub")))
    except ValueError:
        msg = "Token subject is not a valid user id"
        raise jwt.InvalidTokenError(msg) from None

    return payload


def user_id_from_token(token: str) -> uuid.UUID:
    """Verify a token and return its subject as a UUID."""
    return uuid.UUID(verify_token(token)["sub"])
