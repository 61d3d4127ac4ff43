"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator
from typing import Any

from cowork.database import get_session as _get_session
from cowork.redis_client import get_redis_or_none

get_db = _get_session


async def get_redis_dep() -> AsyncGenerator[Any | None, None]:
    """Yield the Redis client (or None when not initialized) as a FastAPI dependency."""
    yield get_redis_or_none()
