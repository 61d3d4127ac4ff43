"""FastAPI application factory."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from cowork.config import get_settings
from cowork.database import close_db, get_session_factory, init_db
from cowork.gamification.router import router as achievements_router
from cowork.gamification.seed import seed_achievements
from cowork.health.router import router as health_router
from cowork.middleware import setup_middleware
from cowork.notifications.router import router as notifications_router
from cowork.projects.router import router as projects_router
from cowork.push.router import internal_router as push_internal_router
from cowork.push.router import router as push_router
from cowork.redis_client import close_redis, get_redis, init_redis
from cowork.social.router import router as friends_router
from cowork.ws.bridge import PubSubBridge
from cowork.ws.router import router as ws_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Seed the achievement catalog (idempotent)
    try:
        async with get_session_factory()() as db:
            await seed_achievements(db)
    except SQLAlchemyError:
        logger.warning("Achievement seeding failed (tables may not exist yet)", exc_info=True)

    # Start the Redis pub/sub -> WebSocket bridge
    bridge = PubSubBridge(get_redis())
    bridge_task = asyncio.create_task(bridge.start())

    yield

    await bridge.stop()
    bridge_task.cancel()
    try:
        await bridge_task
    except asyncio.CancelledError:
        pass

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="COWork API",
        description="Notifications, invitations and achievements for COWork projects",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(friends_router)
    app.include_router(projects_router)
    app.include_router(notifications_router)
    app.include_router(achievements_router)
    app.include_router(push_router)
    app.include_router(push_internal_router)
    app.include_router(ws_router)

    return app


app = create_app()
