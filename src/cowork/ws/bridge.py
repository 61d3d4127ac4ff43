"""Bridges Redis pub/sub to WebSocket clients.

One bridge per API process pattern-subscribes to ``ws:user:*`` and forwards
each message to the matching user's connections.
"""

import asyncio
import json
import uuid

import redis.asyncio as aioredis
import structlog

from cowork.ws.manager import ConnectionManager, manager as default_manager

logger = structlog.get_logger()

USER_CHANNEL_PATTERN = "ws:user:*"
USER_CHANNEL_PREFIX = "ws:user:"


class PubSubBridge:
    """Subscribes to Redis pub/sub and pushes messages to WebSocket clients."""

    def __init__(self, redis_client: aioredis.Redis, connections: ConnectionManager | None = None) -> None:
        self.redis = redis_client
        self.connections = connections or default_manager
        self._running = False

    async def dispatch(self, message: dict) -> int:
        """Route one pub/sub message. Returns the number of connections reached."""
        if message.get("type") != "pmessage":
            return 0

        redis_channel = message.get("channel", "")
        if isinstance(redis_channel, bytes):
            redis_channel = redis_channel.decode()
        if not redis_channel.startswith(USER_CHANNEL_PREFIX):
            return 0

        try:
            user_id = uuid.UUID(redis_channel[len(USER_CHANNEL_PREFIX):])
        except ValueError:
            logger.warning("pubsub_invalid_user_id", channel=redis_channel)
            return 0

        try:
            data = message.get("data", b"")
            if isinstance(data, bytes):
                data = data.decode()
            payload = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
            logger.warning("pubsub_invalid_message", channel=redis_channel)
            return 0

        event_type = payload.get("event", "notification")
        sent = await self.connections.send_to_user_direct(user_id, {
            "type": event_type,
            "payload": payload.get("data", payload),
        })
        if sent > 0:
            logger.debug("user_event_sent", user_id=str(user_id), event=event_type, recipients=sent)
        return sent

    async def start(self) -> None:
        """Listen until stopped or cancelled."""
        self._running = True
        pubsub = self.redis.pubsub()
        await pubsub.psubscribe(USER_CHANNEL_PATTERN)
        logger.info("pubsub_bridge_started", patterns=[USER_CHANNEL_PATTERN])

        try:
            while self._running:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0,
                )
                if message is None:
                    continue
                await self.dispatch(message)
        except asyncio.CancelledError:
            pass
        finally:
            await pubsub.punsubscribe()
            await pubsub.aclose()
            logger.info("pubsub_bridge_stopped")

    async def stop(self) -> None:
        """Signal the bridge to stop."""
        self._running = False
