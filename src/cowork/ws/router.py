"""WebSocket endpoint for realtime inbox updates."""

import json
import uuid

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from cowork.auth.jwt import user_id_from_token
from cowork.database import get_session_factory
from cowork.notifications.aggregator import NotificationAggregator
from cowork.notifications.hub import EVENT_COUNTS
from cowork.ws.manager import manager

logger = structlog.get_logger()

router = APIRouter()


async def _current_counts(user_id: uuid.UUID) -> dict:
    async with get_session_factory()() as db:
        return await NotificationAggregator(db).counts(user_id)


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    """Per-user event stream, authenticated with the access token.

    Protocol:
        Client -> Server:
            {"action": "ping"}
            {"action": "refresh"}

        Server -> Client:
            {"type": "notification_counts", "payload": {...}}
            {"type": "achievement_unlocked", "payload": {...}}
            {"type": "pong"}
            {"type": "error", "message": "..."}

    The current counts are sent right after connecting and on every refresh.
    """
    try:
        user_id = user_id_from_token(token)
    except Exception as e:
        await websocket.close(code=4001, reason=f"Authentication failed: {e}")
        return

    conn_id = str(uuid.uuid4())
    await manager.connect(websocket, conn_id, user_id)

    try:
        await websocket.send_json({"type": EVENT_COUNTS, "payload": await _current_counts(user_id)})

        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue

            action = msg.get("action") if isinstance(msg, dict) else None

            if action == "ping":
                await websocket.send_json({"type": "pong"})

            elif action == "refresh":
                await websocket.send_json({"type": EVENT_COUNTS, "payload": await _current_counts(user_id)})

            else:
                await websocket.send_json({
                    "type": "error",
                    "message": f"Unknown action: {action}",
                })

    except WebSocketDisconnect:
        await manager.disconnect(conn_id)
    except Exception:
        logger.exception("ws_error", conn_id=conn_id)
        await manager.disconnect(conn_id)
