"""WebSocket endpoint protocol, driven with a mock socket."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest
from fastapi import WebSocketDisconnect

from cowork.auth.jwt import create_access_token
from cowork.db.models import Profile
from cowork.social.friends_service import send_friend_request
from cowork.ws.manager import manager
from cowork.ws.router import websocket_endpoint


def _socket(*incoming: str) -> AsyncMock:
    ws = AsyncMock()
    ws.receive_text = AsyncMock(side_effect=[*incoming, WebSocketDisconnect()])
    return ws


def _sent(ws: AsyncMock) -> list[dict]:
    return [call.args[0] for call in ws.send_json.await_args_list]


class TestWebSocketEndpoint:
    @pytest.mark.asyncio
    async def test_bad_token_closes_4001(self) -> None:
        ws = _socket()
        await websocket_endpoint(ws, token="not-a-jwt")
        ws.close.assert_awaited_once()
        assert ws.close.await_args.kwargs["code"] == 4001
        ws.accept.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_initial_counts_and_actions(self, db_session, alice: Profile, bob: Profile) -> None:
        await send_friend_request(db_session, bob.id, alice.id)
        await db_session.commit()
        ws = _socket(
            json.dumps({"action": "ping"}),
            json.dumps({"action": "refresh"}),
            json.dumps({"action": "dance"}),
            "{broken",
        )

        await websocket_endpoint(ws, token=create_access_token(alice.id))

        messages = _sent(ws)
        assert messages[0]["type"] == "notification_counts"
        assert messages[0]["payload"]["friend_requests"] == 1
        assert messages[0]["payload"]["total"] == 1
        assert messages[1] == {"type": "pong"}
        assert messages[2]["type"] == "notification_counts"
        assert messages[3] == {"type": "error", "message": "Unknown action: dance"}
        assert messages[4] == {"type": "error", "message": "Invalid JSON"}
        assert not manager.is_connected(alice.id)
