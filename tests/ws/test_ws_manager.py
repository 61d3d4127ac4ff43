"""Unit tests for the WebSocket ConnectionManager."""

from __future__ import annotations

import json
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from cowork.ws.manager import ConnectionManager

USER_A = uuid.uuid4()
USER_B = uuid.uuid4()


@pytest.fixture
def mgr() -> ConnectionManager:
    """Fresh ConnectionManager for each test."""
    return ConnectionManager()


def _make_ws(*, fail_send: bool = False) -> MagicMock:
    """Create a mock WebSocket."""
    ws = AsyncMock()
    ws.accept = AsyncMock()
    if fail_send:
        ws.send_text = AsyncMock(side_effect=RuntimeError("connection closed"))
    else:
        ws.send_text = AsyncMock()
    return ws


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_registers_client(self, mgr: ConnectionManager) -> None:
        ws = _make_ws()
        await mgr.connect(ws, "conn-1", USER_A)
        ws.accept.assert_awaited_once()
        assert mgr.connection_count == 1
        assert mgr.is_connected(USER_A)
        assert mgr.get_stats() == {"total_connections": 1, "unique_users": 1}

    @pytest.mark.asyncio
    async def test_multiple_tabs_same_user(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", USER_A)
        await mgr.connect(_make_ws(), "conn-2", USER_A)
        assert mgr.connection_count == 2
        assert mgr.get_stats()["unique_users"] == 1

    @pytest.mark.asyncio
    async def test_disconnect_forgets_user(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", USER_A)
        await mgr.disconnect("conn-1")
        assert mgr.connection_count == 0
        assert not mgr.is_connected(USER_A)

    @pytest.mark.asyncio
    async def test_disconnect_unknown_is_noop(self, mgr: ConnectionManager) -> None:
        await mgr.disconnect("nope")
        assert mgr.connection_count == 0


class TestSendToUser:
    @pytest.mark.asyncio
    async def test_reaches_every_connection_of_user(self, mgr: ConnectionManager) -> None:
        ws1, ws2, other = _make_ws(), _make_ws(), _make_ws()
        await mgr.connect(ws1, "conn-1", USER_A)
        await mgr.connect(ws2, "conn-2", USER_A)
        await mgr.connect(other, "conn-3", USER_B)

        sent = await mgr.send_to_user_direct(USER_A, {"type": "notification_counts", "payload": {"total": 3}})

        assert sent == 2
        assert json.loads(ws1.send_text.await_args.args[0])["payload"] == {"total": 3}
        ws2.send_text.assert_awaited_once()
        other.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_offline_user(self, mgr: ConnectionManager) -> None:
        assert await mgr.send_to_user_direct(USER_A, {"type": "pong"}) == 0

    @pytest.mark.asyncio
    async def test_failed_connection_is_dropped(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(fail_send=True), "dead", USER_A)
        await mgr.connect(_make_ws(), "alive", USER_A)

        assert await mgr.send_to_user_direct(USER_A, {"type": "pong"}) == 1
        assert mgr.connection_count == 1
