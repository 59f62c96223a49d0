"""Tests for WebSocketPeer send-if-ready behaviour."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from peerrelay.message import MessageType, RelayMessage
from peerrelay.peer import WebSocketPeer


def make_ws(closed: bool = False):
    ws = MagicMock()
    ws.closed = closed
    ws.send_str = AsyncMock()
    ws.close = AsyncMock()
    return ws


class TestWebSocketPeer:
    """Tests for WebSocketPeer."""

    @pytest.mark.asyncio
    async def test_send_when_open(self):
        ws = make_ws()
        peer = WebSocketPeer(ws)

        sent = await peer.send_message(RelayMessage.create(MessageType.OPEN))

        assert sent is True
        ws.send_str.assert_awaited_once_with('{"type": "OPEN"}')

    @pytest.mark.asyncio
    async def test_send_when_closed_is_noop(self):
        """Sending to a closed socket does nothing and does not raise."""
        ws = make_ws(closed=True)
        peer = WebSocketPeer(ws)

        sent = await peer.send_message(RelayMessage.create(MessageType.OPEN))

        assert sent is False
        ws.send_str.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_failure_is_swallowed(self, caplog):
        ws = make_ws()
        ws.send_str.side_effect = ConnectionResetError("reset")
        peer = WebSocketPeer(ws, label="alice")

        sent = await peer.send_message(RelayMessage.create(MessageType.EXPIRE))

        assert sent is False
        assert "Send to alice failed" in caplog.text

    @pytest.mark.asyncio
    async def test_send_timeout(self, caplog):
        """A stuck transport is abandoned after send_timeout."""
        ws = make_ws()

        async def stuck(data):
            await asyncio.sleep(10)

        ws.send_str.side_effect = stuck
        peer = WebSocketPeer(ws, send_timeout=0.01, label="slow")

        sent = await peer.send_message(RelayMessage.create(MessageType.EXPIRE))

        assert sent is False
        assert "Send timeout to slow" in caplog.text

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        ws = make_ws()
        peer = WebSocketPeer(ws)

        await peer.close()
        await peer.close()

        ws.close.assert_awaited_once()
        assert peer.closed
        assert not peer.is_ready

    @pytest.mark.asyncio
    async def test_close_skips_already_closed_socket(self):
        ws = make_ws(closed=True)
        peer = WebSocketPeer(ws)

        await peer.close()

        ws.close.assert_not_called()
