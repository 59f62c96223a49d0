"""Transport handle for one admitted WebSocket connection."""

import asyncio
import logging
from typing import Any

from aiohttp import WSCloseCode

from peerrelay.message import RelayMessage

logger = logging.getLogger(__name__)


class WebSocketPeer:
    """Send-if-ready wrapper around an aiohttp WebSocketResponse.

    Sends to a socket that is closing or closed are silent no-ops, and
    transport failures are logged rather than raised. The peer on the other
    side is presumed to be tearing down and will be reaped by the
    disconnect path or the sweeper.
    """

    def __init__(
        self,
        ws: Any,  # WebSocketResponse or compatible
        send_timeout: float = 5.0,
        label: str = "?",
    ):
        """Initialize peer with WebSocket.

        Args:
            ws: The WebSocket connection.
            send_timeout: Upper bound on a single send or close.
            label: Name used in log lines (usually the peer ID).
        """
        self._ws = ws
        self._send_timeout = send_timeout
        self._closed = False
        self.label = label

    @property
    def is_ready(self) -> bool:
        """True while the socket accepts outbound frames."""
        return not self._closed and not self._ws.closed

    @property
    def closed(self) -> bool:
        return self._closed or self._ws.closed

    async def send_message(self, message: RelayMessage) -> bool:
        """Send a message if the socket is open.

        Returns:
            True if the frame was handed to the transport, False otherwise.
        """
        if not self.is_ready:
            logger.debug(f"Dropping {message.type} for {self.label}: socket not open")
            return False

        try:
            await asyncio.wait_for(
                self._ws.send_str(message.to_json()), timeout=self._send_timeout
            )
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Send timeout to {self.label}")
        except (ConnectionError, RuntimeError) as e:
            logger.warning(f"Send to {self.label} failed: {e}")
        return False

    async def close(
        self, code: int = WSCloseCode.OK, message: bytes = b""
    ) -> None:
        """Close the socket. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        if self._ws.closed:
            return

        try:
            await asyncio.wait_for(
                self._ws.close(code=code, message=message),
                timeout=self._send_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Close timeout for {self.label}")
        except (ConnectionError, RuntimeError) as e:
            logger.debug(f"Close of {self.label} failed: {e}")
