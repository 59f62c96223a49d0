"""Relay engine: interprets inbound frames from admitted peers."""

import logging

from peerrelay.errors import MessageError
from peerrelay.message import (
    ADDRESSED_TYPES,
    MessageType,
    RelayMessage,
    parse_message,
)
from peerrelay.registry import PeerRecord, PeerRegistry

logger = logging.getLogger(__name__)


class RelayEngine:
    """Dispatches one inbound frame at a time for an admitted peer.

    Malformed frames and unknown types are logged and dropped; neither
    closes the connection. A relay to an absent peer is reported to the
    sender as ERROR.
    """

    def __init__(self, registry: PeerRegistry):
        self._registry = registry

    async def handle(self, record: PeerRecord, data: str | bytes) -> None:
        """Process one raw frame from ``record``'s connection."""
        try:
            message = parse_message(data)
        except MessageError as e:
            logger.warning(f"[{record.peer_id}] Dropping malformed message: {e}")
            return

        await self.dispatch(record, message)

    async def dispatch(self, record: PeerRecord, message: RelayMessage) -> None:
        """Route a parsed message. The source is always the sender's ID."""
        message.src = record.peer_id
        msg_type = message.message_type

        if msg_type is MessageType.HEARTBEAT:
            record.touch()

        elif msg_type is MessageType.LEAVE:
            logger.debug(f"[{record.peer_id}] LEAVE")
            await self._registry.remove(record.peer_id, record)

        elif msg_type in ADDRESSED_TYPES:
            await self._relay(record, message)

        else:
            logger.info(f"[{record.peer_id}] Unknown message type: {message.type}")

    async def _relay(self, record: PeerRecord, message: RelayMessage) -> None:
        if message.dst is None:
            logger.debug(f"[{record.peer_id}] Ignoring {message.type} without dst")
            return

        target = (
            self._registry.lookup(message.dst) if isinstance(message.dst, str) else None
        )
        if target is None:
            logger.debug(
                f"[{record.peer_id}] {message.type} to unknown peer {message.dst}"
            )
            await record.send(RelayMessage.error(f"Peer {message.dst} not found"))
            return

        await target.send(message)
