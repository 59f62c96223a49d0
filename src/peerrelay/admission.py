"""Admission handshake for new WebSocket connections.

A connection moves through::

    CONNECTING -> CREDENTIAL_CHECKED -> IDENTIFIER_RESOLVED -> ADMITTED

or ends in REJECTED at any step. A rejected connection is notified, closed,
and never touches the registry.
"""

import hmac
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from peerrelay.errors import IdExhaustedError
from peerrelay.ids import DEFAULT_MAX_ATTEMPTS, generate_unique_id
from peerrelay.message import MessageType, RelayMessage
from peerrelay.registry import PeerRecord, PeerRegistry

logger = logging.getLogger(__name__)


class AdmissionState(Enum):
    """Admission handshake states."""

    CONNECTING = "connecting"
    CREDENTIAL_CHECKED = "credential_checked"
    IDENTIFIER_RESOLVED = "identifier_resolved"
    ADMITTED = "admitted"
    REJECTED = "rejected"


@dataclass
class ConnectionParams:
    """Parameters carried on the WebSocket upgrade request."""

    key: Optional[str] = None
    peer_id: Optional[str] = None
    token: Optional[str] = None

    @classmethod
    def from_query(cls, query: Mapping[str, str]) -> "ConnectionParams":
        """Read ``key``, ``id`` and ``token`` from a query mapping.

        An empty ``id`` counts as absent.
        """
        return cls(
            key=query.get("key"),
            peer_id=query.get("id") or None,
            token=query.get("token"),
        )


@dataclass
class AdmissionResult:
    """Outcome of one admission attempt."""

    state: AdmissionState
    record: Optional[PeerRecord] = None
    rejection: Optional[MessageType] = None
    peer_id: Optional[str] = None
    reached: Optional[AdmissionState] = None  # Last state before rejection

    @property
    def admitted(self) -> bool:
        return self.state is AdmissionState.ADMITTED


class AdmissionHandler:
    """Validates credential and peer ID, then registers the connection."""

    def __init__(
        self,
        registry: PeerRegistry,
        key: str,
        max_id_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        """Initialize admission handler.

        Args:
            registry: Registry new peers are inserted into.
            key: Shared credential clients must present.
            max_id_attempts: Retry ceiling for server-assigned IDs.
        """
        self._registry = registry
        self._key = key
        self._max_id_attempts = max_id_attempts

    def check_key(self, key: Optional[str]) -> bool:
        """Constant-time comparison against the shared credential."""
        if key is None:
            return False
        return hmac.compare_digest(key.encode(), self._key.encode())

    async def admit(self, params: ConnectionParams, peer: Any) -> AdmissionResult:
        """Run the handshake for one connection.

        On rejection the peer has been notified and closed. On success the
        record is registered and OPEN has been sent.

        Args:
            params: Upgrade request parameters.
            peer: Transport handle for the new connection.

        Returns:
            AdmissionResult describing the outcome.
        """
        state = AdmissionState.CONNECTING

        if not self.check_key(params.key):
            logger.warning("Rejected connection: invalid key")
            return await self._reject(
                peer,
                RelayMessage.create(MessageType.INVALID_KEY),
                state,
                params.peer_id,
            )
        state = AdmissionState.CREDENTIAL_CHECKED

        peer_id = params.peer_id
        if peer_id is None:
            try:
                peer_id = generate_unique_id(
                    self._registry.is_taken, max_attempts=self._max_id_attempts
                )
            except IdExhaustedError as e:
                logger.error(f"Rejected connection: {e}")
                return await self._reject(
                    peer, RelayMessage.error("Unable to allocate a peer ID"), state
                )
        elif self._registry.is_taken(peer_id):
            return await self._reject_taken(peer, peer_id, state)
        state = AdmissionState.IDENTIFIER_RESOLVED

        peer.label = peer_id
        record = PeerRecord(peer_id=peer_id, peer=peer)
        if not await self._registry.insert(record):
            # Lost a race with a concurrent admission for the same ID
            return await self._reject_taken(peer, peer_id, state)

        if params.token:
            logger.debug(f"Peer {peer_id} presented token (not validated)")

        await peer.send_message(RelayMessage.create(MessageType.OPEN))
        state = AdmissionState.ADMITTED
        return AdmissionResult(state=state, record=record, peer_id=peer_id)

    async def _reject_taken(
        self, peer: Any, peer_id: str, reached: AdmissionState
    ) -> AdmissionResult:
        logger.info(f"Rejected connection: ID {peer_id} is already in use")
        notice = RelayMessage.create(
            MessageType.ID_TAKEN, payload={"msg": f"ID {peer_id} is already in use"}
        )
        return await self._reject(peer, notice, reached, peer_id)

    async def _reject(
        self,
        peer: Any,
        notice: RelayMessage,
        reached: AdmissionState,
        peer_id: Optional[str] = None,
    ) -> AdmissionResult:
        await peer.send_message(notice)
        await peer.close()
        return AdmissionResult(
            state=AdmissionState.REJECTED,
            rejection=MessageType(notice.type),
            peer_id=peer_id,
            reached=reached,
        )
