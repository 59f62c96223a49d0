"""Registry of admitted peers, keyed by peer ID."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)


class PeerProtocol(Protocol):
    """Protocol for peer transport handles."""

    @property
    def is_ready(self) -> bool:
        """True while the transport accepts outbound frames."""
        ...

    async def send_message(self, message: Any) -> bool:
        """Send a message if the transport is open."""
        ...

    async def close(self) -> None:
        """Close the transport."""
        ...


@dataclass
class PeerRecord:
    """One admitted peer."""

    peer_id: str
    peer: Any  # PeerProtocol
    last_heartbeat: float = field(default_factory=time.monotonic)
    connected_at: float = field(default_factory=time.time)

    def touch(self) -> None:
        """Record a keep-alive."""
        self.last_heartbeat = time.monotonic()

    def idle_for(self, now: Optional[float] = None) -> float:
        """Seconds since the last keep-alive."""
        if now is None:
            now = time.monotonic()
        return now - self.last_heartbeat

    async def send(self, message: Any) -> bool:
        """Send to this peer if its transport is open."""
        return await self.peer.send_message(message)


class PeerRegistry:
    """Mapping of peer ID to PeerRecord.

    Mutations are serialized by a single asyncio lock, and no transport I/O
    is awaited while it is held. Lookups read the dict directly: between two
    awaits an entry is either fully present or fully absent.
    """

    def __init__(self):
        """Initialize empty registry."""
        self._peers: dict[str, PeerRecord] = {}
        self._lock = asyncio.Lock()

    async def insert(self, record: PeerRecord) -> bool:
        """Insert a record unless its peer ID is already taken.

        Returns:
            True if inserted, False if the ID was already present.
        """
        async with self._lock:
            if record.peer_id in self._peers:
                return False
            self._peers[record.peer_id] = record
            count = len(self._peers)

        logger.info(f"Peer connected: {record.peer_id} ({count} peers connected)")
        return True

    def lookup(self, peer_id: str) -> Optional[PeerRecord]:
        """Get record by peer ID."""
        return self._peers.get(peer_id)

    async def remove(
        self, peer_id: str, record: Optional[PeerRecord] = None
    ) -> Optional[PeerRecord]:
        """Remove a peer and close its transport.

        Every path that drops a peer ends here. Removing an absent ID is a
        no-op.

        Args:
            peer_id: Peer to remove.
            record: If given, only remove while this exact record is the
                registered one. A stale connection closing late must not
                evict a newer holder of the same ID.

        Returns:
            The removed record, or None if nothing was removed.
        """
        async with self._lock:
            current = self._peers.get(peer_id)
            if current is None or (record is not None and current is not record):
                removed = None
            else:
                removed = self._peers.pop(peer_id)
            count = len(self._peers)

        if removed is None:
            # Still close the caller's own transport if it was displaced.
            if record is not None:
                await record.peer.close()
            return None

        await removed.peer.close()
        logger.info(f"Peer disconnected: {peer_id} ({count} peers connected)")
        return removed

    async def snapshot(self) -> list[PeerRecord]:
        """Point-in-time copy of all records."""
        async with self._lock:
            return list(self._peers.values())

    async def snapshot_ids(self) -> list[str]:
        """Point-in-time copy of all peer IDs."""
        async with self._lock:
            return list(self._peers)

    def is_taken(self, peer_id: str) -> bool:
        """Check whether a peer ID is currently registered."""
        return peer_id in self._peers

    async def close_all(self) -> None:
        """Drain the registry and close every transport."""
        async with self._lock:
            records = list(self._peers.values())
            self._peers.clear()

        if records:
            await asyncio.gather(
                *[record.peer.close() for record in records],
                return_exceptions=True,
            )
            logger.info(f"Closed {len(records)} peer connections")

    def __len__(self) -> int:
        return len(self._peers)

    def __contains__(self, peer_id: str) -> bool:
        return peer_id in self._peers
