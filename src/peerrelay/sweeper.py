"""
Liveness sweeper: evicts peers that stopped sending keep-alives.

Clients send HEARTBEAT every ``interval`` seconds. The sweeper wakes on its
own period, and any peer silent for longer than ``timeout`` gets an EXPIRE
notice and is removed through the registry's normal removal path.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from peerrelay.config import HeartbeatConfig
from peerrelay.message import MessageType, RelayMessage
from peerrelay.registry import PeerRecord, PeerRegistry

logger = logging.getLogger(__name__)


class LivenessSweeper:
    """Periodically evicts stale peers from a registry.

    Usage:
        sweeper = LivenessSweeper(registry, config)
        await sweeper.start()
        ...
        await sweeper.stop()
    """

    def __init__(
        self,
        registry: PeerRegistry,
        config: HeartbeatConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the sweeper.

        Args:
            registry: Registry to sweep.
            config: Heartbeat timing.
            clock: Monotonic time source, same one PeerRecord uses.
        """
        self._registry = registry
        self._config = config
        self._clock = clock
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def config(self) -> HeartbeatConfig:
        """Get the heartbeat configuration."""
        return self._config

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the sweep loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(
            f"Liveness sweeper started (period={self._config.sweep_interval}s, "
            f"timeout={self._config.timeout}s)"
        )

    async def stop(self) -> None:
        """Stop the sweep loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Liveness sweeper stopped")

    def is_stale(self, record: PeerRecord, now: Optional[float] = None) -> bool:
        if now is None:
            now = self._clock()
        return record.idle_for(now) > self._config.timeout

    async def sweep(self) -> list[str]:
        """Run one sweep pass.

        Returns:
            IDs of the peers evicted by this pass.
        """
        now = self._clock()
        stale = [r for r in await self._registry.snapshot() if self.is_stale(r, now)]
        if not stale:
            return []

        results = await asyncio.gather(
            *[self._evict(record) for record in stale],
            return_exceptions=True,
        )

        evicted = []
        for record, result in zip(stale, results):
            if isinstance(result, Exception):
                logger.warning(f"Eviction of {record.peer_id} failed: {result}")
            elif result:
                evicted.append(record.peer_id)
        return evicted

    async def _evict(self, record: PeerRecord) -> bool:
        logger.info(
            f"Peer timed out: {record.peer_id} "
            f"({record.idle_for(self._clock()):.0f}s since last heartbeat)"
        )
        try:
            await record.send(RelayMessage.create(MessageType.EXPIRE))
        finally:
            removed = await self._registry.remove(record.peer_id, record)
        return removed is not None

    async def _sweep_loop(self) -> None:
        """Main loop that evicts stale peers."""
        while self._running:
            try:
                await asyncio.sleep(self._config.sweep_interval)
                await self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Sweep loop error: {e}")
