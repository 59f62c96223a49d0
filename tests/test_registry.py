"""Tests for the peer registry."""

import asyncio
import time

import pytest

from helpers import MockPeer
from peerrelay.registry import PeerRecord, PeerRegistry


def record(peer_id: str) -> PeerRecord:
    return PeerRecord(peer_id=peer_id, peer=MockPeer(peer_id))


class TestPeerRecord:
    """Tests for PeerRecord."""

    def test_touch_updates_heartbeat(self):
        rec = record("alice")
        rec.last_heartbeat = time.monotonic() - 30.0

        rec.touch()

        assert rec.idle_for() < 1.0

    def test_idle_for_with_explicit_now(self):
        rec = record("alice")
        rec.last_heartbeat = 100.0
        assert rec.idle_for(now=112.5) == 12.5

    @pytest.mark.asyncio
    async def test_send_delegates_to_peer(self):
        from peerrelay.message import MessageType, RelayMessage

        rec = record("alice")
        await rec.send(RelayMessage.create(MessageType.OPEN))
        assert rec.peer.sent == [{"type": "OPEN"}]


class TestInsertAndLookup:
    """Tests for insert() and lookup()."""

    @pytest.mark.asyncio
    async def test_insert_new(self):
        registry = PeerRegistry()
        rec = record("alice")

        assert await registry.insert(rec) is True
        assert registry.lookup("alice") is rec
        assert "alice" in registry
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_insert_duplicate_rejected(self):
        """A second record for the same ID is refused and the first kept."""
        registry = PeerRegistry()
        first = record("alice")
        second = record("alice")
        await registry.insert(first)

        assert await registry.insert(second) is False
        assert registry.lookup("alice") is first
        assert len(registry) == 1
        assert first.peer.close_count == 0

    @pytest.mark.asyncio
    async def test_concurrent_inserts_single_winner(self):
        """Concurrent inserts of one ID: exactly one succeeds."""
        registry = PeerRegistry()
        records = [record("alice") for _ in range(20)]

        results = await asyncio.gather(*[registry.insert(r) for r in records])

        assert results.count(True) == 1
        assert len(registry) == 1
        winner = records[results.index(True)]
        assert registry.lookup("alice") is winner

    def test_lookup_absent(self):
        assert PeerRegistry().lookup("nobody") is None

    @pytest.mark.asyncio
    async def test_is_taken(self):
        registry = PeerRegistry()
        await registry.insert(record("alice"))
        assert registry.is_taken("alice")
        assert not registry.is_taken("bob")


class TestRemove:
    """Tests for remove()."""

    @pytest.mark.asyncio
    async def test_remove_closes_transport(self):
        registry = PeerRegistry()
        rec = record("alice")
        await registry.insert(rec)

        removed = await registry.remove("alice")

        assert removed is rec
        assert "alice" not in registry
        assert rec.peer.close_count == 1

    @pytest.mark.asyncio
    async def test_remove_absent_is_noop(self):
        assert await PeerRegistry().remove("ghost") is None

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self):
        """Removing twice leaves the same end state as removing once."""
        registry = PeerRegistry()
        rec = record("alice")
        await registry.insert(rec)

        first, second = await asyncio.gather(
            registry.remove("alice", rec), registry.remove("alice", rec)
        )

        assert [first, second].count(rec) == 1
        assert [first, second].count(None) == 1
        assert "alice" not in registry
        assert rec.peer.closed

    @pytest.mark.asyncio
    async def test_remove_with_stale_record_keeps_current(self):
        """A late close from an old connection must not evict the new one."""
        registry = PeerRegistry()
        old = record("alice")
        await registry.insert(old)
        await registry.remove("alice", old)
        new = record("alice")
        await registry.insert(new)

        assert await registry.remove("alice", old) is None
        assert registry.lookup("alice") is new
        assert new.peer.close_count == 0


class TestSnapshot:
    """Tests for snapshot()/snapshot_ids()/close_all()."""

    @pytest.mark.asyncio
    async def test_snapshot_ids(self):
        registry = PeerRegistry()
        for peer_id in ("alice", "bob", "carol"):
            await registry.insert(record(peer_id))
        await registry.remove("bob")

        assert sorted(await registry.snapshot_ids()) == ["alice", "carol"]

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self):
        registry = PeerRegistry()
        await registry.insert(record("alice"))

        snap = await registry.snapshot()
        await registry.remove("alice")

        assert [r.peer_id for r in snap] == ["alice"]
        assert await registry.snapshot() == []

    @pytest.mark.asyncio
    async def test_close_all(self):
        registry = PeerRegistry()
        records = [record(i) for i in ("a", "b")]
        for rec in records:
            await registry.insert(rec)

        await registry.close_all()

        assert len(registry) == 0
        assert all(rec.peer.closed for rec in records)
