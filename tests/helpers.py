"""Shared test doubles."""

import json


class MockPeer:
    """In-memory transport handle for testing."""

    def __init__(self, label: str = "?", ready: bool = True):
        self.label = label
        self.ready = ready
        self.sent = []
        self.close_count = 0

    @property
    def is_ready(self) -> bool:
        return self.ready

    @property
    def closed(self) -> bool:
        return self.close_count > 0

    async def send_message(self, message) -> bool:
        if not self.ready:
            return False
        self.sent.append(message.to_dict())
        return True

    async def close(self) -> None:
        self.close_count += 1
        self.ready = False

    def sent_types(self) -> list[str]:
        return [m["type"] for m in self.sent]


def frame(**fields) -> str:
    """Encode a client frame."""
    return json.dumps(fields)
