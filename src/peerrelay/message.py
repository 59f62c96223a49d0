"""Wire format for relay messages.

Every frame is a JSON object:

    {"type": "OFFER", "src": "alice", "dst": "bob", "payload": {...}}

``src`` is always stamped by the server. ``payload`` and any additional
top-level keys are opaque and forwarded untouched.
"""

import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from peerrelay.errors import MessageError

__all__ = [
    "ADDRESSED_TYPES",
    "MessageError",
    "MessageType",
    "RelayMessage",
    "parse_message",
]


class MessageType(str, Enum):
    """Message types understood by the relay."""

    OPEN = "OPEN"  # Server -> client: admitted
    ERROR = "ERROR"  # Server -> client: relay failure
    ID_TAKEN = "ID-TAKEN"  # Server -> client: requested ID in use
    INVALID_KEY = "INVALID-KEY"  # Server -> client: wrong credential
    LEAVE = "LEAVE"  # Client -> server: disconnecting
    EXPIRE = "EXPIRE"  # Server -> client: evicted for missing keep-alives
    OFFER = "OFFER"  # Client -> client
    ANSWER = "ANSWER"  # Client -> client
    CANDIDATE = "CANDIDATE"  # Client -> client
    HEARTBEAT = "HEARTBEAT"  # Client -> server: keep-alive


ADDRESSED_TYPES = frozenset(
    {MessageType.OFFER, MessageType.ANSWER, MessageType.CANDIDATE}
)

_KNOWN_FIELDS = ("type", "src", "dst", "payload")


@dataclass
class RelayMessage:
    """A single relay frame.

    Attributes:
        type: Raw type string. May be a value outside MessageType.
        src: Sender peer ID (server-stamped).
        dst: Destination peer ID, for addressed types.
        payload: Opaque payload, never interpreted.
        extra: Any other top-level keys from the inbound frame.
    """

    type: str
    src: Optional[str] = None
    dst: Any = None  # Normally a peer ID; non-string values never match
    payload: Any = None
    extra: dict[str, Any] = field(default_factory=dict)
    has_payload: bool = False

    @classmethod
    def create(
        cls,
        type: MessageType,
        payload: Any = None,
        src: Optional[str] = None,
        dst: Optional[str] = None,
    ) -> "RelayMessage":
        """Build a server-originated message."""
        return cls(
            type=type.value,
            src=src,
            dst=dst,
            payload=payload,
            has_payload=payload is not None,
        )

    @classmethod
    def error(cls, msg: str) -> "RelayMessage":
        """Build an ERROR notification with a human-readable message."""
        return cls.create(MessageType.ERROR, payload={"msg": msg})

    @property
    def message_type(self) -> Optional[MessageType]:
        """Known type, or None for unrecognised type strings."""
        try:
            return MessageType(self.type)
        except ValueError:
            return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dict for JSON serialization, omitting absent fields."""
        d: dict[str, Any] = dict(self.extra)
        d["type"] = self.type
        if self.src is not None:
            d["src"] = self.src
        if self.dst is not None:
            d["dst"] = self.dst
        if self.has_payload:
            d["payload"] = self.payload
        return d

    def to_json(self) -> str:
        """Serialize to a JSON text frame."""
        return json.dumps(self.to_dict(), ensure_ascii=False, allow_nan=False)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "RelayMessage":
        """Create message from a decoded JSON object.

        Raises:
            MessageError: If ``type`` is missing or not a string.
        """
        msg_type = d.get("type")
        if not isinstance(msg_type, str):
            raise MessageError("Message has no type")
        dst = d.get("dst")
        src = d.get("src")
        return cls(
            type=msg_type,
            src=src if isinstance(src, str) else None,
            dst=dst if dst not in (None, "") else None,
            payload=d.get("payload"),
            extra={k: v for k, v in d.items() if k not in _KNOWN_FIELDS},
            has_payload="payload" in d,
        )


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-finite number {name} is not valid JSON")


def _parse_float(text: str) -> float:
    value = float(text)
    if math.isinf(value):
        raise ValueError(f"Number {text} is out of range")
    return value


def parse_message(data: str | bytes) -> RelayMessage:
    """Decode one inbound frame.

    Args:
        data: Raw frame text.

    Returns:
        Parsed RelayMessage.

    Raises:
        MessageError: On invalid JSON, a non-finite number, a non-object
            document, or a missing type.
    """
    try:
        decoded = json.loads(
            data, parse_constant=_reject_constant, parse_float=_parse_float
        )
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MessageError(f"Invalid JSON: {e}") from e
    except ValueError as e:
        raise MessageError(str(e)) from e

    if not isinstance(decoded, dict):
        raise MessageError("Message is not a JSON object")

    return RelayMessage.from_dict(decoded)
