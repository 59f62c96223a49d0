"""Tests for the relay wire format."""

import json

import pytest

from peerrelay.errors import MessageError
from peerrelay.message import (
    ADDRESSED_TYPES,
    MessageType,
    RelayMessage,
    parse_message,
)


class TestMessageType:
    """Tests for MessageType."""

    def test_wire_values(self):
        """Wire names use hyphens where the protocol does."""
        assert MessageType.ID_TAKEN.value == "ID-TAKEN"
        assert MessageType.INVALID_KEY.value == "INVALID-KEY"
        assert len(MessageType) == 10

    def test_addressed_types(self):
        assert ADDRESSED_TYPES == {
            MessageType.OFFER,
            MessageType.ANSWER,
            MessageType.CANDIDATE,
        }


class TestParseMessage:
    """Tests for parse_message()."""

    def test_parse_offer(self):
        msg = parse_message(
            '{"type": "OFFER", "dst": "bob", "payload": {"sdp": "v=0"}}'
        )

        assert msg.message_type is MessageType.OFFER
        assert msg.dst == "bob"
        assert msg.payload == {"sdp": "v=0"}

    def test_parse_bytes(self):
        assert parse_message(b'{"type": "HEARTBEAT"}').type == "HEARTBEAT"

    def test_invalid_json(self):
        with pytest.raises(MessageError):
            parse_message("{not json")

    def test_non_object(self):
        with pytest.raises(MessageError):
            parse_message('["OFFER"]')

    def test_missing_type(self):
        with pytest.raises(MessageError):
            parse_message('{"dst": "bob"}')

    def test_non_string_type(self):
        with pytest.raises(MessageError):
            parse_message('{"type": 7}')

    def test_unknown_type_parses(self):
        """Unrecognised types are kept so the relay can log them."""
        msg = parse_message('{"type": "PING"}')
        assert msg.type == "PING"
        assert msg.message_type is None

    def test_empty_dst_is_absent(self):
        assert parse_message('{"type": "OFFER", "dst": ""}').dst is None

    def test_non_string_dst_kept(self):
        assert parse_message('{"type": "OFFER", "dst": 5}').dst == 5

    @pytest.mark.parametrize(
        "raw",
        [
            '{"type": "OFFER", "payload": NaN}',
            '{"type": "OFFER", "payload": -Infinity}',
            '{"type": "OFFER", "payload": 1e400}',
        ],
    )
    def test_non_finite_number_rejected(self, raw):
        with pytest.raises(MessageError):
            parse_message(raw)

    def test_extra_fields_kept(self):
        msg = parse_message('{"type": "OFFER", "dst": "bob", "sdpMid": "0"}')
        assert msg.extra == {"sdpMid": "0"}


class TestRelayMessageSerialization:
    """Tests for RelayMessage.to_dict()/to_json()."""

    def test_server_message_omits_absent_fields(self):
        assert RelayMessage.create(MessageType.OPEN).to_dict() == {"type": "OPEN"}

    def test_error_message(self):
        msg = RelayMessage.error("Peer carol not found")
        assert json.loads(msg.to_json()) == {
            "type": "ERROR",
            "payload": {"msg": "Peer carol not found"},
        }

    def test_forwarded_frame_preserves_payload_and_extras(self):
        """Everything except src survives a parse/stamp/serialize pass."""
        inbound = {
            "type": "CANDIDATE",
            "src": "mallory",
            "dst": "bob",
            "payload": {"candidate": "a=1", "nested": [1, 2.5, None, "x"]},
            "connectionId": "dc_1",
        }
        msg = parse_message(json.dumps(inbound))
        msg.src = "alice"

        assert msg.to_dict() == {**inbound, "src": "alice"}

    def test_explicit_null_payload_is_kept(self):
        msg = parse_message('{"type": "ANSWER", "dst": "bob", "payload": null}')
        assert "payload" in msg.to_dict()
        assert msg.to_dict()["payload"] is None

    def test_non_ascii_text_written_verbatim(self):
        msg = parse_message('{"type": "OFFER", "dst": "bob", "payload": {"sdp": "café"}}')
        assert '"café"' in msg.to_json()
