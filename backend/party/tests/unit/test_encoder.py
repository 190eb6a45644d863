import msgpack
import pytest

from party.messaging.encoder import MAX_BUFFER_LEN, DecodeError, decode, encode
from party.messaging.types import SessionMessageType
from party.session.models import RoomState


class TestEncoder:
    def test_enums_and_sets_become_plain_values(self):
        data = decode(encode({"type": SessionMessageType.ACK, "state": RoomState.PLAYING, "ids": {"a"}, 1: "x"}))
        assert data == {"type": "ack", "state": "playing", "ids": ["a"], "1": "x"}

    def test_nested_structures_survive(self):
        message = {"type": "game_state", "phase": "result", "results": [{"id": "h1", "time": 240}], "winner": None}
        assert decode(encode(message)) == message

    def test_non_map_rejected(self):
        with pytest.raises(DecodeError, match="expected map"):
            decode(msgpack.packb([1, 2, 3]))

    def test_garbage_rejected(self):
        with pytest.raises(DecodeError):
            decode(b"\xc1\xff\x00")

    def test_oversized_frame_rejected(self):
        with pytest.raises(DecodeError, match="too large"):
            decode(b"\x00" * (MAX_BUFFER_LEN + 1))

    def test_oversized_string_rejected(self):
        with pytest.raises(DecodeError):
            decode(msgpack.packb({"name": "x" * 5000}))
