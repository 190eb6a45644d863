"""
MessagePack codec for the wire format.

Every frame is a single map. Decoding enforces size limits so a hostile
client cannot make the server allocate unbounded buffers.
"""

from enum import Enum
from typing import Any

import msgpack


class DecodeError(Exception):
    """Error raised when a frame cannot be decoded into a message dict."""


MAX_BUFFER_LEN = 64 * 1024  # 64KB per frame
MAX_STR_LEN = 4 * 1024
MAX_BIN_LEN = 4 * 1024
MAX_ARRAY_LEN = 512
MAX_MAP_LEN = 64
MAX_EXT_LEN = 256


def _to_wire(obj: object) -> object:
    """Convert enum values and non-string map keys into msgpack-friendly types."""
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {str(k) if not isinstance(k, str) else k: _to_wire(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [_to_wire(item) for item in obj]
    return obj


def encode(data: dict[str, Any]) -> bytes:
    return msgpack.packb(_to_wire(data))


def decode(data: bytes) -> dict[str, Any]:
    """
    Decode MessagePack bytes to a dict.

    Raises DecodeError if data is invalid, not a map, or exceeds size limits.
    """
    if len(data) > MAX_BUFFER_LEN:
        raise DecodeError(f"payload too large: {len(data)} bytes (max {MAX_BUFFER_LEN})")
    try:
        result = msgpack.unpackb(
            data,
            raw=False,
            max_str_len=MAX_STR_LEN,
            max_bin_len=MAX_BIN_LEN,
            max_array_len=MAX_ARRAY_LEN,
            max_map_len=MAX_MAP_LEN,
            max_ext_len=MAX_EXT_LEN,
        )
    except (msgpack.UnpackException, ValueError) as e:
        raise DecodeError(f"failed to decode MessagePack data: {e}") from e

    if not isinstance(result, dict):
        raise DecodeError(f"expected map, got {type(result).__name__}")

    return result
