"""Ephemeral identity helpers: connection handles, bot handles, and room codes."""

import itertools
import secrets
from collections.abc import Callable
from uuid import uuid4

# Visually ambiguous characters (I, O, 0, 1) are excluded.
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 4

_MAX_CODE_ATTEMPTS = 1000

_bot_counter = itertools.count(1)


class RoomCodesExhaustedError(RuntimeError):
    """Raised when no free room code could be found."""


def new_connection_handle() -> str:
    return str(uuid4())


def new_bot_handle() -> str:
    return f"bot-{next(_bot_counter)}-{secrets.token_hex(3)}"


def is_valid_room_code(code: str) -> bool:
    return len(code) == ROOM_CODE_LENGTH and all(c in ROOM_CODE_ALPHABET for c in code)


def generate_room_code(is_taken: Callable[[str], bool]) -> str:
    """Draw random codes until one is not taken by a live room."""
    for _ in range(_MAX_CODE_ATTEMPTS):
        code = "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))
        if not is_taken(code):
            return code
    raise RoomCodesExhaustedError(f"no free room code after {_MAX_CODE_ATTEMPTS} attempts")
