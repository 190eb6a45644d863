"""
Room membership state machine: create, join, rejoin, disconnect, leave.

Every operation here is synchronous, so each one runs to completion inside a
single event-loop callback and can never interleave with another mutation of
the same room. Only the grace timers are asynchronous, and their expiry goes
through finalize_leave(), which re-checks everything before acting.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from party.session.errors import (
    AlreadyInRoomError,
    BotNotFoundError,
    GameInProgressError,
    InvalidCodeError,
    InvalidNameError,
    LobbyOnlyError,
    NameTakenError,
    NotHostError,
    NotInRoomError,
    RoomFullError,
    RoomNotFoundError,
)
from party.session.ids import is_valid_room_code, new_bot_handle
from party.session.models import GraceEntry, Player, RoomState
from party.session.timers import TimerGroup

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from party.session.models import Difficulty, Room
    from party.session.registry import RoomRegistry

logger = structlog.get_logger()

DEFAULT_GRACE_PERIOD_SECONDS = 30.0
DEFAULT_MAX_PLAYERS = 20
DEFAULT_MAX_NAME_LENGTH = 20


@dataclass
class JoinOutcome:
    room: Room
    handle: str
    rejoined: bool = False
    old_handle: str | None = None


@dataclass
class DisconnectOutcome:
    room: Room
    handle: str
    player_name: str


@dataclass
class LeaveOutcome:
    code: str
    handle: str
    player_name: str
    room: Room | None  # None once the room has been destroyed
    promoted: str | None = None

    @property
    def closed(self) -> bool:
        return self.room is None


class SessionLifecycle:
    def __init__(
        self,
        registry: RoomRegistry,
        *,
        grace_period_seconds: float = DEFAULT_GRACE_PERIOD_SECONDS,
        max_players: int = DEFAULT_MAX_PLAYERS,
        max_name_length: int = DEFAULT_MAX_NAME_LENGTH,
        on_grace_expired: Callable[[LeaveOutcome], Coroutine[Any, Any, None]] | None = None,
    ) -> None:
        self._registry = registry
        self._grace_period_seconds = grace_period_seconds
        self._max_players = max_players
        self._max_name_length = max_name_length
        self._on_grace_expired = on_grace_expired
        self._grace: dict[str, GraceEntry] = {}
        self._grace_timers = TimerGroup("grace")

    @property
    def registry(self) -> RoomRegistry:
        return self._registry

    @property
    def max_players(self) -> int:
        return self._max_players

    def grace_entry(self, handle: str) -> GraceEntry | None:
        return self._grace.get(handle)

    @property
    def pending_grace_count(self) -> int:
        return len(self._grace)

    # --- Validation ---

    def _validate_name(self, name: str) -> str:
        name = name.strip()
        if not name or len(name) > self._max_name_length:
            raise InvalidNameError(f"Name must be 1-{self._max_name_length} characters")
        return name

    @staticmethod
    def _normalize_code(code: str) -> str:
        code = code.strip().upper()
        if not is_valid_room_code(code):
            raise InvalidCodeError
        return code

    def _ensure_free(self, handle: str) -> None:
        if self._registry.get_by_handle(handle) is not None:
            raise AlreadyInRoomError

    def _lookup(self, code: str) -> Room:
        room = self._registry.get(self._normalize_code(code))
        if room is None:
            raise RoomNotFoundError
        return room

    def require_room(self, handle: str) -> Room:
        room = self._registry.get_by_handle(handle)
        if room is None or handle not in room.players:
            raise NotInRoomError
        return room

    def require_host(self, handle: str) -> Room:
        room = self.require_room(handle)
        if room.host_handle != handle:
            raise NotHostError
        return room

    # --- Membership ---

    def create(self, handle: str, name: str) -> Room:
        """Open a new room with the caller as its sole player and host."""
        name = self._validate_name(name)
        self._ensure_free(handle)
        room = self._registry.create()
        room.players[handle] = Player(name=name, is_host=True)
        room.host_handle = handle
        self._registry.bind(handle, room)
        logger.info("player created room", room=room.code, player=name)
        return room

    def join(self, handle: str, code: str, name: str) -> JoinOutcome:
        name = self._validate_name(name)
        self._ensure_free(handle)
        room = self._lookup(code)
        if room.player_count >= self._max_players:
            raise RoomFullError
        if room.find_player_by_name(name, disconnected=False) is not None:
            raise NameTakenError
        if room.state == RoomState.PLAYING:
            raise GameInProgressError
        room.players[handle] = Player(name=name)
        self._registry.bind(handle, room)
        logger.info("player joined room", room=room.code, player=name, players=room.player_count)
        return JoinOutcome(room=room, handle=handle)

    def rejoin(self, handle: str, code: str, name: str) -> JoinOutcome:
        """Restore a disconnected player under a new handle, or fall back to join."""
        name = self._validate_name(name)
        self._ensure_free(handle)
        room = self._lookup(code)

        old = room.find_player_by_name(name, disconnected=True)
        if old is None:
            if room.state == RoomState.PLAYING:
                raise GameInProgressError
            return self.join(handle, room.code, name)

        self._cancel_grace(old)
        room.players.swap(old, handle)
        player = room.players[handle]
        player.disconnected = False
        if room.host_handle == old:
            room.host_handle = handle
        if room.game_state is not None:
            room.game_state.rebind(old, handle)
        self._registry.rebind(old, handle)
        logger.info("player rejoined room", room=room.code, player=player.name)
        return JoinOutcome(room=room, handle=handle, rejoined=True, old_handle=old)

    def add_bot(self, host_handle: str, name: str, difficulty: Difficulty) -> tuple[Room, str]:
        room = self.require_host(host_handle)
        if room.state != RoomState.LOBBY:
            raise LobbyOnlyError("Bots can only be added in the lobby")
        if room.player_count >= self._max_players:
            raise RoomFullError
        handle = new_bot_handle()
        room.players[handle] = Player(name=name, is_bot=True, difficulty=difficulty)
        self._registry.bind(handle, room)
        logger.info("bot added", room=room.code, bot=name, difficulty=difficulty)
        return room, handle

    def remove_bot(self, host_handle: str, bot_handle: str) -> tuple[Room, Player]:
        room = self.require_host(host_handle)
        player = room.players.get(bot_handle)
        if player is None or not player.is_bot:
            raise BotNotFoundError
        del room.players[bot_handle]
        self._registry.unbind(bot_handle)
        logger.info("bot removed", room=room.code, bot=player.name)
        return room, player

    # --- Disconnect and leave ---

    def disconnect(self, handle: str) -> DisconnectOutcome | None:
        """Flag a dropped human and start its grace timer. Bots and strangers are ignored."""
        room = self._registry.get_by_handle(handle)
        if room is None:
            return None
        player = room.players.get(handle)
        if player is None or player.is_bot or player.disconnected:
            return None

        player.disconnected = True
        code = room.code
        task = self._grace_timers.call_later(
            self._grace_period_seconds,
            lambda: self._expire_grace(handle, code),
            tag=handle,
        )
        self._grace[handle] = GraceEntry(task=task, room_code=code, player=player)
        logger.info("player disconnected, grace period started", room=code, player=player.name)
        return DisconnectOutcome(room=room, handle=handle, player_name=player.name)

    async def _expire_grace(self, handle: str, code: str) -> None:
        self._grace.pop(handle, None)
        outcome = self.finalize_leave(handle, code)
        if outcome is not None and self._on_grace_expired is not None:
            await self._on_grace_expired(outcome)

    def finalize_leave(self, handle: str, code: str) -> LeaveOutcome | None:
        """Remove a player whose grace period ran out. No-op if they came back."""
        room = self._registry.get(code)
        if room is None:
            return None
        player = room.players.get(handle)
        if player is None or not player.disconnected:
            return None
        logger.info("grace period expired", room=code, player=player.name)
        return self._remove(room, handle)

    def leave_room(self, handle: str) -> LeaveOutcome | None:
        """Immediate leave: skips the grace period."""
        self._cancel_grace(handle)
        room = self._registry.get_by_handle(handle)
        if room is None or handle not in room.players:
            return None
        return self._remove(room, handle)

    def _remove(self, room: Room, handle: str) -> LeaveOutcome:
        player = room.players.pop(handle)
        self._registry.unbind(handle)
        outcome = LeaveOutcome(code=room.code, handle=handle, player_name=player.name, room=room)

        if room.host_handle == handle:
            player.is_host = False
            room.host_handle = None
            outcome.promoted = self._promote_host(room)

        if room.host_handle is None or room.is_empty or not room.has_humans:
            self.destroy(room.code)
            outcome.room = None
        logger.info("player left room", room=room.code, player=player.name, closed=outcome.closed)
        return outcome

    @staticmethod
    def _promote_host(room: Room) -> str | None:
        """Hand the room to the earliest-joined human, preferring connected ones."""
        humans = [(h, p) for h, p in room.players.items() if not p.is_bot]
        candidates = [hp for hp in humans if not hp[1].disconnected] or humans
        if not candidates:
            return None
        handle, player = candidates[0]
        player.is_host = True
        room.host_handle = handle
        logger.info("host promoted", room=room.code, player=player.name)
        return handle

    def destroy(self, code: str) -> Room | None:
        """Tear a room down and drop any grace timers that still point at it."""
        for handle in [h for h, entry in self._grace.items() if entry.room_code == code]:
            self._cancel_grace(handle)
        return self._registry.destroy(code)

    def _cancel_grace(self, handle: str) -> None:
        if self._grace.pop(handle, None) is not None:
            self._grace_timers.cancel_tag(handle)

    def close(self) -> None:
        self._grace_timers.close()
        self._grace.clear()
