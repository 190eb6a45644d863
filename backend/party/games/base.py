"""
The contract every party game implements, plus the phase-guard helpers.

A game module is stateless: everything that changes during play lives in the
room's GameState, which the module replaces wholesale on init(). The session
layer only ever calls init / on_event / cleanup / snapshot, so dispatch never
needs to know which game is running.

Round-ending transitions race each other (a timeout and the last answer can
land in the same tick). Every such transition claims the round on the state's
RoundGuard first; whichever caller loses the claim does nothing.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING, Any, ClassVar

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

from party.games.handles import Rebindable
from party.messaging.types import GameTickMessage
from party.session.models import RoomState
from party.session.timers import TimerGroup

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable

    from party.session.broadcast import RoomBroadcaster
    from party.session.models import Room

logger = structlog.get_logger()

WAITING = "waiting"
FINISHED = "finished"

# Timer tag for the single terminal timer of the current round phase.
ROUND_TAG = "round"


class GameInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    icon: str
    min_players: int = 2
    max_players: int = 20
    rounds: int


class EventPayload(BaseModel):
    """Base for game event payloads; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")


@dataclass
class RoundGuard:
    """Once-only claim per round, monotonic across rounds."""

    last_claimed: int = 0

    def claim(self, round_no: int) -> bool:
        if round_no <= self.last_claimed:
            return False
        self.last_claimed = round_no
        return True

    def is_claimed(self, round_no: int) -> bool:
        return round_no <= self.last_claimed


@dataclass(kw_only=True)
class GameState:
    """Fields shared by every game's state.

    Subclasses keep per-player data in HandleMap / HandleSet / HandleList and
    declare single-handle fields with handle_field(), so rebind() can remap a
    reconnecting player without knowing the concrete game.
    """

    phase: str = WAITING
    round: int = 0
    total_rounds: int = 0
    guard: RoundGuard = field(default_factory=RoundGuard)
    phase_started_at: float = field(default_factory=time.monotonic)

    @property
    def finished(self) -> bool:
        return self.phase == FINISHED

    def enter(self, phase: str) -> None:
        self.phase = phase
        self.phase_started_at = time.monotonic()

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.phase_started_at) * 1000)

    def rebind(self, old: str, new: str) -> bool:
        """Replace every reference to the old handle with the new one."""
        changed = False
        for f in fields(self):
            value = getattr(self, f.name)
            if f.metadata.get("handle"):
                if value == old:
                    setattr(self, f.name, new)
                    changed = True
            elif isinstance(value, Rebindable):
                changed = value.swap(old, new) or changed
        return changed


class GameModule(ABC):
    """Base class for game variants.

    Durations passed to the scheduling helpers are in seconds at normal speed
    and get multiplied by time_scale, which tests shrink to run whole games
    in milliseconds.
    """

    info: ClassVar[GameInfo]

    def __init__(self, *, time_scale: float = 1.0) -> None:
        self.time_scale = time_scale

    @property
    def id(self) -> str:
        return self.info.id

    # --- Contract ---

    @abstractmethod
    async def init(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        """Open the room's timer group, assign a fresh GameState and start round 1."""

    @abstractmethod
    async def on_event(
        self,
        room: Room,
        handle: str,
        event: str,
        payload: dict[str, Any],
        broadcaster: RoomBroadcaster,
    ) -> None:
        """Apply one player input. Wrong phase, bad payload, or repeats are dropped."""

    def cleanup(self, room: Room) -> None:
        """Cancel every timer this game scheduled for the room. Safe in any phase."""
        if room.game_timers is not None:
            room.game_timers.close()
            room.game_timers = None

    def snapshot(self, room: Room, handle: str) -> dict[str, Any]:
        """Current phase plus the caller's own in-flight progress, for a rejoin."""
        state = room.game_state
        if state is None:
            return {}
        return {
            "phase": state.phase,
            "round": state.round,
            "total_rounds": state.total_rounds,
            **self.player_view(room, state, handle),
        }

    def player_view(self, room: Room, state: Any, handle: str) -> dict[str, Any]:
        return {}

    async def on_player_left(self, room: Room, handle: str, broadcaster: RoomBroadcaster) -> None:
        """Hook for games that must react when a player is removed mid-game."""

    # --- Helpers ---

    def seconds(self, value: float) -> float:
        return value * self.time_scale

    def open_timers(self, room: Room) -> TimerGroup:
        if room.game_timers is not None:
            room.game_timers.close()
        room.game_timers = TimerGroup(f"game:{room.code}:{self.id}")
        return room.game_timers

    def schedule(
        self,
        room: Room,
        delay: float,
        callback: Callable[[], Awaitable[None]],
        *,
        tag: str | None = None,
    ) -> asyncio.Task[None] | None:
        """Run callback later unless the game state was replaced or finished meanwhile."""
        timers = room.game_timers
        if timers is None:
            return None
        state = room.game_state

        async def fire() -> None:
            if room.game_state is not state or state is None or state.finished:
                return
            await callback()

        return timers.call_later(self.seconds(delay), fire, tag=tag)

    def schedule_round(
        self,
        room: Room,
        delay: float,
        callback: Callable[[], Awaitable[None]],
        *,
        tag: str | None = ROUND_TAG,
    ) -> asyncio.Task[None] | None:
        """Like schedule(), but also a no-op once the captured round is over."""
        timers = room.game_timers
        state = room.game_state
        if timers is None or state is None:
            return None
        round_no = state.round

        async def fire() -> None:
            if room.game_state is not state or state.finished or state.round != round_no:
                return
            await callback()

        return timers.call_later(self.seconds(delay), fire, tag=tag)

    def repeat_round(
        self,
        room: Room,
        interval: float,
        callback: Callable[[], Awaitable[None]],
        *,
        tag: str = "tick",
    ) -> asyncio.Task[None] | None:
        """Call callback every interval until the captured round or phase changes."""
        timers = room.game_timers
        state = room.game_state
        if timers is None or state is None:
            return None
        round_no = state.round
        phase = state.phase

        async def tick() -> bool:
            if room.game_state is not state or state.round != round_no or state.phase != phase:
                return False
            await callback()
            return True

        return timers.call_every(self.seconds(interval), tick, tag=tag)

    def next_round(self, room: Room, state: GameState) -> bool:
        """Advance the round counter and drop stale round timers.

        Returns False when every round has been played.
        """
        if room.game_timers is not None:
            room.game_timers.cancel_tag(ROUND_TAG)
            room.game_timers.cancel_tag("tick")
        state.round += 1
        return state.round <= state.total_rounds

    async def finish(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        """Terminal transition: ranked game_ended, room moves to results.

        Game and bot timers are closed before anything is sent.
        """
        state = room.game_state
        if state is None or state.finished:
            return
        state.enter(FINISHED)
        room.state = RoomState.RESULTS
        if room.game_timers is not None:
            room.game_timers.close()
        if room.bot_timers is not None:
            room.bot_timers.close()
            room.bot_timers = None
        logger.info("game finished", room=room.code, game=self.id, round=state.round)
        await broadcaster.game_state(room, FINISHED)
        await broadcaster.game_ended(room)

    @staticmethod
    def parse_payload[P: BaseModel](model: type[P], payload: dict[str, Any]) -> P | None:
        try:
            return model.model_validate(payload)
        except ValidationError:
            return None

    @staticmethod
    async def notify(broadcaster: RoomBroadcaster, handle: str, event: str, **fields: Any) -> None:
        """Private, non-authoritative feedback to one player."""
        await broadcaster.to_player(handle, GameTickMessage(event=event, **fields).model_dump())

    @staticmethod
    def names(room: Room, handles: Any) -> list[dict[str, Any]]:
        return [{"id": h, "name": room.players[h].name} for h in handles if h in room.players]

    @staticmethod
    def all_responded(room: Room, responded: Any) -> bool:
        """True once every bot and connected human has responded this round."""
        active = room.active_handles()
        return bool(active) and all(h in responded for h in active)
