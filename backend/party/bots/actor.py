"""
Synthetic players.

A bot acts through a NullConnection: it carries the bot's handle and throws
every outbound message away, so game modules see a bot exactly as they see a
socket. Decisions are delayed, and a delayed decision is re-validated right
before it is emitted so it can never land in a later phase or round.
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING, Any

import structlog

from party.messaging.protocol import ConnectionProtocol
from party.session.models import Difficulty

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable

    from party.session.models import Room
    from party.session.timers import TimerGroup

    type EmitEvent = Callable[[ConnectionProtocol, str, dict[str, Any]], Awaitable[None]]

logger = structlog.get_logger()


class NullConnection(ConnectionProtocol):
    """Connection stand-in for bots: an identity and a no-op sink."""

    def __init__(self, handle: str) -> None:
        self._handle = handle

    @property
    def connection_id(self) -> str:
        return self._handle

    async def send_bytes(self, data: bytes) -> None:
        pass

    async def receive_bytes(self) -> bytes:
        raise ConnectionError("bots have no inbound stream")

    async def close(self, code: int = 1000, reason: str = "") -> None:
        pass


def tiered[T](difficulty: Difficulty, easy: T, medium: T, hard: T) -> T:
    if difficulty == Difficulty.EASY:
        return easy
    if difficulty == Difficulty.MEDIUM:
        return medium
    return hard


def tiered_range(
    difficulty: Difficulty,
    easy: tuple[float, float],
    medium: tuple[float, float],
    hard: tuple[float, float],
) -> float:
    low, high = tiered(difficulty, easy, medium, hard)
    return random.uniform(low, high)


def tiered_chance(difficulty: Difficulty, easy: float, medium: float, hard: float) -> bool:
    return random.random() < tiered(difficulty, easy, medium, hard)


class BotActor:
    """One bot in one running game."""

    def __init__(
        self,
        room: Room,
        handle: str,
        difficulty: Difficulty,
        *,
        emit: EmitEvent,
        timers: TimerGroup,
        time_scale: float = 1.0,
    ) -> None:
        self.room = room
        self.handle = handle
        self.difficulty = difficulty
        self.connection = NullConnection(handle)
        self._emit = emit
        self._timers = timers
        self._time_scale = time_scale

    @property
    def present(self) -> bool:
        return self.handle in self.room.players

    def at(self, phase: str, round_no: int) -> bool:
        """True while the game is still in the given phase of the given round."""
        state = self.room.game_state
        return state is not None and state.phase == phase and state.round == round_no

    def own(self, collection: str) -> bool:
        """Whether this bot has an entry in one of the game's per-player collections."""
        state = self.room.game_state
        return state is not None and self.handle in getattr(state, collection, ())

    def act_after(
        self,
        delay: float,
        event: str,
        payload: dict[str, Any],
        still_valid: Callable[[], bool],
        *,
        then: Callable[[], None] | None = None,
    ) -> asyncio.Task[None] | None:
        """Emit a game event after delay seconds if still_valid() holds at that moment."""

        async def fire() -> None:
            if not self.present or not still_valid():
                return
            await self._emit(self.connection, event, payload)
            if then is not None:
                then()

        return self._timers.call_later(delay * self._time_scale, fire, tag=self.handle)

    def act_every(
        self,
        interval: float,
        event: str,
        payload: dict[str, Any],
        still_valid: Callable[[], bool],
    ) -> asyncio.Task[None] | None:
        """Emit repeatedly until still_valid() turns false."""

        async def fire() -> bool:
            if not self.present or not still_valid():
                return False
            await self._emit(self.connection, event, payload)
            return True

        return self._timers.call_every(interval * self._time_scale, fire, tag=self.handle)
