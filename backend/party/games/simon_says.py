"""Simon Says: repeat a growing colour sequence; one wrong press and you are out."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from party.games.base import EventPayload, GameInfo, GameModule, GameState
from party.games.handles import HandleMap, HandleSet

if TYPE_CHECKING:
    from party.session.broadcast import RoomBroadcaster
    from party.session.models import Room

SHOWING = "showing"
INPUT = "input"
RESULT = "result"

COLORS = ("red", "blue", "green", "yellow")
MAX_ROUNDS = 12
FLASH_SECONDS = 0.6
INPUT_TIMEOUT_SECONDS = 10.0
POINTS_PER_ROUND = 20
SURVIVOR_BONUS = 200


class SimonInput(EventPayload):
    color: Literal["red", "blue", "green", "yellow"]


@dataclass(kw_only=True)
class SimonState(GameState):
    sequence: list[str] = field(default_factory=list)
    inputs: HandleMap[list[str]] = field(default_factory=HandleMap)
    survivors: HandleSet = field(default_factory=HandleSet)
    eliminated: HandleSet = field(default_factory=HandleSet)

    def done(self, handle: str) -> bool:
        return len(self.inputs.get(handle, ())) >= self.round


class SimonSays(GameModule):
    info = GameInfo(
        id="simon-says",
        name="Simon Says",
        description="Watch the pattern, repeat it. Memory is everything!",
        icon="\N{LARGE RED CIRCLE}",
        rounds=MAX_ROUNDS,
    )

    async def init(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        self.open_timers(room)
        room.game_state = SimonState(
            total_rounds=MAX_ROUNDS,
            sequence=random.choices(COLORS, k=MAX_ROUNDS),
            survivors=HandleSet(room.players),
        )
        await self._next_round(room, broadcaster)

    async def _next_round(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: SimonState = room.game_state
        if len(state.survivors) <= 1 or not self.next_round(room, state):
            await self._end_game(room, broadcaster)
            return
        state.inputs = HandleMap()
        state.enter(SHOWING)
        shown = state.sequence[: state.round]
        await broadcaster.game_state(
            room,
            SHOWING,
            round=state.round,
            total_rounds=state.total_rounds,
            sequence_length=len(shown),
            survivors=len(state.survivors),
            total_players=room.player_count,
        )

        for i, color in enumerate(shown):
            self.schedule_round(
                room,
                (i + 1) * FLASH_SECONDS,
                lambda i=i, color=color: broadcaster.game_tick(
                    room, event="flash", round=state.round, color=color, index=i, total=len(shown)
                ),
                tag="flash",
            )
        input_at = (len(shown) + 1) * FLASH_SECONDS + 0.5
        self.schedule_round(room, input_at, lambda: self._start_input(room, broadcaster))

    async def _start_input(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: SimonState = room.game_state
        state.enter(INPUT)
        await broadcaster.game_state(
            room,
            INPUT,
            round=state.round,
            sequence_length=state.round,
            time_limit=int(self.seconds(INPUT_TIMEOUT_SECONDS) * 1000),
        )
        self.schedule_round(room, INPUT_TIMEOUT_SECONDS, lambda: self._resolve_round(room, broadcaster))

    async def on_event(
        self,
        room: Room,
        handle: str,
        event: str,
        payload: dict[str, Any],
        broadcaster: RoomBroadcaster,
    ) -> None:
        state: SimonState = room.game_state
        if event != "input" or state.phase != INPUT:
            return
        if handle not in state.survivors or state.done(handle):
            return
        press = self.parse_payload(SimonInput, payload)
        if press is None:
            return

        entered = state.inputs.setdefault(handle, [])
        entered.append(press.color)
        expected = state.sequence[len(entered) - 1]

        if press.color != expected:
            state.survivors.discard(handle)
            state.eliminated.add(handle)
            await self.notify(
                broadcaster, handle, "eliminated", round=state.round, wrong_at=len(entered), expected=expected, entered=press.color
            )
            self._check_round_complete(room, broadcaster)
            return

        await self.notify(broadcaster, handle, "input_progress", round=state.round, entered=len(entered), needed=state.round)
        if len(entered) == state.round:
            room.players[handle].score += state.round * POINTS_PER_ROUND
            await self.notify(broadcaster, handle, "round_complete", round=state.round)
            self._check_round_complete(room, broadcaster)

    def _check_round_complete(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: SimonState = room.game_state
        if all(state.done(h) for h in state.survivors) or len(state.survivors) <= 1:
            self.schedule_round(room, 1.0, lambda: self._resolve_round(room, broadcaster))

    async def _resolve_round(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: SimonState = room.game_state
        if not state.guard.claim(state.round):
            return
        state.enter(RESULT)

        # Anyone who did not finish in time is out.
        for handle in list(state.survivors):
            if not state.done(handle):
                state.survivors.discard(handle)
                state.eliminated.add(handle)
        state.survivors = HandleSet(h for h in room.players if h not in state.eliminated)

        await broadcaster.game_state(
            room,
            RESULT,
            round=state.round,
            survivors=[room.players[h].name for h in room.players if h in state.survivors],
            survivor_count=len(state.survivors),
            eliminated=len(state.eliminated),
        )
        if len(state.survivors) <= 1 or state.round >= state.total_rounds:
            self.schedule_round(room, 3.0, lambda: self._end_game(room, broadcaster))
        else:
            self.schedule_round(room, 3.0, lambda: self._next_round(room, broadcaster))

    async def _end_game(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: SimonState = room.game_state
        if state.finished:
            return
        for handle in state.survivors:
            if handle in room.players:
                room.players[handle].score += SURVIVOR_BONUS
        await self.finish(room, broadcaster)

    def player_view(self, room: Room, state: SimonState, handle: str) -> dict[str, Any]:
        return {
            "eliminated": handle in state.eliminated,
            "entered": len(state.inputs.get(handle, ())),
            "needed": state.round,
        }
