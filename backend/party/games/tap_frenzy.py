"""Tap Frenzy: most taps inside the window wins the round."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from party.games.base import GameInfo, GameModule, GameState
from party.games.handles import HandleMap

if TYPE_CHECKING:
    from party.session.broadcast import RoomBroadcaster
    from party.session.models import Room

COUNTDOWN = "countdown"
TAPPING = "tapping"
RESULT = "result"

ROUND_DURATION_SECONDS = 8.0
PLACEMENT_POINTS = (150, 100, 75)
PARTICIPATION_POINTS = 25


@dataclass(kw_only=True)
class TapFrenzyState(GameState):
    taps: HandleMap[int] = field(default_factory=HandleMap)


class TapFrenzy(GameModule):
    info = GameInfo(
        id="tap-frenzy",
        name="Tap Frenzy",
        description="Tap like your life depends on it! Most taps wins.",
        icon="\N{WHITE UP POINTING BACKHAND INDEX}",
        rounds=3,
    )

    async def init(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        self.open_timers(room)
        room.game_state = TapFrenzyState(total_rounds=self.info.rounds)
        await self._next_round(room, broadcaster)

    async def _next_round(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: TapFrenzyState = room.game_state
        if not self.next_round(room, state):
            await self.finish(room, broadcaster)
            return
        state.taps = HandleMap.fromkeys(room.players, 0)
        state.enter(COUNTDOWN)
        await broadcaster.game_state(room, COUNTDOWN, round=state.round, total_rounds=state.total_rounds)
        self.schedule_round(room, 3.0, lambda: self._start_tapping(room, broadcaster))

    async def _start_tapping(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: TapFrenzyState = room.game_state
        state.enter(TAPPING)
        duration = self.seconds(ROUND_DURATION_SECONDS)
        await broadcaster.game_state(room, TAPPING, round=state.round, duration=int(duration * 1000))
        self.repeat_round(room, 0.5, lambda: broadcaster.game_tick(room, counts=self._counts(room, state)))
        self.schedule_round(room, ROUND_DURATION_SECONDS, lambda: self._round_result(room, broadcaster))

    async def on_event(
        self,
        room: Room,
        handle: str,
        event: str,
        payload: dict[str, Any],
        broadcaster: RoomBroadcaster,
    ) -> None:
        state: TapFrenzyState = room.game_state
        if event != "tap" or state.phase != TAPPING or handle not in room.players:
            return
        state.taps[handle] = state.taps.get(handle, 0) + 1

    @staticmethod
    def _counts(room: Room, state: TapFrenzyState) -> list[dict[str, Any]]:
        counts = [
            {"id": handle, "name": room.players[handle].name, "count": count}
            for handle, count in state.taps.items()
            if handle in room.players
        ]
        counts.sort(key=lambda c: c["count"], reverse=True)
        return counts

    async def _round_result(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: TapFrenzyState = room.game_state
        if not state.guard.claim(state.round):
            return
        state.enter(RESULT)

        results = self._counts(room, state)
        for place, entry in enumerate(results):
            points = PLACEMENT_POINTS[place] if place < len(PLACEMENT_POINTS) else PARTICIPATION_POINTS
            room.players[entry["id"]].score += points
            entry["points"] = points

        await broadcaster.game_state(room, RESULT, round=state.round, results=results)
        self.schedule_round(room, 4.0, lambda: self._next_round(room, broadcaster))

    def player_view(self, room: Room, state: TapFrenzyState, handle: str) -> dict[str, Any]:
        return {"count": state.taps.get(handle, 0)}
