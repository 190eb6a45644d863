"""Reaction Race: the screen turns green at a random moment, first tap wins."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from party.games.base import GameInfo, GameModule, GameState
from party.games.handles import HandleMap, HandleSet

if TYPE_CHECKING:
    from party.session.broadcast import RoomBroadcaster
    from party.session.models import Room

READY = "ready"
GO = "go"
RESULT = "result"

WIN_POINTS = 100
FAST_BONUS = 50
FAST_THRESHOLD_MS = 300


@dataclass(kw_only=True)
class ReactionRaceState(GameState):
    tapped: HandleMap[int] = field(default_factory=HandleMap)  # handle -> reaction ms, in tap order
    early_tappers: HandleSet = field(default_factory=HandleSet)


class ReactionRace(GameModule):
    info = GameInfo(
        id="reaction-race",
        name="Reaction Race",
        description="Tap as fast as you can when the screen turns green!",
        icon="\N{HIGH VOLTAGE SIGN}",
        rounds=5,
    )

    async def init(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        self.open_timers(room)
        room.game_state = ReactionRaceState(total_rounds=self.info.rounds)
        await self._next_round(room, broadcaster)

    async def _next_round(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: ReactionRaceState = room.game_state
        if not self.next_round(room, state):
            await self.finish(room, broadcaster)
            return
        state.tapped = HandleMap()
        state.early_tappers = HandleSet()
        state.enter(READY)
        await broadcaster.game_state(room, READY, round=state.round, total_rounds=state.total_rounds)
        self.schedule_round(room, random.uniform(1.5, 5.0), lambda: self._go(room, broadcaster))

    async def _go(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: ReactionRaceState = room.game_state
        state.enter(GO)
        await broadcaster.game_state(room, GO, round=state.round)
        self.schedule_round(room, 5.0, lambda: self._round_result(room, broadcaster))

    async def on_event(
        self,
        room: Room,
        handle: str,
        event: str,
        payload: dict[str, Any],
        broadcaster: RoomBroadcaster,
    ) -> None:
        state: ReactionRaceState = room.game_state
        if event != "tap":
            return

        if state.phase == READY:
            # Too early: noted, but the player may still tap once GO shows.
            if handle not in state.early_tappers:
                state.early_tappers.add(handle)
                await self.notify(broadcaster, handle, "early", round=state.round)
            return

        if state.phase != GO or handle in state.tapped:
            return
        player = room.players.get(handle)
        if player is None:
            return

        reaction_ms = state.elapsed_ms()
        state.tapped[handle] = reaction_ms
        if len(state.tapped) == 1:
            player.score += WIN_POINTS
            if reaction_ms < FAST_THRESHOLD_MS:
                player.score += FAST_BONUS
            self.schedule_round(room, 1.5, lambda: self._round_result(room, broadcaster))

    async def _round_result(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: ReactionRaceState = room.game_state
        if not state.guard.claim(state.round):
            return
        state.enter(RESULT)

        results = [
            {"id": handle, "name": room.players[handle].name, "time": ms}
            for handle, ms in state.tapped.items()
            if handle in room.players
        ]
        await broadcaster.game_state(
            room,
            RESULT,
            round=state.round,
            winner=results[0] if results else None,
            results=results[:5],
        )
        self.schedule_round(room, 3.0, lambda: self._next_round(room, broadcaster))

    def player_view(self, room: Room, state: ReactionRaceState, handle: str) -> dict[str, Any]:
        return {"tapped": handle in state.tapped, "early": handle in state.early_tappers}
