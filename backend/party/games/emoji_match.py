"""Emoji Match: turn-based memory game, find the most pairs."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import StrictInt

from party.games.base import EventPayload, GameInfo, GameModule, GameState
from party.games.handles import HandleList, HandleMap, handle_field

if TYPE_CHECKING:
    from party.session.broadcast import RoomBroadcaster
    from party.session.models import Room

PLAYING = "playing"
ROUND_RESULT = "round_result"

# Sub-events of the playing phase, carried in the "event" field.
FLIP = "flip"
MATCH = "match"
UNFLIP = "unflip"
TURN = "turn"

BOARD_SIZES = (12, 16, 20)
MATCH_POINTS = 50

EMOJI_POOL: tuple[str, ...] = tuple(
    "\N{DOG FACE}\N{CAT FACE}\N{MOUSE FACE}\N{HAMSTER FACE}\N{RABBIT FACE}\N{FOX FACE}\N{BEAR FACE}"
    "\N{PANDA FACE}\N{KOALA}\N{TIGER FACE}\N{LION FACE}\N{COW FACE}\N{PIG FACE}\N{FROG FACE}"
    "\N{OCTOPUS}\N{UNICORN FACE}\N{HONEYBEE}\N{BUTTERFLY}\N{TURTLE}\N{DOLPHIN}\N{SHARK}\N{EAGLE}"
    "\N{FIRE}\N{WHITE MEDIUM STAR}\N{RAINBOW}\N{GUITAR}\N{DIRECT HIT}\N{ROCKET}\N{GEM STONE}"
    "\N{SLICE OF PIZZA}\N{VIDEO GAME}\N{TROPHY}"
)


class Flip(EventPayload):
    index: StrictInt


@dataclass(kw_only=True)
class EmojiMatchState(GameState):
    board: list[str] = field(default_factory=list)
    revealed: list[bool] = field(default_factory=list)
    turn_order: HandleList = field(default_factory=HandleList)
    turn_index: int = 0
    current_turn: str | None = handle_field()
    first_pick: int | None = None
    second_pick: int | None = None
    locked: bool = False
    pairs_found: HandleMap[int] = field(default_factory=HandleMap)

    @property
    def board_size(self) -> int:
        return len(self.board)

    @property
    def cleared(self) -> bool:
        return all(self.revealed)


def generate_board(size: int) -> list[str]:
    chosen = random.sample(EMOJI_POOL, size // 2)
    board = chosen * 2
    random.shuffle(board)
    return board


class EmojiMatch(GameModule):
    info = GameInfo(
        id="emoji-match",
        name="Emoji Match",
        description="Find matching pairs! Best memory wins.",
        icon="\N{PLAYING CARD BLACK JOKER}",
        rounds=3,
    )

    async def init(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        self.open_timers(room)
        room.game_state = EmojiMatchState(total_rounds=self.info.rounds)
        await self._next_round(room, broadcaster)

    async def _next_round(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: EmojiMatchState = room.game_state
        if not self.next_round(room, state):
            await self.finish(room, broadcaster)
            return

        size = BOARD_SIZES[state.round - 1] if state.round <= len(BOARD_SIZES) else BOARD_SIZES[1]
        state.board = generate_board(size)
        state.revealed = [False] * size
        state.first_pick = None
        state.second_pick = None
        state.locked = False
        order = list(room.players)
        random.shuffle(order)
        state.turn_order = HandleList(order)
        state.turn_index = 0
        state.current_turn = order[0] if order else None
        state.pairs_found = HandleMap.fromkeys(room.players, 0)
        state.enter(PLAYING)

        await broadcaster.game_state(
            room,
            PLAYING,
            event=TURN,
            round=state.round,
            total_rounds=state.total_rounds,
            board_size=size,
            cols=4 if size <= 16 else 5,
            **self._turn_fields(room, state),
        )

    @staticmethod
    def _turn_fields(room: Room, state: EmojiMatchState) -> dict[str, Any]:
        player = room.players.get(state.current_turn) if state.current_turn else None
        return {"current_turn": state.current_turn, "current_turn_name": player.name if player else None}

    async def on_event(
        self,
        room: Room,
        handle: str,
        event: str,
        payload: dict[str, Any],
        broadcaster: RoomBroadcaster,
    ) -> None:
        state: EmojiMatchState = room.game_state
        if event != "flip" or state.phase != PLAYING:
            return
        if handle != state.current_turn or state.locked:
            return
        flip = self.parse_payload(Flip, payload)
        if flip is None:
            return
        index = flip.index
        if not 0 <= index < state.board_size or state.revealed[index] or index == state.first_pick:
            return

        if state.first_pick is None:
            state.first_pick = index
            await broadcaster.game_state(room, PLAYING, event=FLIP, index=index, emoji=state.board[index], **self._turn_fields(room, state))
            return

        # Second card: lock before anything else so a third flip is refused.
        state.second_pick = index
        state.locked = True
        first = state.first_pick
        await broadcaster.game_state(room, PLAYING, event=FLIP, index=index, emoji=state.board[index], **self._turn_fields(room, state))

        if state.board[first] == state.board[index]:
            state.revealed[first] = state.revealed[index] = True
            state.pairs_found[handle] = state.pairs_found.get(handle, 0) + 1
            room.players[handle].score += MATCH_POINTS
            self.schedule_round(room, 0.8, lambda: self._resolve_match(room, broadcaster, first, index), tag="flip")
        else:
            self.schedule_round(room, 1.2, lambda: self._resolve_miss(room, broadcaster, first, index), tag="flip")

    def _reset_picks(self, state: EmojiMatchState) -> None:
        state.first_pick = None
        state.second_pick = None
        state.locked = False

    async def _resolve_match(self, room: Room, broadcaster: RoomBroadcaster, first: int, second: int) -> None:
        state: EmojiMatchState = room.game_state
        self._reset_picks(state)
        # The scorer may have reconnected under a new handle meanwhile.
        scorer = state.current_turn
        player = room.players.get(scorer) if scorer else None
        await broadcaster.game_state(
            room,
            PLAYING,
            event=MATCH,
            indices=[first, second],
            player_id=scorer,
            player_name=player.name if player else None,
            **self._turn_fields(room, state),
        )
        if state.cleared:
            self.schedule_round(room, 1.5, lambda: self._round_result(room, broadcaster))
        elif player is None:
            await self._advance_turn(room, broadcaster)

    async def _resolve_miss(self, room: Room, broadcaster: RoomBroadcaster, first: int, second: int) -> None:
        state: EmojiMatchState = room.game_state
        self._reset_picks(state)
        await broadcaster.game_state(room, PLAYING, event=UNFLIP, indices=[first, second])
        await self._advance_turn(room, broadcaster)

    async def _advance_turn(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        """Pass the turn to the next player still in the room."""
        state: EmojiMatchState = room.game_state
        order = state.turn_order
        for _ in range(len(order)):
            state.turn_index = (state.turn_index + 1) % len(order)
            if order[state.turn_index] in room.players:
                state.current_turn = order[state.turn_index]
                await broadcaster.game_state(room, PLAYING, event=TURN, **self._turn_fields(room, state))
                return
        state.current_turn = None
        await self._round_result(room, broadcaster)

    async def on_player_left(self, room: Room, handle: str, broadcaster: RoomBroadcaster) -> None:
        state = room.game_state
        if not isinstance(state, EmojiMatchState) or state.phase != PLAYING:
            return
        if handle == state.current_turn and not state.locked:
            self._reset_picks(state)
            await self._advance_turn(room, broadcaster)

    async def _round_result(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: EmojiMatchState = room.game_state
        if not state.guard.claim(state.round):
            return
        state.enter(ROUND_RESULT)
        results = [
            {"id": handle, "name": room.players[handle].name, "pairs": count}
            for handle, count in state.pairs_found.items()
            if handle in room.players
        ]
        results.sort(key=lambda r: r["pairs"], reverse=True)
        await broadcaster.game_state(room, ROUND_RESULT, round=state.round, results=results)
        self.schedule_round(room, 4.0, lambda: self._next_round(room, broadcaster))

    def player_view(self, room: Room, state: EmojiMatchState, handle: str) -> dict[str, Any]:
        faces = [
            emoji if state.revealed[i] or i in (state.first_pick, state.second_pick) else None
            for i, emoji in enumerate(state.board)
        ]
        return {
            "board": faces,
            "pairs": state.pairs_found.get(handle, 0),
            "your_turn": handle == state.current_turn,
            **self._turn_fields(room, state),
        }
