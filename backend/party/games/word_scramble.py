"""Word Scramble: unscramble the word, earlier solvers score more."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import Field

from party.games.base import EventPayload, GameInfo, GameModule, GameState
from party.games.handles import HandleMap

if TYPE_CHECKING:
    from party.session.broadcast import RoomBroadcaster
    from party.session.models import Room

SCRAMBLED = "scrambled"
REVEAL = "reveal"

TIME_LIMIT_SECONDS = 15
SOLVER_POINTS = (150, 100, 75, 50)
LATE_SOLVER_POINTS = 25

WORDS: tuple[str, ...] = (
    "PYTHON", "ROCKET", "PLANET", "GUITAR", "CASTLE", "BRIDGE", "FROZEN",
    "JUNGLE", "PIRATE", "DRAGON", "COOKIE", "SUNSET", "WIZARD", "COFFEE",
    "LAPTOP", "TEMPLE", "CANDLE", "FOREST", "SILVER", "ISLAND", "DANGER",
    "MONKEY", "ORANGE", "TROPHY", "PUZZLE", "MAGNET", "ROBOTS", "ANCHOR",
    "BUBBLE", "CIRCUS", "DONKEY", "FALCON", "GOBLIN", "HAMMER", "JACKET",
    "KITTEN", "LEMON", "MANGO", "PEPPER", "RABBIT", "SALMON", "TUNNEL",
    "VIOLET", "WALNUT", "ZOMBIE", "BREEZE", "GLITCH", "SKETCH", "THRONE",
)  # fmt: skip


def scramble(word: str) -> str:
    """Shuffle the letters; never returns the word itself unless it cannot change."""
    if len(set(word)) < 2:
        return word
    letters = list(word)
    while True:
        random.shuffle(letters)
        result = "".join(letters)
        if result != word:
            return result


class Guess(EventPayload):
    guess: str = Field(max_length=32)


@dataclass
class Solve:
    rank: int
    points: int
    time_ms: int


@dataclass(kw_only=True)
class WordScrambleState(GameState):
    words: list[str] = field(default_factory=list)
    scrambled: str = ""
    solvers: HandleMap[Solve] = field(default_factory=HandleMap)

    @property
    def word(self) -> str:
        return self.words[self.round - 1]


class WordScramble(GameModule):
    info = GameInfo(
        id="word-scramble",
        name="Word Scramble",
        description="Unscramble the word before everyone else!",
        icon="\N{INPUT SYMBOL FOR LATIN LETTERS}",
        rounds=6,
    )

    async def init(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        self.open_timers(room)
        room.game_state = WordScrambleState(
            total_rounds=self.info.rounds,
            words=random.sample(WORDS, self.info.rounds),
        )
        await self._next_round(room, broadcaster)

    async def _next_round(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: WordScrambleState = room.game_state
        if not self.next_round(room, state):
            await self.finish(room, broadcaster)
            return
        state.solvers = HandleMap()
        state.scrambled = scramble(state.word)
        state.enter(SCRAMBLED)
        await broadcaster.game_state(
            room,
            SCRAMBLED,
            round=state.round,
            total_rounds=state.total_rounds,
            scrambled=state.scrambled,
            word_length=len(state.word),
            time_limit=TIME_LIMIT_SECONDS,
        )
        self.schedule_round(room, TIME_LIMIT_SECONDS, lambda: self._reveal(room, broadcaster))

    async def on_event(
        self,
        room: Room,
        handle: str,
        event: str,
        payload: dict[str, Any],
        broadcaster: RoomBroadcaster,
    ) -> None:
        state: WordScrambleState = room.game_state
        if event != "guess" or state.phase != SCRAMBLED or handle in state.solvers:
            return
        guess = self.parse_payload(Guess, payload)
        player = room.players.get(handle)
        if guess is None or player is None:
            return

        if guess.guess.strip().upper() != state.word:
            await self.notify(broadcaster, handle, "wrong", round=state.round)
            return

        rank = len(state.solvers) + 1
        points = SOLVER_POINTS[rank - 1] if rank <= len(SOLVER_POINTS) else LATE_SOLVER_POINTS
        player.score += points
        state.solvers[handle] = Solve(rank=rank, points=points, time_ms=state.elapsed_ms())
        await self.notify(broadcaster, handle, "solved", round=state.round, rank=rank, points=points)

        if self.all_responded(room, state.solvers):
            await self._reveal(room, broadcaster)

    async def _reveal(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: WordScrambleState = room.game_state
        if not state.guard.claim(state.round):
            return
        state.enter(REVEAL)
        solvers = [
            {"id": handle, "name": room.players[handle].name, "rank": s.rank, "points": s.points, "time": s.time_ms}
            for handle, s in state.solvers.items()
            if handle in room.players
        ]
        await broadcaster.game_state(room, REVEAL, round=state.round, word=state.word, solvers=solvers)
        self.schedule_round(room, 4.0, lambda: self._next_round(room, broadcaster))

    def player_view(self, room: Room, state: WordScrambleState, handle: str) -> dict[str, Any]:
        view: dict[str, Any] = {"solved": handle in state.solvers}
        if state.phase == SCRAMBLED:
            view["scrambled"] = state.scrambled
        return view
