"""Color Clash: a colour word printed in a different ink; tap the ink, not the word."""

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

SHOWING = "showing"
RESULT = "result"

COLORS = ("red", "blue", "green", "yellow", "purple", "orange")
TOTAL_ROUNDS = 10
BASE_TIME_SECONDS = 5.0
MIN_TIME_SECONDS = 1.5
TIME_DECAY_SECONDS = 0.3
OPTION_COUNT = 4
MAX_STREAK_BONUS_STEPS = 5


def time_limit(round_no: int) -> float:
    return max(MIN_TIME_SECONDS, BASE_TIME_SECONDS - (round_no - 1) * TIME_DECAY_SECONDS)


def generate_question() -> tuple[str, str, list[str]]:
    """Return (word, ink, options); options always hold both the ink and the word."""
    word, ink = random.sample(COLORS, 2)
    others = random.sample([c for c in COLORS if c not in (word, ink)], OPTION_COUNT - 2)
    options = [word, ink, *others]
    random.shuffle(options)
    return word, ink, options


class ColorAnswer(EventPayload):
    choice: str = Field(max_length=16)


@dataclass
class ColorResponse:
    choice: str
    time_ms: int


@dataclass(kw_only=True)
class ColorClashState(GameState):
    word: str = ""
    ink: str = ""
    options: list[str] = field(default_factory=list)
    limit_ms: int = 0
    answers: HandleMap[ColorResponse] = field(default_factory=HandleMap)
    streaks: HandleMap[int] = field(default_factory=HandleMap)


class ColorClash(GameModule):
    info = GameInfo(
        id="color-clash",
        name="Color Clash",
        description="The word says RED but it's blue. Tap the INK color, not the word!",
        icon="\N{ARTIST PALETTE}",
        rounds=TOTAL_ROUNDS,
    )

    async def init(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        self.open_timers(room)
        room.game_state = ColorClashState(total_rounds=TOTAL_ROUNDS, streaks=HandleMap.fromkeys(room.players, 0))
        await self._next_round(room, broadcaster)

    async def _next_round(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: ColorClashState = room.game_state
        if not self.next_round(room, state):
            await self.finish(room, broadcaster)
            return
        state.answers = HandleMap()
        state.word, state.ink, state.options = generate_question()
        limit = time_limit(state.round)
        state.limit_ms = int(self.seconds(limit) * 1000)
        state.enter(SHOWING)
        await broadcaster.game_state(
            room,
            SHOWING,
            round=state.round,
            total_rounds=state.total_rounds,
            word=state.word,
            ink_color=state.ink,
            options=state.options,
            time_limit=state.limit_ms,
        )
        self.schedule_round(room, limit, lambda: self._resolve_round(room, broadcaster))

    async def on_event(
        self,
        room: Room,
        handle: str,
        event: str,
        payload: dict[str, Any],
        broadcaster: RoomBroadcaster,
    ) -> None:
        state: ColorClashState = room.game_state
        if event != "answer" or state.phase != SHOWING or handle in state.answers:
            return
        answer = self.parse_payload(ColorAnswer, payload)
        player = room.players.get(handle)
        if answer is None or player is None or answer.choice not in state.options:
            return

        elapsed = state.elapsed_ms()
        state.answers[handle] = ColorResponse(choice=answer.choice, time_ms=elapsed)
        correct = answer.choice == state.ink
        if correct:
            streak = state.streaks.get(handle, 0) + 1
            speed_bonus = max(0, (state.limit_ms - elapsed) // 50)
            streak_bonus = min(streak - 1, MAX_STREAK_BONUS_STEPS) * 10
            player.score += 100 + speed_bonus + streak_bonus
        else:
            streak = 0
        state.streaks[handle] = streak
        await self.notify(broadcaster, handle, "answered", round=state.round, correct=correct, streak=streak)

        if self.all_responded(room, state.answers):
            await self._resolve_round(room, broadcaster)

    async def _resolve_round(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: ColorClashState = room.game_state
        if not state.guard.claim(state.round):
            return
        state.enter(RESULT)
        results = [
            {"name": room.players[h].name, "correct": r.choice == state.ink, "time": r.time_ms}
            for h, r in state.answers.items()
            if h in room.players
        ]
        results.sort(key=lambda r: (not r["correct"], r["time"]))
        await broadcaster.game_state(
            room,
            RESULT,
            round=state.round,
            correct_answer=state.ink,
            word=state.word,
            results=results[:5],
        )
        self.schedule_round(room, 3.0, lambda: self._next_round(room, broadcaster))

    def player_view(self, room: Room, state: ColorClashState, handle: str) -> dict[str, Any]:
        view: dict[str, Any] = {"answered": handle in state.answers, "streak": state.streaks.get(handle, 0)}
        if state.phase == SHOWING:
            view |= {"word": state.word, "ink_color": state.ink, "options": state.options}
        return view
