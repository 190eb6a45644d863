"""Math Blitz: race to solve arithmetic problems that get harder every two rounds."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, NamedTuple

from party.games.base import EventPayload, GameInfo, GameModule, GameState
from party.games.handles import HandleMap

if TYPE_CHECKING:
    from party.session.broadcast import RoomBroadcaster
    from party.session.models import Room

SOLVING = "solving"
RESULT = "result"

ROUND_SECONDS = 12.0
BASE_POINTS = 100
MAX_SPEED_BONUS = 150
FIRST_SOLVER_BONUS = 50

PLUS = "+"
MINUS = "\N{MINUS SIGN}"
TIMES = "\N{MULTIPLICATION SIGN}"
DIVIDE = "\N{DIVISION SIGN}"
SQUARED = "\N{SUPERSCRIPT TWO}"


class Problem(NamedTuple):
    display: str
    answer: int
    level: int


def _add_or_subtract(a: int, b: int) -> Problem:
    if random.random() < 0.5:
        return Problem(f"{a} {PLUS} {b}", a + b, 0)
    a, b = max(a, b), min(a, b)
    return Problem(f"{a} {MINUS} {b}", a - b, 0)


def generate_problem(round_no: int) -> Problem:
    """Build a problem whose difficulty level (0-3) rises every two rounds."""
    level = min((round_no - 1) // 2, 3)
    roll = random.random()

    if level == 0:
        problem = _add_or_subtract(random.randint(5, 24), random.randint(2, 16))
    elif level == 1:
        if roll < 0.4:
            a, b = random.randint(2, 11), random.randint(2, 11)
            problem = Problem(f"{a} {TIMES} {b}", a * b, level)
        else:
            problem = _add_or_subtract(random.randint(20, 99), random.randint(10, 59))
    elif level == 2:
        if roll < 0.5:
            a, b = random.randint(5, 19), random.randint(3, 14)
            problem = Problem(f"{a} {TIMES} {b}", a * b, level)
        else:
            problem = _add_or_subtract(random.randint(50, 249), random.randint(20, 119))
    elif roll < 0.3:
        a = random.randint(4, 19)
        problem = Problem(f"{a}{SQUARED}", a * a, level)
    elif roll < 0.6:
        divisor, quotient = random.randint(2, 13), random.randint(2, 21)
        problem = Problem(f"{divisor * quotient} {DIVIDE} {divisor}", quotient, level)
    else:
        a, b = random.randint(10, 34), random.randint(10, 34)
        problem = Problem(f"{a} {TIMES} {b}", a * b, level)

    return problem._replace(level=level)


def solve_display(display: str) -> int | None:
    """Evaluate a problem exactly as it is shown to players."""
    if display.endswith(SQUARED):
        base = display.removesuffix(SQUARED)
        return int(base) ** 2 if base.isdigit() else None
    parts = display.split()
    if len(parts) != 3 or not parts[0].isdigit() or not parts[2].isdigit():
        return None
    a, op, b = int(parts[0]), parts[1], int(parts[2])
    match op:
        case "+":
            return a + b
        case "\N{MINUS SIGN}":
            return a - b
        case "\N{MULTIPLICATION SIGN}":
            return a * b
        case "\N{DIVISION SIGN}" if b:
            return a // b
    return None


class MathAnswer(EventPayload):
    answer: int


@dataclass(kw_only=True)
class MathBlitzState(GameState):
    problems: list[Problem] = field(default_factory=list)
    solvers: HandleMap[int] = field(default_factory=HandleMap)  # handle -> solve ms, in solve order

    @property
    def problem(self) -> Problem:
        return self.problems[self.round - 1]


class MathBlitz(GameModule):
    info = GameInfo(
        id="math-blitz",
        name="Math Blitz",
        description="Race to solve math problems, speed matters!",
        icon="\N{ABACUS}",
        rounds=8,
    )

    async def init(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        self.open_timers(room)
        room.game_state = MathBlitzState(
            total_rounds=self.info.rounds,
            problems=[generate_problem(n) for n in range(1, self.info.rounds + 1)],
        )
        await self._next_round(room, broadcaster)

    async def _next_round(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: MathBlitzState = room.game_state
        if not self.next_round(room, state):
            await self.finish(room, broadcaster)
            return
        state.solvers = HandleMap()
        state.enter(SOLVING)
        limit_ms = int(self.seconds(ROUND_SECONDS) * 1000)
        await broadcaster.game_state(
            room,
            SOLVING,
            round=state.round,
            total_rounds=state.total_rounds,
            problem=state.problem.display,
            level=state.problem.level,
            time_limit=limit_ms,
        )
        self.schedule_round(room, ROUND_SECONDS, lambda: self._round_result(room, broadcaster))
        self.repeat_round(
            room,
            1.0,
            lambda: broadcaster.game_tick(room, time_left=max(0, limit_ms - state.elapsed_ms())),
        )

    async def on_event(
        self,
        room: Room,
        handle: str,
        event: str,
        payload: dict[str, Any],
        broadcaster: RoomBroadcaster,
    ) -> None:
        state: MathBlitzState = room.game_state
        if event != "answer" or state.phase != SOLVING or handle in state.solvers:
            return
        answer = self.parse_payload(MathAnswer, payload)
        player = room.players.get(handle)
        if answer is None or player is None:
            return

        if answer.answer != state.problem.answer:
            # Wrong answers cost nothing; the player may try again.
            await self.notify(broadcaster, handle, "wrong", round=state.round, your_answer=answer.answer)
            return

        elapsed = state.elapsed_ms()
        state.solvers[handle] = elapsed
        limit_ms = self.seconds(ROUND_SECONDS) * 1000
        speed_bonus = max(0, round(MAX_SPEED_BONUS * (1 - elapsed / limit_ms)))
        first_bonus = FIRST_SOLVER_BONUS if len(state.solvers) == 1 else 0
        points = BASE_POINTS + speed_bonus + first_bonus
        player.score += points
        await self.notify(broadcaster, handle, "answered", round=state.round, correct=True, points=points, solve_time=elapsed)

        if self.all_responded(room, state.solvers):
            self.schedule_round(room, 1.5, lambda: self._round_result(room, broadcaster))

    async def _round_result(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: MathBlitzState = room.game_state
        if not state.guard.claim(state.round):
            return
        state.enter(RESULT)
        await broadcaster.game_state(
            room,
            RESULT,
            round=state.round,
            answer=state.problem.answer,
            problem=state.problem.display,
            solvers=[
                {"name": room.players[h].name, "time": ms} for h, ms in state.solvers.items() if h in room.players
            ],
            total_answered=len(state.solvers),
            total_players=room.player_count,
        )
        self.schedule_round(room, 3.5, lambda: self._next_round(room, broadcaster))

    def player_view(self, room: Room, state: MathBlitzState, handle: str) -> dict[str, Any]:
        view: dict[str, Any] = {"solved": handle in state.solvers}
        if state.phase == SOLVING:
            view["problem"] = state.problem.display
        return view
