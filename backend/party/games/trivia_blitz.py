"""Trivia Blitz: fast multiple-choice questions, points for speed and accuracy."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, NamedTuple

from pydantic import Field, StrictInt

from party.games.base import EventPayload, GameInfo, GameModule, GameState
from party.games.handles import HandleMap

if TYPE_CHECKING:
    from party.session.broadcast import RoomBroadcaster
    from party.session.models import Room

QUESTION = "question"
ANSWER = "answer"

TIME_LIMIT_SECONDS = 10
ANSWER_SHOWN_SECONDS = 4


class Question(NamedTuple):
    text: str
    options: tuple[str, ...]
    answer: int


QUESTION_BANK: tuple[Question, ...] = (
    Question("What planet is known as the Red Planet?", ("Venus", "Mars", "Jupiter", "Saturn"), 1),
    Question("How many sides does a hexagon have?", ("5", "6", "7", "8"), 1),
    Question("What is the chemical symbol for gold?", ("Go", "Gd", "Au", "Ag"), 2),
    Question("Which ocean is the largest?", ("Atlantic", "Indian", "Arctic", "Pacific"), 3),
    Question("What year did the Titanic sink?", ("1905", "1912", "1918", "1923"), 1),
    Question("How many bones in the adult human body?", ("186", "206", "226", "256"), 1),
    Question("What is the smallest country in the world?", ("Monaco", "Vatican City", "Malta", "Liechtenstein"), 1),
    Question("Which element has the atomic number 1?", ("Helium", "Oxygen", "Hydrogen", "Carbon"), 2),
    Question("What is the speed of light in km/s (approx)?", ("150,000", "200,000", "300,000", "400,000"), 2),
    Question("Which country invented pizza?", ("Greece", "France", "Italy", "Spain"), 2),
    Question("What is the longest river in the world?", ("Amazon", "Nile", "Yangtze", "Mississippi"), 1),
    Question("How many strings does a standard guitar have?", ("4", "5", "6", "7"), 2),
    Question("What gas do plants absorb from the air?", ("Oxygen", "Nitrogen", "Carbon Dioxide", "Helium"), 2),
    Question("In what year did World War II end?", ("1943", "1944", "1945", "1946"), 2),
    Question("What is the capital of Australia?", ("Sydney", "Melbourne", "Canberra", "Brisbane"), 2),
    Question("Which animal is the tallest?", ("Elephant", "Giraffe", "Horse", "Camel"), 1),
    Question(
        'What does "HTTP" stand for?',
        (
            "HyperText Transfer Protocol",
            "High Tech Transfer Program",
            "HyperText Transmission Port",
            "Home Tool Transfer Protocol",
        ),
        0,
    ),
    Question("How many continents are there?", ("5", "6", "7", "8"), 2),
    Question("Which planet has the most moons?", ("Jupiter", "Saturn", "Uranus", "Neptune"), 1),
    Question("What is the hardest natural substance?", ("Gold", "Iron", "Diamond", "Platinum"), 2),
)


class TriviaAnswer(EventPayload):
    choice: StrictInt = Field(ge=0)


@dataclass
class AnswerRecord:
    choice: int
    time_ms: int


@dataclass(kw_only=True)
class TriviaState(GameState):
    questions: list[Question] = field(default_factory=list)
    answers: HandleMap[AnswerRecord] = field(default_factory=HandleMap)

    @property
    def current(self) -> Question:
        return self.questions[self.round - 1]


class TriviaBlitz(GameModule):
    info = GameInfo(
        id="trivia-blitz",
        name="Trivia Blitz",
        description="Answer fast! Points for speed and accuracy.",
        icon="\N{BRAIN}",
        rounds=7,
    )

    async def init(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        self.open_timers(room)
        room.game_state = TriviaState(
            total_rounds=self.info.rounds,
            questions=random.sample(QUESTION_BANK, self.info.rounds),
        )
        await self._next_question(room, broadcaster)

    async def _next_question(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: TriviaState = room.game_state
        if not self.next_round(room, state):
            await self.finish(room, broadcaster)
            return
        state.answers = HandleMap()
        state.enter(QUESTION)
        question = state.current
        await broadcaster.game_state(
            room,
            QUESTION,
            round=state.round,
            total_rounds=state.total_rounds,
            question=question.text,
            options=list(question.options),
            time_limit=TIME_LIMIT_SECONDS,
        )
        self.schedule_round(room, TIME_LIMIT_SECONDS, lambda: self._show_answer(room, broadcaster))

    async def on_event(
        self,
        room: Room,
        handle: str,
        event: str,
        payload: dict[str, Any],
        broadcaster: RoomBroadcaster,
    ) -> None:
        state: TriviaState = room.game_state
        if event != "answer" or state.phase != QUESTION or handle in state.answers:
            return
        answer = self.parse_payload(TriviaAnswer, payload)
        if answer is None:
            return

        state.answers[handle] = AnswerRecord(choice=answer.choice, time_ms=state.elapsed_ms())
        if self.all_responded(room, state.answers):
            await self._show_answer(room, broadcaster)

    async def _show_answer(self, room: Room, broadcaster: RoomBroadcaster) -> None:
        state: TriviaState = room.game_state
        if not state.guard.claim(state.round):
            return
        state.enter(ANSWER)

        question = state.current
        results = []
        for handle, record in state.answers.items():
            player = room.players.get(handle)
            if player is None:
                continue
            correct = record.choice == question.answer
            points = 100 + max(0, (10_000 - record.time_ms) // 80) if correct else 0
            player.score += points
            results.append({"id": handle, "name": player.name, "correct": correct, "points": points, "time": record.time_ms})
        results.sort(key=lambda r: r["points"], reverse=True)

        await broadcaster.game_state(
            room,
            ANSWER,
            round=state.round,
            correct_index=question.answer,
            correct_text=question.options[question.answer],
            results=results,
        )
        self.schedule_round(room, ANSWER_SHOWN_SECONDS, lambda: self._next_question(room, broadcaster))

    def player_view(self, room: Room, state: TriviaState, handle: str) -> dict[str, Any]:
        view: dict[str, Any] = {"answered": handle in state.answers}
        if state.phase == QUESTION:
            question = state.current
            view |= {"question": question.text, "options": list(question.options)}
        if handle in state.answers:
            view["choice"] = state.answers[handle].choice
        return view
