"""
Per-game bot behaviour.

A strategy sees only the messages broadcast to the room plus the bot's own
entries in game state, i.e. what a human at the table could know. The
"knowledge" a strategy applies (the trivia bank, the word list, arithmetic)
is the same general knowledge a player might have.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

from party.bots.actor import tiered, tiered_chance, tiered_range
from party.games import color_clash, emoji_match, math_blitz, reaction_race, simon_says, tap_frenzy
from party.games import trivia_blitz, word_scramble
from party.messaging.types import SessionMessageType

if TYPE_CHECKING:
    from party.bots.actor import BotActor


class BotStrategy(ABC):
    """Reacts to room broadcasts on behalf of one bot for one game."""

    game_id: ClassVar[str]

    def observe(self, actor: BotActor, message: dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == SessionMessageType.GAME_STATE:
            self.on_state(actor, message)
        elif kind == SessionMessageType.GAME_TICK:
            self.on_tick(actor, message)

    @abstractmethod
    def on_state(self, actor: BotActor, message: dict[str, Any]) -> None: ...

    def on_tick(self, actor: BotActor, message: dict[str, Any]) -> None:
        pass


class ReactionStrategy(BotStrategy):
    game_id = reaction_race.ReactionRace.info.id

    def on_state(self, actor: BotActor, message: dict[str, Any]) -> None:
        if message["phase"] != reaction_race.GO:
            return
        round_no = message["round"]
        delay = tiered_range(actor.difficulty, (0.4, 0.9), (0.22, 0.5), (0.13, 0.3))
        actor.act_after(
            delay,
            "tap",
            {},
            lambda: actor.at(reaction_race.GO, round_no) and not actor.own("tapped"),
        )


class TriviaStrategy(BotStrategy):
    game_id = trivia_blitz.TriviaBlitz.info.id

    _answers: ClassVar[dict[str, int]] = {q.text: q.answer for q in trivia_blitz.QUESTION_BANK}

    def on_state(self, actor: BotActor, message: dict[str, Any]) -> None:
        if message["phase"] != trivia_blitz.QUESTION:
            return
        round_no = message["round"]
        options = message["options"]
        known = self._answers.get(message["question"])
        if known is not None and tiered_chance(actor.difficulty, 0.4, 0.7, 0.92):
            choice = known
        else:
            choice = random.choice([i for i in range(len(options)) if i != known])
        delay = tiered_range(actor.difficulty, (4.0, 8.0), (2.0, 5.0), (0.8, 2.5))
        actor.act_after(
            delay,
            "answer",
            {"choice": choice},
            lambda: actor.at(trivia_blitz.QUESTION, round_no) and not actor.own("answers"),
        )


class TapStrategy(BotStrategy):
    game_id = tap_frenzy.TapFrenzy.info.id

    def on_state(self, actor: BotActor, message: dict[str, Any]) -> None:
        if message["phase"] != tap_frenzy.TAPPING:
            return
        round_no = message["round"]
        taps_per_second = tiered_range(actor.difficulty, (3, 5), (6, 9), (10, 15))
        actor.act_every(
            max(0.05, 1 / taps_per_second),
            "tap",
            {},
            lambda: actor.at(tap_frenzy.TAPPING, round_no),
        )


class WordStrategy(BotStrategy):
    game_id = word_scramble.WordScramble.info.id

    _vocabulary: ClassVar[dict[str, str]] = {"".join(sorted(w)): w for w in word_scramble.WORDS}

    def on_state(self, actor: BotActor, message: dict[str, Any]) -> None:
        if message["phase"] != word_scramble.SCRAMBLED:
            return
        round_no = message["round"]
        word = self._vocabulary.get("".join(sorted(message["scrambled"])))
        if word is None or not tiered_chance(actor.difficulty, 0.45, 0.75, 0.95):
            return
        delay = tiered_range(actor.difficulty, (7.0, 13.0), (3.5, 7.0), (1.5, 4.0))
        actor.act_after(
            delay,
            "guess",
            {"guess": word},
            lambda: actor.at(word_scramble.SCRAMBLED, round_no) and not actor.own("solvers"),
        )


class EmojiStrategy(BotStrategy):
    """Remembers every card it has seen flipped this round, by anyone."""

    game_id = emoji_match.EmojiMatch.info.id

    def __init__(self) -> None:
        self.round = 0
        self.board_size = 0
        self.seen: dict[int, str] = {}
        self.matched: set[int] = set()

    def on_state(self, actor: BotActor, message: dict[str, Any]) -> None:
        if message["phase"] != emoji_match.PLAYING:
            return
        event = message.get("event")
        if "board_size" in message:
            self.round = message["round"]
            self.board_size = message["board_size"]
            self.seen.clear()
            self.matched.clear()

        if event == emoji_match.FLIP:
            self.seen[message["index"]] = message["emoji"]
        elif event == emoji_match.MATCH:
            self.matched.update(message["indices"])

        if event in (emoji_match.TURN, emoji_match.MATCH) and message.get("current_turn") == actor.handle:
            self._take_turn(actor)

    def _hidden(self) -> list[int]:
        return [i for i in range(self.board_size) if i not in self.matched]

    def _known_pair(self) -> tuple[int, int] | None:
        by_emoji: dict[str, list[int]] = {}
        for index, emoji in self.seen.items():
            if index not in self.matched:
                by_emoji.setdefault(emoji, []).append(index)
        for indices in by_emoji.values():
            if len(indices) >= 2:
                return indices[0], indices[1]
        return None

    def _my_turn(self, actor: BotActor) -> bool:
        state = actor.room.game_state
        return (
            isinstance(state, emoji_match.EmojiMatchState)
            and state.phase == emoji_match.PLAYING
            and state.round == self.round
            and state.current_turn == actor.handle
        )

    def _take_turn(self, actor: BotActor) -> None:
        hidden = self._hidden()
        if len(hidden) < 2:
            return
        pair = None
        if tiered_chance(actor.difficulty, 0.2, 0.55, 0.85):
            pair = self._known_pair()
        first, second = pair or random.sample(hidden, 2)

        def first_ready() -> bool:
            state = actor.room.game_state
            return self._my_turn(actor) and not state.locked and state.first_pick is None

        def second_ready() -> bool:
            state = actor.room.game_state
            return self._my_turn(actor) and state.first_pick == first and state.second_pick is None

        def flip_second() -> None:
            delay = tiered_range(actor.difficulty, (0.8, 1.5), (0.5, 0.9), (0.3, 0.6))
            actor.act_after(delay, "flip", {"index": second}, second_ready)

        delay = tiered_range(actor.difficulty, (1.2, 2.0), (0.7, 1.2), (0.4, 0.7))
        actor.act_after(delay, "flip", {"index": first}, first_ready, then=flip_second)


class MathStrategy(BotStrategy):
    game_id = math_blitz.MathBlitz.info.id

    def on_state(self, actor: BotActor, message: dict[str, Any]) -> None:
        if message["phase"] != math_blitz.SOLVING:
            return
        round_no = message["round"]
        answer = math_blitz.solve_display(message["problem"])
        if answer is None:
            return

        def open_() -> bool:
            return actor.at(math_blitz.SOLVING, round_no) and not actor.own("solvers")

        if tiered_chance(actor.difficulty, 0.5, 0.8, 0.95):
            delay = tiered_range(actor.difficulty, (4.0, 9.0), (2.0, 5.0), (0.8, 2.5))
            actor.act_after(delay, "answer", {"answer": answer}, open_)
            return

        wrong = answer + random.choice((-1, 1)) * random.randint(1, 10)
        retry = tiered_chance(actor.difficulty, 0.2, 0.4, 0.6)

        def maybe_retry() -> None:
            if retry:
                delay = tiered_range(actor.difficulty, (2.0, 4.0), (1.0, 2.5), (0.5, 1.5))
                actor.act_after(delay, "answer", {"answer": answer}, open_)

        delay = tiered_range(actor.difficulty, (3.0, 7.0), (2.0, 5.0), (1.5, 3.0))
        actor.act_after(delay, "answer", {"answer": wrong}, open_, then=maybe_retry)


class SimonStrategy(BotStrategy):
    """Replays the colours it watched flash during the showing phase."""

    game_id = simon_says.SimonSays.info.id

    def __init__(self) -> None:
        self.flashed: dict[int, str] = {}

    def on_tick(self, actor: BotActor, message: dict[str, Any]) -> None:
        if message.get("event") == "flash":
            self.flashed[message["index"]] = message["color"]

    def on_state(self, actor: BotActor, message: dict[str, Any]) -> None:
        if message["phase"] == simon_says.SHOWING:
            self.flashed.clear()
            return
        if message["phase"] != simon_says.INPUT:
            return
        round_no = message["round"]
        if not actor.own("survivors"):
            return

        sequence = [self.flashed.get(i) or random.choice(simon_says.COLORS) for i in range(message["sequence_length"])]
        base = tiered(actor.difficulty, 0.7, 0.85, 0.95)
        accuracy = max(0.3, base - round_no * 0.03)
        if random.random() >= accuracy:
            last = sequence[-1]
            sequence[-1] = random.choice([c for c in simon_says.COLORS if c != last])

        speed = tiered_range(actor.difficulty, (0.8, 1.2), (0.5, 0.8), (0.3, 0.5))
        # Presses must arrive in order, so delays only ever grow.
        delay = 0.0
        for color in sequence:
            delay += speed + random.uniform(0, 0.2)
            actor.act_after(
                delay,
                "input",
                {"color": color},
                lambda: actor.at(simon_says.INPUT, round_no) and actor.own("survivors"),
            )


class ColorClashStrategy(BotStrategy):
    game_id = color_clash.ColorClash.info.id

    def on_state(self, actor: BotActor, message: dict[str, Any]) -> None:
        if message["phase"] != color_clash.SHOWING:
            return
        round_no = message["round"]
        correct = tiered_chance(actor.difficulty, 0.5, 0.75, 0.93)
        # The classic mistake: tapping the word instead of the ink.
        choice = message["ink_color"] if correct else message["word"]
        delay = tiered_range(actor.difficulty, (2.0, 4.0), (1.0, 2.5), (0.4, 1.2))
        actor.act_after(
            delay,
            "answer",
            {"choice": choice},
            lambda: actor.at(color_clash.SHOWING, round_no) and not actor.own("answers"),
        )


STRATEGIES: dict[str, type[BotStrategy]] = {
    cls.game_id: cls
    for cls in (
        ReactionStrategy,
        TriviaStrategy,
        TapStrategy,
        WordStrategy,
        EmojiStrategy,
        MathStrategy,
        SimonStrategy,
        ColorClashStrategy,
    )
}
