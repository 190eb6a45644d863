"""Behaviour of each game module, driven phase by phase without real timers firing."""

import pytest

from party.games.color_clash import ColorClash
from party.games.emoji_match import EmojiMatch
from party.games.math_blitz import DIVIDE, MINUS, SQUARED, TIMES, MathBlitz, generate_problem, solve_display
from party.games.reaction_race import FAST_BONUS, WIN_POINTS, ReactionRace
from party.games.registry import GameRegistry
from party.games.simon_says import COLORS as SIMON_COLORS
from party.games.simon_says import SimonSays
from party.games.tap_frenzy import TapFrenzy
from party.games.trivia_blitz import TriviaBlitz
from party.games.word_scramble import WordScramble, scramble
from party.tests.helpers import GameTable, make_room


@pytest.fixture
async def start():
    """Start a game at normal speed, so no scheduled transition fires during a test."""
    started = []

    async def start(game_type, *names, bots=()):
        table = GameTable(make_room(*names, bots=bots))
        game = game_type(time_scale=1.0)
        table.room.game = game
        await game.init(table.room, table.broadcaster)
        started.append((game, table.room))
        return table, game

    yield start
    for game, room in started:
        game.cleanup(room)


async def send(table, game, handle, event, **payload):
    await game.on_event(table.room, handle, event, payload, table.broadcaster)


class TestRegistry:
    def test_default_registry_holds_every_game(self):
        registry = GameRegistry.default()
        assert len(registry) == 8
        assert "reaction-race" in registry
        assert registry.get("nope") is None
        assert len({info.id for info in registry.catalogue()}) == 8

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError, match="duplicate"):
            GameRegistry([TapFrenzy(), TapFrenzy()])


class TestReactionRace:
    async def test_starts_in_ready(self, start):
        table, _ = await start(ReactionRace, "Ava", "Ben")
        assert table.phases("h-Ben") == ["ready"]
        assert table.room.game_state.round == 1

    async def test_early_tap_is_noted_once_and_forgiven(self, start):
        table, game = await start(ReactionRace, "Ava", "Ben")
        room = table.room

        await send(table, game, "h-Ava", "tap")
        await send(table, game, "h-Ava", "tap")
        assert len(table.ticks("h-Ava", "early")) == 1
        assert table.ticks("h-Ben", "early") == []

        await game._go(room, table.broadcaster)
        await send(table, game, "h-Ava", "tap")

        assert list(room.game_state.tapped) == ["h-Ava"]
        assert room.players["h-Ava"].score == WIN_POINTS + FAST_BONUS

    async def test_only_first_tap_per_player_counts(self, start):
        table, game = await start(ReactionRace, "Ava", "Ben")
        room = table.room
        await game._go(room, table.broadcaster)

        await send(table, game, "h-Ben", "tap")
        await send(table, game, "h-Ben", "tap")
        await send(table, game, "h-Ava", "tap")

        assert list(room.game_state.tapped) == ["h-Ben", "h-Ava"]
        assert room.players["h-Ava"].score == 0

    async def test_round_result_runs_once(self, start):
        table, game = await start(ReactionRace, "Ava", "Ben")
        await game._go(table.room, table.broadcaster)
        await send(table, game, "h-Ben", "tap")

        await game._round_result(table.room, table.broadcaster)
        await game._round_result(table.room, table.broadcaster)

        assert table.phases("h-Ava") == ["ready", "go", "result"]
        result = table.connections["h-Ava"].last("game_state")
        assert result["winner"]["name"] == "Ben"


class TestTriviaBlitz:
    async def test_question_broadcast(self, start):
        table, _ = await start(TriviaBlitz, "Ava", "Ben")
        message = table.connections["h-Ava"].last("game_state")
        assert message["phase"] == "question"
        assert len(message["options"]) == 4
        assert message["total_rounds"] == 7

    @pytest.mark.parametrize("payload", [{}, {"choice": "1"}, {"choice": -1}, {"choice": 1.5}, {"choice": True}])
    async def test_malformed_answers_dropped(self, start, payload):
        table, game = await start(TriviaBlitz, "Ava", "Ben")
        await send(table, game, "h-Ava", "answer", **payload)
        assert not table.room.game_state.answers

    async def test_last_answer_reveals_and_scores(self, start):
        table, game = await start(TriviaBlitz, "Ava", "Ben")
        room = table.room
        correct = room.game_state.current.answer
        wrong = (correct + 1) % 4

        await send(table, game, "h-Ava", "answer", choice=correct)
        await send(table, game, "h-Ava", "answer", choice=wrong)
        assert room.game_state.answers["h-Ava"].choice == correct
        assert room.game_state.phase == "question"

        await send(table, game, "h-Ben", "answer", choice=wrong)

        assert room.game_state.phase == "answer"
        assert room.players["h-Ava"].score >= 100
        assert room.players["h-Ben"].score == 0
        assert table.connections["h-Ben"].last("game_state")["correct_index"] == correct

    async def test_snapshot_reports_own_answer(self, start):
        table, game = await start(TriviaBlitz, "Ava", "Ben")
        await send(table, game, "h-Ava", "answer", choice=0)
        snapshot = game.snapshot(table.room, "h-Ava")
        assert snapshot["phase"] == "question"
        assert snapshot["answered"]
        assert snapshot["choice"] == 0
        assert not game.snapshot(table.room, "h-Ben")["answered"]


class TestTapFrenzy:
    async def test_taps_only_count_while_tapping(self, start):
        table, game = await start(TapFrenzy, "Ava", "Ben")
        room = table.room
        await send(table, game, "h-Ava", "tap")
        assert room.game_state.taps["h-Ava"] == 0

        await game._start_tapping(room, table.broadcaster)
        for _ in range(3):
            await send(table, game, "h-Ava", "tap")
        await send(table, game, "h-Ben", "tap")
        await game._round_result(room, table.broadcaster)

        assert room.players["h-Ava"].score == 150
        assert room.players["h-Ben"].score == 100
        results = table.connections["h-Ava"].last("game_state")["results"]
        assert [r["count"] for r in results] == [3, 1]


class TestWordScramble:
    def test_scramble_changes_order(self):
        for _ in range(20):
            shuffled = scramble("PLANET")
            assert shuffled != "PLANET"
            assert sorted(shuffled) == sorted("PLANET")
        assert scramble("AAA") == "AAA"

    async def test_wrong_then_right_guess(self, start):
        table, game = await start(WordScramble, "Ava", "Ben")
        room = table.room
        word = room.game_state.word

        await send(table, game, "h-Ava", "guess", guess="zzzzzz")
        assert table.ticks("h-Ava", "wrong")

        await send(table, game, "h-Ava", "guess", guess=f"  {word.lower()} ")
        assert table.ticks("h-Ava", "solved")[0]["rank"] == 1
        assert room.players["h-Ava"].score == 150

        await send(table, game, "h-Ava", "guess", guess=word)
        assert room.players["h-Ava"].score == 150

        await send(table, game, "h-Ben", "guess", guess=word)
        assert room.players["h-Ben"].score == 100
        assert room.game_state.phase == "reveal"


class TestMathBlitz:
    @pytest.mark.parametrize(
        ("display", "answer"),
        [
            ("12 + 7", 19),
            (f"20 {MINUS} 8", 12),
            (f"6 {TIMES} 7", 42),
            (f"84 {DIVIDE} 12", 7),
            (f"13{SQUARED}", 169),
            ("what", None),
        ],
    )
    def test_solve_display(self, display, answer):
        assert solve_display(display) == answer

    def test_generated_problems_solve_and_get_harder(self):
        for round_no in range(1, 9):
            problem = generate_problem(round_no)
            assert solve_display(problem.display) == problem.answer
            assert problem.level == min((round_no - 1) // 2, 3)

    async def test_wrong_answer_allows_retry(self, start):
        table, game = await start(MathBlitz, "Ava", "Ben")
        room = table.room
        answer = room.game_state.problem.answer

        await send(table, game, "h-Ava", "answer", answer=answer + 1)
        assert table.ticks("h-Ava", "wrong")[0]["your_answer"] == answer + 1
        assert room.players["h-Ava"].score == 0

        await send(table, game, "h-Ava", "answer", answer=answer)
        score = room.players["h-Ava"].score
        assert score >= 150

        await send(table, game, "h-Ava", "answer", answer=answer)
        assert room.players["h-Ava"].score == score


class TestSimonSays:
    async def test_wrong_press_eliminates(self, start):
        table, game = await start(SimonSays, "Ava", "Ben", "Cat")
        room = table.room
        state = room.game_state
        assert table.phases("h-Ava") == ["showing"]

        await send(table, game, "h-Ava", "input", color=state.sequence[0])
        assert state.phase == "showing"
        assert not state.inputs

        await game._start_input(room, table.broadcaster)
        first = state.sequence[0]
        wrong = next(c for c in SIMON_COLORS if c != first)

        await send(table, game, "h-Ava", "input", color=first)
        await send(table, game, "h-Ben", "input", color=wrong)
        await send(table, game, "h-Ben", "input", color=first)
        await send(table, game, "h-Cat", "input", color="purple")

        assert table.ticks("h-Ava", "round_complete")
        assert table.ticks("h-Ben", "eliminated")[0]["expected"] == first
        assert state.survivors == {"h-Ava", "h-Cat"}
        assert state.eliminated == {"h-Ben"}
        assert room.players["h-Ava"].score == 20
        assert "h-Cat" not in state.inputs


class TestColorClash:
    async def test_only_listed_options_accepted(self, start):
        table, game = await start(ColorClash, "Ava", "Ben")
        state = table.room.game_state
        message = table.connections["h-Ava"].last("game_state")
        assert message["ink_color"] == state.ink
        assert state.word != state.ink
        assert {state.word, state.ink} <= set(state.options)

        await send(table, game, "h-Ava", "answer", choice="chartreuse")
        assert not state.answers

        await send(table, game, "h-Ava", "answer", choice=state.ink)
        assert table.room.players["h-Ava"].score >= 100
        assert state.streaks["h-Ava"] == 1

        await send(table, game, "h-Ben", "answer", choice=state.word)
        assert state.streaks["h-Ben"] == 0
        assert state.phase == "result"


class TestEmojiMatch:
    async def test_only_current_player_may_flip(self, start):
        table, game = await start(EmojiMatch, "Ava", "Ben")
        state = table.room.game_state
        other = next(h for h in table.room.players if h != state.current_turn)

        await send(table, game, other, "flip", index=0)
        await send(table, game, state.current_turn, "flip", index=99)
        await send(table, game, state.current_turn, "flip", index="0")
        assert state.first_pick is None

    async def test_matching_pair_scores_and_locks(self, start):
        table, game = await start(EmojiMatch, "Ava", "Ben")
        room = table.room
        state = room.game_state
        assert state.board_size == 12
        player = state.current_turn
        twin = next(i for i in range(1, state.board_size) if state.board[i] == state.board[0])

        await send(table, game, player, "flip", index=0)
        await send(table, game, player, "flip", index=0)
        assert state.first_pick == 0 and state.second_pick is None

        await send(table, game, player, "flip", index=twin)
        assert state.locked
        assert state.revealed[0] and state.revealed[twin]
        assert room.players[player].score == 50

        spare = state.revealed.index(False)
        await send(table, game, player, "flip", index=spare)
        assert state.second_pick == twin
        flips = [m for m in table.connections["h-Ava"].of_type("game_state") if m.get("event") == "flip"]
        assert [f["index"] for f in flips] == [0, twin]

    async def test_rebind_moves_turn_to_new_handle(self, start):
        table, game = await start(EmojiMatch, "Ava", "Ben")
        state = table.room.game_state
        old = state.current_turn

        assert state.rebind(old, "fresh")
        assert state.current_turn == "fresh"
        assert "fresh" in state.turn_order
        assert old not in state.turn_order
        assert "fresh" in state.pairs_found

    async def test_leaving_on_turn_passes_turn(self, start):
        table, game = await start(EmojiMatch, "Ava", "Ben", "Cat")
        room = table.room
        state = room.game_state
        leaver = state.current_turn
        del room.players[leaver]

        await game.on_player_left(room, leaver, table.broadcaster)

        assert state.current_turn in room.players
        assert state.current_turn != leaver
