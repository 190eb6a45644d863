"""Lookup table of game modules by id."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from party.games.color_clash import ColorClash
from party.games.emoji_match import EmojiMatch
from party.games.math_blitz import MathBlitz
from party.games.reaction_race import ReactionRace
from party.games.simon_says import SimonSays
from party.games.tap_frenzy import TapFrenzy
from party.games.trivia_blitz import TriviaBlitz
from party.games.word_scramble import WordScramble

if TYPE_CHECKING:
    from party.games.base import GameInfo, GameModule

logger = structlog.get_logger()

GAME_TYPES: tuple[type[GameModule], ...] = (
    ReactionRace,
    TriviaBlitz,
    TapFrenzy,
    WordScramble,
    EmojiMatch,
    MathBlitz,
    SimonSays,
    ColorClash,
)


class GameRegistry:
    def __init__(self, modules: list[GameModule]) -> None:
        self._modules: dict[str, GameModule] = {}
        for module in modules:
            if module.id in self._modules:
                raise ValueError(f"duplicate game id: {module.id}")
            self._modules[module.id] = module
            logger.debug("loaded game", game=module.id)

    @classmethod
    def default(cls, *, time_scale: float = 1.0) -> GameRegistry:
        return cls([game_type(time_scale=time_scale) for game_type in GAME_TYPES])

    def __len__(self) -> int:
        return len(self._modules)

    def __contains__(self, game_id: str) -> bool:
        return game_id in self._modules

    def get(self, game_id: str) -> GameModule | None:
        return self._modules.get(game_id)

    def catalogue(self) -> list[GameInfo]:
        return [module.info for module in self._modules.values()]
