from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel

from party.games.handles import HandleMap
from party.session.feed import PhaseFeed

if TYPE_CHECKING:
    import asyncio

    from party.games.base import GameModule, GameState
    from party.session.timers import TimerGroup


class RoomState(StrEnum):
    LOBBY = "lobby"
    PLAYING = "playing"
    RESULTS = "results"


class Difficulty(StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


DIFFICULTY_BADGE = {
    Difficulty.EASY: "\N{LARGE GREEN CIRCLE}",
    Difficulty.MEDIUM: "\N{LARGE YELLOW CIRCLE}",
    Difficulty.HARD: "\N{LARGE RED CIRCLE}",
}


class ScoreEntry(BaseModel):
    id: str
    name: str
    score: int


class PlayerInfo(BaseModel):
    """Player entry in room-wide messages."""

    id: str
    name: str
    score: int
    is_host: bool
    is_bot: bool
    difficulty: str | None = None
    badge: str | None = None
    disconnected: bool = False


@dataclass
class Player:
    """A participant in a room, keyed by its current connection handle.

    Lifecycle:
    - Created on create/join or when the host adds a bot
    - disconnected is set while a grace period runs, cleared on rejoin
    - Removed on explicit leave, grace expiry, or bot removal
    """

    name: str
    score: int = 0
    is_host: bool = False
    is_bot: bool = False
    disconnected: bool = False
    difficulty: Difficulty | None = None

    @property
    def is_connected_human(self) -> bool:
        return not self.is_bot and not self.disconnected


@dataclass
class Room:
    """An isolated game session keyed by a short code.

    The room owns its players, the active game module and that module's
    state, plus the scoped timer groups for game and bot work.
    """

    code: str
    host_handle: str | None = None
    players: HandleMap[Player] = field(default_factory=HandleMap)
    state: RoomState = RoomState.LOBBY
    game: GameModule | None = None
    game_state: GameState | None = None
    created_at: float = field(default_factory=time.monotonic)
    game_timers: TimerGroup | None = None
    bot_timers: TimerGroup | None = None
    feed: PhaseFeed = field(default_factory=PhaseFeed)

    @property
    def player_count(self) -> int:
        return len(self.players)

    @property
    def is_empty(self) -> bool:
        return self.player_count == 0

    @property
    def has_humans(self) -> bool:
        return any(not p.is_bot for p in self.players.values())

    @property
    def connected_human_count(self) -> int:
        return sum(1 for p in self.players.values() if p.is_connected_human)

    def bot_handles(self) -> list[str]:
        return [handle for handle, p in self.players.items() if p.is_bot]

    def active_handles(self) -> list[str]:
        """Handles of players expected to act: bots and connected humans."""
        return [handle for handle, p in self.players.items() if not p.disconnected]

    def find_player_by_name(self, name: str, *, disconnected: bool | None = None) -> str | None:
        """Return the handle of the first player with a case-insensitive name match."""
        wanted = name.casefold()
        for handle, player in self.players.items():
            if player.name.casefold() != wanted:
                continue
            if disconnected is None or player.disconnected == disconnected:
                return handle
        return None

    def reset_scores(self) -> None:
        for player in self.players.values():
            player.score = 0

    def ranked_scores(self) -> list[ScoreEntry]:
        scores = [ScoreEntry(id=handle, name=p.name, score=p.score) for handle, p in self.players.items()]
        scores.sort(key=lambda s: s.score, reverse=True)
        return scores

    def player_info(self) -> list[PlayerInfo]:
        return [
            PlayerInfo(
                id=handle,
                name=p.name,
                score=p.score,
                is_host=p.is_host,
                is_bot=p.is_bot,
                difficulty=p.difficulty.value if p.difficulty else None,
                badge=DIFFICULTY_BADGE[p.difficulty] if p.difficulty else None,
                disconnected=p.disconnected,
            )
            for handle, p in self.players.items()
        ]

    def end_game(self) -> None:
        """Release the active game and its bots, leaving the room in the lobby."""
        if self.bot_timers is not None:
            self.bot_timers.close()
            self.bot_timers = None
        if self.game is not None:
            self.game.cleanup(self)
        self.feed.clear()
        self.game = None
        self.game_state = None
        self.state = RoomState.LOBBY


@dataclass
class GraceEntry:
    """Pending removal of a disconnected player; not part of any room."""

    task: asyncio.Task[None] | None
    room_code: str
    player: Player
