"""Bot naming and the per-game observer tasks that drive bot strategies."""

from __future__ import annotations

import random
from typing import TYPE_CHECKING, Any

import structlog

from party.bots.actor import BotActor
from party.bots.strategies import STRATEGIES
from party.games.base import FINISHED
from party.messaging.types import SessionMessageType
from party.session.models import Difficulty
from party.session.timers import TimerGroup

if TYPE_CHECKING:
    import asyncio

    from party.bots.actor import EmitEvent
    from party.session.lifecycle import SessionLifecycle
    from party.session.models import Player, Room

logger = structlog.get_logger()

BOT_NAMES = (
    "RoboChamp",
    "PixelPal",
    "ByteBot",
    "NeonNinja",
    "TurboTap",
    "GlitchKing",
    "LazerFox",
    "CyberPunk",
    "BotBoss",
    "MegaByte",
    "ZapMaster",
    "DataDog",
    "WiFiWiz",
    "ClickBot",
    "SpeedyAI",
    "RoboRex",
    "BitBlitz",
    "CodeCat",
    "QuantumQ",
    "SteelSam",
)


def is_terminal(message: dict[str, Any]) -> bool:
    return message.get("type") == SessionMessageType.GAME_STATE and message.get("phase") == FINISHED


class BotManager:
    """Starts and stops the bots of a room.

    Each bot gets its own subscription to the room's PhaseFeed, taken before
    the game's init() runs so the first phase is never missed, and an
    observer task in the room's bot timer group tagged with the bot handle.
    Removing one bot therefore cancels its observer and its pending actions
    without touching the others.
    """

    def __init__(self, lifecycle: SessionLifecycle, emit: EmitEvent, *, time_scale: float = 1.0) -> None:
        self._lifecycle = lifecycle
        self._emit = emit
        self._time_scale = time_scale

    @staticmethod
    def pick_name(room: Room) -> str:
        taken = {p.name.casefold() for p in room.players.values()}
        free = [name for name in BOT_NAMES if name.casefold() not in taken]
        if free:
            return random.choice(free)
        n = 1
        while f"bot{n}" in taken:
            n += 1
        return f"Bot{n}"

    @staticmethod
    def pick_difficulty(requested: Difficulty | None) -> Difficulty:
        return requested or random.choice(list(Difficulty))

    def create_bot(self, host_handle: str, requested: Difficulty | None = None) -> tuple[Room, str]:
        """Seat a new bot in the host's lobby under a free name."""
        room = self._lifecycle.require_host(host_handle)
        return self._lifecycle.add_bot(host_handle, self.pick_name(room), self.pick_difficulty(requested))

    def remove_bot(self, host_handle: str, bot_handle: str) -> tuple[Room, Player]:
        room, player = self._lifecycle.remove_bot(host_handle, bot_handle)
        self.stop_bot(room, bot_handle)
        return room, player

    def start(self, room: Room) -> int:
        """Subscribe every bot in the room to the feed and spawn its observer."""
        if room.game is None:
            return 0
        game_id = room.game.id
        strategy_type = STRATEGIES.get(game_id)
        handles = room.bot_handles()
        if strategy_type is None or not handles:
            return 0

        if room.bot_timers is not None:
            room.bot_timers.close()
        timers = room.bot_timers = TimerGroup(f"bots:{room.code}")
        for handle in handles:
            player = room.players[handle]
            actor = BotActor(
                room,
                handle,
                player.difficulty or Difficulty.MEDIUM,
                emit=self._emit,
                timers=timers,
                time_scale=self._time_scale,
            )
            queue = room.feed.subscribe(handle)
            timers.spawn(lambda a=actor, q=queue: self._observe(a, strategy_type(), q), tag=handle)
        logger.info("bots started", room=room.code, game=game_id, bots=len(handles))
        return len(handles)

    async def _observe(
        self,
        actor: BotActor,
        strategy: Any,
        queue: asyncio.Queue[dict[str, Any]],
    ) -> None:
        try:
            while actor.present:
                message = await queue.get()
                if is_terminal(message):
                    return
                try:
                    strategy.observe(actor, message)
                except Exception:
                    logger.exception("bot strategy failed", room=actor.room.code, bot=actor.handle)
        finally:
            actor.room.feed.unsubscribe(actor.handle, queue)

    @staticmethod
    def stop(room: Room) -> None:
        if room.bot_timers is not None:
            room.bot_timers.close()
            room.bot_timers = None

    @staticmethod
    def stop_bot(room: Room, handle: str) -> None:
        room.feed.unsubscribe(handle)
        if room.bot_timers is not None:
            room.bot_timers.cancel_tag(handle)
