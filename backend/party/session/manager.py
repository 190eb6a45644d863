from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from party.bots.manager import BotManager
from party.games.registry import GameRegistry
from party.messaging.types import (
    AckMessage,
    ErrorMessage,
    GameInfoEntry,
    GamesListMessage,
    GameStartedMessage,
    LobbyEnteredMessage,
    PlayerAwayMessage,
    PlayerJoinedMessage,
    PlayerLeftMessage,
    PlayerRejoinedMessage,
    PongMessage,
    RejoinAck,
    RoomAck,
)
from party.session.broadcast import ConnectionHub, RoomBroadcaster
from party.session.errors import GameInProgressError, NotEnoughPlayersError, NotInRoomError, UnknownGameError
from party.session.lifecycle import SessionLifecycle
from party.session.models import RoomState
from party.session.registry import RoomRegistry
from party.session.timers import TimerGroup

if TYPE_CHECKING:
    from pydantic import BaseModel

    from party.games.base import GameModule
    from party.messaging.protocol import ConnectionProtocol
    from party.server.settings import PartyServerSettings
    from party.session.errors import SessionError
    from party.session.lifecycle import JoinOutcome, LeaveOutcome
    from party.session.models import Difficulty, Room

logger = structlog.get_logger()

NOT_ENOUGH_PLAYERS_MESSAGE = "Game ended - not enough players"


class SessionManager:
    """Async orchestration over the synchronous room lifecycle.

    Every request handler runs its lifecycle step first (which either raises a
    SessionError or completes atomically) and only then awaits replies and
    broadcasts, so a request can never leave a room half-mutated.
    """

    def __init__(
        self,
        games: GameRegistry | None = None,
        *,
        grace_period_seconds: float = 30.0,
        room_ttl_seconds: float = 2 * 60 * 60,
        reaper_interval_seconds: float = 60.0,
        max_players: int = 20,
        min_players: int = 2,
        max_name_length: int = 20,
        start_delay_seconds: float = 0.5,
        time_scale: float = 1.0,
    ) -> None:
        self._games = games or GameRegistry.default(time_scale=time_scale)
        self._hub = ConnectionHub()
        self._broadcaster = RoomBroadcaster(self._hub)
        self._registry = RoomRegistry(
            room_ttl_seconds=room_ttl_seconds,
            reaper_interval_seconds=reaper_interval_seconds,
            on_reaped=self._on_room_reaped,
        )
        self._lifecycle = SessionLifecycle(
            self._registry,
            grace_period_seconds=grace_period_seconds,
            max_players=max_players,
            max_name_length=max_name_length,
            on_grace_expired=self._on_grace_expired,
        )
        self._bots = BotManager(self._lifecycle, self.handle_game_event, time_scale=time_scale)
        self._min_players = min_players
        self._start_delay_seconds = start_delay_seconds * time_scale
        # Delayed game starts, tagged by room code.
        self._timers = TimerGroup("session")

    @classmethod
    def from_settings(cls, settings: PartyServerSettings, games: GameRegistry | None = None) -> SessionManager:
        return cls(
            games,
            grace_period_seconds=settings.grace_period_seconds,
            room_ttl_seconds=settings.room_ttl_seconds,
            reaper_interval_seconds=settings.reaper_interval_seconds,
            max_players=settings.max_players,
            min_players=settings.min_players,
            max_name_length=settings.max_name_length,
            start_delay_seconds=settings.start_delay_seconds,
            time_scale=settings.game_time_scale,
        )

    @property
    def hub(self) -> ConnectionHub:
        return self._hub

    @property
    def registry(self) -> RoomRegistry:
        return self._registry

    @property
    def lifecycle(self) -> SessionLifecycle:
        return self._lifecycle

    @property
    def games(self) -> GameRegistry:
        return self._games

    @property
    def bots(self) -> BotManager:
        return self._bots

    def status(self) -> dict[str, int]:
        rooms = self._registry.rooms()
        return {
            "rooms": len(rooms),
            "playing": sum(1 for r in rooms if r.state == RoomState.PLAYING),
            "players": sum(r.player_count for r in rooms),
            "connections": self._hub.connection_count,
            "pending_grace": self._lifecycle.pending_grace_count,
        }

    def catalogue(self) -> list[GameInfoEntry]:
        return [GameInfoEntry(**info.model_dump(exclude={"rounds"})) for info in self._games.catalogue()]

    # --- Connections ---

    async def register_connection(self, connection: ConnectionProtocol) -> None:
        self._hub.register(connection)
        await self._send(connection, GamesListMessage(games=self.catalogue()))

    async def disconnect(self, connection: ConnectionProtocol) -> None:
        """Socket closed: keep the seat for the grace period and tell the room."""
        handle = connection.connection_id
        self._hub.unregister(handle)
        outcome = self._lifecycle.disconnect(handle)
        if outcome is None:
            return
        room = outcome.room
        self._hub.leave_group(room.code, handle)
        await self._broadcaster.to_room(
            room,
            PlayerAwayMessage(players=room.player_info(), player_name=outcome.player_name).model_dump(),
        )

    async def _send(self, connection: ConnectionProtocol, message: BaseModel) -> None:
        await connection.send_message(message.model_dump())

    async def send_error(self, connection: ConnectionProtocol, error: SessionError, rid: int | None = None) -> None:
        logger.warning("session error sent to client", error_code=error.code, error_message=error.message)
        await self._send(connection, ErrorMessage(code=error.code, kind=error.kind, message=error.message, rid=rid))

    async def handle_ping(self, connection: ConnectionProtocol) -> None:
        await self._send(connection, PongMessage())

    # --- Room membership ---

    async def create_room(self, connection: ConnectionProtocol, name: str, rid: int | None = None) -> Room:
        handle = connection.connection_id
        room = self._lifecycle.create(handle, name)
        self._hub.join_group(room.code, handle)
        await self._send(connection, RoomAck(rid=rid, code=room.code, players=room.player_info()))
        return room

    async def join_room(self, connection: ConnectionProtocol, code: str, name: str, rid: int | None = None) -> Room:
        outcome = self._lifecycle.join(connection.connection_id, code, name)
        await self._announce_join(connection, outcome, rid)
        return outcome.room

    async def rejoin_room(self, connection: ConnectionProtocol, code: str, name: str, rid: int | None = None) -> Room:
        outcome = self._lifecycle.rejoin(connection.connection_id, code, name)
        if not outcome.rejoined:
            await self._announce_join(connection, outcome, rid, ack=RejoinAck)
            return outcome.room

        room, handle = outcome.room, outcome.handle
        if outcome.old_handle is not None:
            self._hub.leave_group(room.code, outcome.old_handle)
        self._hub.join_group(room.code, handle)
        player = room.players[handle]
        game = room.game
        await self._send(
            connection,
            RejoinAck(
                rid=rid,
                code=room.code,
                players=room.player_info(),
                rejoined=True,
                is_host=player.is_host,
                room_state=room.state,
                game_id=game.id if game else None,
                game_name=game.info.name if game else None,
                game=game.snapshot(room, handle) if game else None,
            ),
        )
        await self._hub.broadcast(
            room.code,
            PlayerRejoinedMessage(players=room.player_info(), player_name=player.name).model_dump(),
            exclude=handle,
        )
        return room

    async def _announce_join(
        self,
        connection: ConnectionProtocol,
        outcome: JoinOutcome,
        rid: int | None,
        ack: type[RoomAck] = RoomAck,
    ) -> None:
        room, handle = outcome.room, outcome.handle
        self._hub.join_group(room.code, handle)
        players = room.player_info()
        if ack is RejoinAck:
            reply = RejoinAck(rid=rid, code=room.code, players=players, rejoined=False, is_host=False, room_state=room.state)
        else:
            reply = RoomAck(rid=rid, code=room.code, players=players)
        await self._send(connection, reply)
        await self._broadcaster.to_room(
            room,
            PlayerJoinedMessage(players=players, player_name=room.players[handle].name).model_dump(),
        )

    async def leave_room(self, connection: ConnectionProtocol, rid: int | None = None) -> None:
        handle = connection.connection_id
        outcome = self._lifecycle.leave_room(handle)
        if outcome is None:
            raise NotInRoomError
        self._hub.leave_group(outcome.code, handle)
        await self._send(connection, AckMessage(rid=rid))
        await self._after_removal(outcome)

    async def _on_grace_expired(self, outcome: LeaveOutcome) -> None:
        self._hub.leave_group(outcome.code, outcome.handle)
        await self._after_removal(outcome)

    async def _after_removal(self, outcome: LeaveOutcome) -> None:
        room = outcome.room
        if room is None:
            self._timers.cancel_tag(outcome.code)
            self._hub.drop_group(outcome.code)
            return

        if room.state == RoomState.PLAYING and room.game is not None:
            await room.game.on_player_left(room, outcome.handle, self._broadcaster)
        await self._broadcaster.to_room(
            room,
            PlayerLeftMessage(players=room.player_info(), player_name=outcome.player_name).model_dump(),
        )
        if room.state == RoomState.PLAYING and room.connected_human_count == 0:
            await self._abort_game(room, NOT_ENOUGH_PLAYERS_MESSAGE)

    async def _abort_game(self, room: Room, message: str | None = None) -> None:
        self._timers.cancel_tag(room.code)
        room.end_game()
        logger.info("game returned to lobby", room=room.code, reason=message)
        await self._broadcaster.to_room(
            room,
            LobbyEnteredMessage(players=room.player_info(), message=message).model_dump(),
        )

    # --- Bots ---

    async def add_bot(
        self,
        connection: ConnectionProtocol,
        difficulty: Difficulty | None = None,
        rid: int | None = None,
    ) -> str:
        room, bot_handle = self._bots.create_bot(connection.connection_id, difficulty)
        players = room.player_info()
        await self._send(connection, AckMessage(rid=rid, bot_id=bot_handle))
        await self._broadcaster.to_room(
            room,
            PlayerJoinedMessage(players=players, player_name=room.players[bot_handle].name).model_dump(),
        )
        return bot_handle

    async def remove_bot(self, connection: ConnectionProtocol, bot_id: str, rid: int | None = None) -> None:
        room, player = self._bots.remove_bot(connection.connection_id, bot_id)
        await self._send(connection, AckMessage(rid=rid))
        if room.state == RoomState.PLAYING and room.game is not None:
            await room.game.on_player_left(room, bot_id, self._broadcaster)
        await self._broadcaster.to_room(
            room,
            PlayerLeftMessage(players=room.player_info(), player_name=player.name).model_dump(),
        )

    # --- Game flow ---

    async def start_game(self, connection: ConnectionProtocol, game_id: str, rid: int | None = None) -> None:
        room = self._lifecycle.require_host(connection.connection_id)
        if room.state == RoomState.PLAYING:
            raise GameInProgressError
        game = self._games.get(game_id)
        if game is None:
            raise UnknownGameError
        needed = max(self._min_players, game.info.min_players)
        if room.player_count < needed:
            raise NotEnoughPlayersError(f"Need at least {needed} players")

        room.end_game()
        room.reset_scores()
        room.game = game
        room.state = RoomState.PLAYING
        # Bots subscribe to the feed now, before init() publishes the first phase.
        self._bots.start(room)
        self._timers.cancel_tag(room.code)
        self._timers.call_later(self._start_delay_seconds, lambda: self._begin_game(room, game), tag=room.code)
        logger.info("game starting", room=room.code, game=game.id, players=room.player_count)

        await self._send(connection, AckMessage(rid=rid, game_id=game.id))
        await self._broadcaster.to_room(
            room,
            GameStartedMessage(game_id=game.id, game_name=game.info.name, players=room.player_info()).model_dump(),
        )

    async def _begin_game(self, room: Room, game: GameModule) -> None:
        if self._registry.get(room.code) is not room:
            return
        if room.game is not game or room.state != RoomState.PLAYING or room.game_state is not None:
            return
        await game.init(room, self._broadcaster)

    async def return_to_lobby(self, connection: ConnectionProtocol, rid: int | None = None) -> None:
        room = self._lifecycle.require_host(connection.connection_id)
        await self._send(connection, AckMessage(rid=rid))
        room.reset_scores()
        await self._abort_game(room)

    async def handle_game_event(
        self,
        connection: ConnectionProtocol,
        event: str,
        payload: dict[str, Any],
    ) -> None:
        """Forward a gameplay input to the running game. Anything out of place is dropped."""
        handle = connection.connection_id
        room = self._registry.get_by_handle(handle)
        if room is None or room.state != RoomState.PLAYING or handle not in room.players:
            return
        if room.game is None or room.game_state is None:
            return
        await room.game.on_event(room, handle, event, payload, self._broadcaster)

    # --- Housekeeping ---

    async def _on_room_reaped(self, room: Room) -> None:
        self._lifecycle.destroy(room.code)
        self._timers.cancel_tag(room.code)
        self._hub.drop_group(room.code)

    def start(self) -> None:
        self._registry.start_reaper()

    async def close(self) -> None:
        """Stop the reaper and cancel every timer this manager owns."""
        await self._registry.stop_reaper()
        self._timers.close()
        for room in self._registry.rooms():
            self._lifecycle.destroy(room.code)
        self._lifecycle.close()
        logger.info("session manager closed")
