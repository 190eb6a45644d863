from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from party.messaging.types import (
    ERROR_KINDS,
    AddBotMessage,
    CreateRoomMessage,
    ErrorMessage,
    GameEventMessage,
    JoinRoomMessage,
    LeaveRoomMessage,
    PingMessage,
    RejoinRoomMessage,
    RemoveBotMessage,
    ReturnToLobbyMessage,
    SessionErrorCode,
    StartGameMessage,
    parse_client_message,
)
from party.session.errors import SessionError

if TYPE_CHECKING:
    from party.messaging.protocol import ConnectionProtocol
    from party.messaging.types import ClientMessage
    from party.session.manager import SessionManager

logger = structlog.get_logger()


class MessageRouter:
    """
    Routes incoming messages to the session manager.

    Lifecycle failures come back as SessionError and are answered with a
    session_error addressed to the sender only. Gameplay events never produce
    an error reply.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            message = parse_client_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message", connection_id=connection.connection_id, error=str(e))
            await connection.send_message(
                ErrorMessage(
                    code=SessionErrorCode.INVALID_MESSAGE,
                    kind=ERROR_KINDS[SessionErrorCode.INVALID_MESSAGE],
                    message="Invalid message",
                    rid=_raw_rid(raw_message),
                ).model_dump(),
            )
            return

        try:
            await self._dispatch(connection, message)
        except SessionError as e:
            await self._session_manager.send_error(connection, e, getattr(message, "rid", None))

    async def _dispatch(self, connection: ConnectionProtocol, message: ClientMessage) -> None:
        manager = self._session_manager
        if isinstance(message, GameEventMessage):
            await manager.handle_game_event(connection, message.event, message.payload)
        elif isinstance(message, CreateRoomMessage):
            await manager.create_room(connection, message.name, message.rid)
        elif isinstance(message, JoinRoomMessage):
            await manager.join_room(connection, message.code, message.name, message.rid)
        elif isinstance(message, RejoinRoomMessage):
            await manager.rejoin_room(connection, message.code, message.name, message.rid)
        elif isinstance(message, LeaveRoomMessage):
            await manager.leave_room(connection, message.rid)
        elif isinstance(message, AddBotMessage):
            await manager.add_bot(connection, message.difficulty, message.rid)
        elif isinstance(message, RemoveBotMessage):
            await manager.remove_bot(connection, message.bot_id, message.rid)
        elif isinstance(message, StartGameMessage):
            await manager.start_game(connection, message.game_id, message.rid)
        elif isinstance(message, ReturnToLobbyMessage):
            await manager.return_to_lobby(connection, message.rid)
        elif isinstance(message, PingMessage):
            await manager.handle_ping(connection)

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        await self._session_manager.register_connection(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        await self._session_manager.disconnect(connection)


def _raw_rid(raw_message: dict[str, Any]) -> int | None:
    rid = raw_message.get("rid") if isinstance(raw_message, dict) else None
    return rid if isinstance(rid, int) and not isinstance(rid, bool) and rid >= 0 else None
