"""Connection groups and room-wide message delivery."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any

import structlog

from party.messaging.types import GameEndedMessage, GameStateMessage, GameTickMessage

if TYPE_CHECKING:
    from party.messaging.protocol import ConnectionProtocol
    from party.session.models import Room

logger = structlog.get_logger()


class ConnectionHub:
    """Track live connections and the broadcast group of every room.

    Groups are insertion-ordered so delivery follows join order.
    """

    def __init__(self) -> None:
        self._connections: dict[str, ConnectionProtocol] = {}
        self._groups: dict[str, dict[str, None]] = {}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def register(self, connection: ConnectionProtocol) -> None:
        self._connections[connection.connection_id] = connection

    def unregister(self, handle: str) -> None:
        self._connections.pop(handle, None)

    def get(self, handle: str) -> ConnectionProtocol | None:
        return self._connections.get(handle)

    def join_group(self, code: str, handle: str) -> None:
        self._groups.setdefault(code, {})[handle] = None

    def leave_group(self, code: str, handle: str) -> None:
        group = self._groups.get(code)
        if group is None:
            return
        group.pop(handle, None)
        if not group:
            del self._groups[code]

    def drop_group(self, code: str) -> None:
        self._groups.pop(code, None)

    def members(self, code: str) -> list[str]:
        return list(self._groups.get(code, ()))

    async def send_to(self, handle: str, message: dict[str, Any]) -> None:
        """Send to one connection; a vanished or broken socket is skipped."""
        connection = self._connections.get(handle)
        if connection is None:
            return
        with contextlib.suppress(RuntimeError, OSError):
            await connection.send_message(message)

    async def broadcast(self, code: str, message: dict[str, Any], exclude: str | None = None) -> None:
        # Snapshot the group: a leave may mutate it while we yield on send.
        for handle in self.members(code):
            if handle != exclude:
                await self.send_to(handle, message)


class RoomBroadcaster:
    """Outbound channel handed to game modules.

    Every room-wide game message is also published to the room's PhaseFeed
    before it goes out on the wire, so in-process observers (bots) see
    exactly what connected players see, in the same order.
    """

    def __init__(self, hub: ConnectionHub) -> None:
        self._hub = hub

    async def to_room(self, room: Room, message: dict[str, Any]) -> None:
        await self._hub.broadcast(room.code, message)

    async def to_player(self, handle: str, message: dict[str, Any]) -> None:
        await self._hub.send_to(handle, message)

    async def game_state(self, room: Room, phase: str, **fields: Any) -> None:
        message = GameStateMessage(phase=phase, **fields).model_dump()
        room.feed.publish(message)
        await self._hub.broadcast(room.code, message)

    async def game_tick(self, room: Room, **fields: Any) -> None:
        message = GameTickMessage(**fields).model_dump()
        room.feed.publish(message)
        await self._hub.broadcast(room.code, message)

    async def game_ended(self, room: Room) -> None:
        message = GameEndedMessage(scores=room.ranked_scores()).model_dump()
        logger.info("game ended", room=room.code, winner=message["scores"][0]["name"] if message["scores"] else None)
        await self._hub.broadcast(room.code, message)
