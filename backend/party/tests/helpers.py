"""Shared helpers for session and game tests."""

import asyncio
from collections.abc import Callable
from typing import Any

from party.session.broadcast import ConnectionHub, RoomBroadcaster
from party.session.models import Player, Room, RoomState
from party.tests.mocks import MockConnection

# Every game and bot delay is multiplied by this in tests.
FAST = 0.001


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


def make_room(*names: str, bots: tuple[str, ...] = (), code: str = "ABCD") -> Room:
    """Build a lobby room whose first human is host. Handles are h-<name> and b-<name>."""
    room = Room(code=code)
    for i, name in enumerate(names):
        room.players[f"h-{name}"] = Player(name=name, is_host=i == 0)
    for name in bots:
        room.players[f"b-{name}"] = Player(name=name, is_bot=True)
    room.host_handle = f"h-{names[0]}" if names else None
    return room


class GameTable:
    """A room wired to a hub with one MockConnection per human player."""

    def __init__(self, room: Room) -> None:
        self.room = room
        self.hub = ConnectionHub()
        self.broadcaster = RoomBroadcaster(self.hub)
        self.connections: dict[str, MockConnection] = {}
        for handle, player in room.players.items():
            if player.is_bot:
                continue
            connection = MockConnection(handle)
            self.connections[handle] = connection
            self.hub.register(connection)
            self.hub.join_group(room.code, handle)
        room.state = RoomState.PLAYING

    def phases(self, handle: str) -> list[str]:
        return [m["phase"] for m in self.connections[handle].of_type("game_state")]

    def ticks(self, handle: str, event: str | None = None) -> list[dict[str, Any]]:
        ticks = self.connections[handle].of_type("game_tick")
        return [t for t in ticks if event is None or t.get("event") == event]
