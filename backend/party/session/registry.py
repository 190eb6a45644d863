"""In-memory room registry: code -> Room, with a handle -> code reverse index."""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import TYPE_CHECKING, Any

import structlog

from party.session.ids import generate_room_code
from party.session.models import Room

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

logger = structlog.get_logger()

DEFAULT_ROOM_TTL_SECONDS = 2 * 60 * 60
DEFAULT_REAPER_INTERVAL_SECONDS = 60


class RoomRegistry:
    """Own every live room and the reverse index used for O(1) handle lookup.

    Mutations happen only inside single event-loop callbacks, so creation and
    destruction are atomic with respect to each other.
    """

    def __init__(
        self,
        *,
        room_ttl_seconds: float = DEFAULT_ROOM_TTL_SECONDS,
        reaper_interval_seconds: float = DEFAULT_REAPER_INTERVAL_SECONDS,
        on_reaped: Callable[[Room], Coroutine[Any, Any, None]] | None = None,
    ) -> None:
        self._rooms: dict[str, Room] = {}
        self._handle_index: dict[str, str] = {}  # connection handle -> room code
        self._room_ttl_seconds = room_ttl_seconds
        self._reaper_interval_seconds = reaper_interval_seconds
        self._on_reaped = on_reaped
        self._reaper_task: asyncio.Task[None] | None = None

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    def __contains__(self, code: str) -> bool:
        return code in self._rooms

    def rooms(self) -> list[Room]:
        return list(self._rooms.values())

    def create(self) -> Room:
        room = Room(code=generate_room_code(self.__contains__))
        self._rooms[room.code] = room
        logger.info("room created", room=room.code)
        return room

    def get(self, code: str) -> Room | None:
        return self._rooms.get(code)

    def get_by_handle(self, handle: str) -> Room | None:
        code = self._handle_index.get(handle)
        return self._rooms.get(code) if code is not None else None

    def bind(self, handle: str, room: Room) -> None:
        self._handle_index[handle] = room.code

    def unbind(self, handle: str) -> None:
        self._handle_index.pop(handle, None)

    def rebind(self, old: str, new: str) -> None:
        code = self._handle_index.pop(old, None)
        if code is not None:
            self._handle_index[new] = code

    def destroy(self, code: str) -> Room | None:
        """Remove a room, release its game and bot timers, and drop its index entries."""
        room = self._rooms.pop(code, None)
        if room is None:
            return None
        room.end_game()
        stale = [handle for handle, c in self._handle_index.items() if c == code]
        for handle in stale:
            del self._handle_index[handle]
        logger.info("room destroyed", room=code)
        return room

    # --- Stale-room reaper ---

    def start_reaper(self) -> None:
        """Start the periodic reaper task. Idempotent."""
        if self._room_ttl_seconds <= 0:
            return
        if self._reaper_task is not None and not self._reaper_task.done():
            return
        self._reaper_task = asyncio.create_task(self._reaper_loop())

    async def stop_reaper(self) -> None:
        if self._reaper_task is not None:
            self._reaper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reaper_task
            self._reaper_task = None

    async def _reaper_loop(self) -> None:
        while True:
            await asyncio.sleep(self._reaper_interval_seconds)
            try:
                await self.reap_expired()
            except Exception:
                logger.exception("room reaper encountered an error")

    async def reap_expired(self, now: float | None = None) -> list[str]:
        """Destroy every room older than the TTL, regardless of activity."""
        if now is None:
            now = time.monotonic()
        expired = [room.code for room in self.rooms() if now - room.created_at > self._room_ttl_seconds]
        for code in expired:
            room = self.destroy(code)
            if room is None:
                continue
            logger.info("room expired", room=code, age=round(now - room.created_at))
            if self._on_reaped is not None:
                await self._on_reaped(room)
        return expired
