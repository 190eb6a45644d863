"""Per-room publication of broadcast game messages to in-process subscribers."""

from __future__ import annotations

import asyncio
from typing import Any


class PhaseFeed:
    """Fan out every room-wide game message to subscriber queues.

    Bots subscribe instead of polling the game state on an interval. Each
    subscriber, keyed by its handle, gets its own unbounded queue so no
    transition is coalesced away.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, asyncio.Queue[dict[str, Any]]] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, key: str) -> asyncio.Queue[dict[str, Any]]:
        """Open a fresh queue for key, replacing any earlier subscription."""
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._subscribers[key] = queue
        return queue

    def unsubscribe(self, key: str, queue: asyncio.Queue[dict[str, Any]] | None = None) -> None:
        """Drop key's subscription; with a queue, only if it is still the current one."""
        current = self._subscribers.get(key)
        if current is not None and (queue is None or current is queue):
            del self._subscribers[key]

    def publish(self, message: dict[str, Any]) -> None:
        for queue in list(self._subscribers.values()):
            queue.put_nowait(message)

    def clear(self) -> None:
        self._subscribers.clear()
