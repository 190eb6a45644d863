"""
Scoped groups of cancellable timers.

A TimerGroup owns every asyncio task it schedules. Members can be cancelled
individually, by tag, or all at once when the group is closed. A closed group
refuses new timers, so a stale callback cannot resurrect work for a game or
room that has already been torn down.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Coroutine

    TimerCallback = Callable[[], Awaitable[None]]
    # Repeating callbacks return False to stop the loop.
    RepeatingCallback = Callable[[], Awaitable[bool | None]]

logger = structlog.get_logger()


class TimerGroup:
    def __init__(self, name: str) -> None:
        self._name = name
        self._tasks: dict[asyncio.Task[None], str | None] = {}
        self._closed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._tasks)

    def tagged(self, tag: str) -> int:
        """Return the number of live timers carrying the tag."""
        return sum(1 for t in self._tasks.values() if t == tag)

    def call_later(self, delay: float, callback: TimerCallback, *, tag: str | None = None) -> asyncio.Task[None] | None:
        """Run callback once after delay seconds. Returns None if the group is closed."""
        return self._spawn(self._run_once(max(0.0, delay), callback), tag)

    def call_every(
        self,
        interval: float,
        callback: RepeatingCallback,
        *,
        tag: str | None = None,
    ) -> asyncio.Task[None] | None:
        """Run callback every interval seconds until cancelled or it returns False."""
        return self._spawn(self._run_repeating(max(0.001, interval), callback), tag)

    def spawn(self, callback: TimerCallback, *, tag: str | None = None) -> asyncio.Task[None] | None:
        """Run a long-lived coroutine (e.g. an observer loop) as a group member."""
        return self._spawn(self._run_once(0.0, callback), tag)

    def cancel_tag(self, tag: str) -> int:
        """Cancel every live timer carrying the tag, except the calling task."""
        current = asyncio.current_task()
        victims = [task for task, t in self._tasks.items() if t == tag and task is not current]
        for task in victims:
            task.cancel()
            self._tasks.pop(task, None)
        return len(victims)

    def cancel_all(self) -> None:
        """Cancel every member except the calling task (which is finishing anyway)."""
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        self._tasks = {t: tag for t, tag in self._tasks.items() if t is current}

    def close(self) -> None:
        """Cancel all members and refuse new ones."""
        self._closed = True
        self.cancel_all()

    def _spawn(self, coro: Coroutine[Any, Any, None], tag: str | None) -> asyncio.Task[None] | None:
        if self._closed:
            coro.close()
            logger.debug("timer group closed, dropping timer", group=self._name, tag=tag)
            return None
        task = asyncio.create_task(coro)
        self._tasks[task] = tag
        task.add_done_callback(self._forget)
        return task

    def _forget(self, task: asyncio.Task[None]) -> None:
        self._tasks.pop(task, None)

    async def _run_once(self, delay: float, callback: TimerCallback) -> None:
        try:
            if delay > 0:
                await asyncio.sleep(delay)
            await callback()
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("timer callback failed", group=self._name)

    async def _run_repeating(self, interval: float, callback: RepeatingCallback) -> None:
        try:
            while True:
                await asyncio.sleep(interval)
                if await callback() is False:
                    return
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("repeating timer callback failed", group=self._name)
