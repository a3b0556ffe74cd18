from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

logger = logging.getLogger("timedesk.tracker")

Callback = Callable[[], Awaitable[None] | None]


class TimerHandle(Protocol):
    @property
    def active(self) -> bool: ...

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def every(self, interval_seconds: float, callback: Callback, *, name: str) -> TimerHandle: ...

    def once(self, delay_seconds: float, callback: Callback, *, name: str) -> TimerHandle: ...


async def _invoke(callback: Callback) -> None:
    result = callback()
    if inspect.isawaitable(result):
        await result


class ScheduledTask:
    """A repeating or one-shot timer backed by an asyncio task."""

    def __init__(
        self,
        name: str,
        callback: Callback,
        *,
        delay_seconds: float,
        repeat: bool,
    ) -> None:
        self.name = name
        self._callback = callback
        self._delay_seconds = max(0.0, delay_seconds)
        self._repeat = repeat
        self._cancelled = False
        self._task: asyncio.Task[None] | None = None

    @property
    def active(self) -> bool:
        return not self._cancelled and self._task is not None and not self._task.done()

    def start(self) -> ScheduledTask:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run(), name=f"timedesk:{self.name}")
        return self

    def cancel(self) -> None:
        self._cancelled = True
        task = self._task
        # A callback may cancel its own timer; let the loop exit on the flag.
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run(self) -> None:
        while not self._cancelled:
            await asyncio.sleep(self._delay_seconds)
            if self._cancelled:
                return
            try:
                await _invoke(self._callback)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("tracker_timer_callback_failed", extra={"timer": self.name})
            if not self._repeat:
                return


class AsyncioScheduler:
    def every(self, interval_seconds: float, callback: Callback, *, name: str) -> ScheduledTask:
        return ScheduledTask(name, callback, delay_seconds=interval_seconds, repeat=True).start()

    def once(self, delay_seconds: float, callback: Callback, *, name: str) -> ScheduledTask:
        return ScheduledTask(name, callback, delay_seconds=delay_seconds, repeat=False).start()
