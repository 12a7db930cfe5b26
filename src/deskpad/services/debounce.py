"""Trailing-edge debouncing of persistence writes, one timer per channel."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Union

__all__ = ["Debouncer"]

LOGGER = logging.getLogger(__name__)

Callback = Callable[[], Union[Any, Awaitable[Any]]]


class Debouncer:
    """Coalesces bursts of calls so only the last one per channel runs.

    ``schedule`` replaces any pending callback on the same channel and restarts
    its timer. Coroutine callbacks are run as tasks on the loop; their failures
    are logged.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._callbacks: dict[str, Callback] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def schedule(self, channel: str, delay: float, callback: Callback) -> None:
        loop = self._loop or asyncio.get_running_loop()
        self._cancel_handle(channel)
        self._callbacks[channel] = callback
        self._handles[channel] = loop.call_later(max(0.0, delay), self._fire, channel)

    def cancel(self, channel: str) -> bool:
        self._callbacks.pop(channel, None)
        return self._cancel_handle(channel)

    def cancel_all(self) -> None:
        for channel in list(self._handles):
            self.cancel(channel)

    def pending(self, channel: str | None = None) -> bool:
        if channel is None:
            return bool(self._handles)
        return channel in self._handles

    async def flush(self) -> None:
        """Run every pending callback now and wait for in-flight ones."""

        for channel in list(self._handles):
            self._cancel_handle(channel)
            callback = self._callbacks.pop(channel, None)
            if callback is not None:
                await self._invoke(channel, callback)
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self, channel: str) -> None:
        self._handles.pop(channel, None)
        callback = self._callbacks.pop(channel, None)
        if callback is None:
            return
        try:
            result = callback()
        except Exception:
            LOGGER.exception("Debounced %s callback failed", channel)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(lambda done: self._task_done(channel, done))

    def _task_done(self, channel: str, task: asyncio.Future[Any]) -> None:
        self._tasks.discard(task)  # type: ignore[arg-type]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Debounced %s callback failed: %s", channel, exc, exc_info=exc)

    async def _invoke(self, channel: str, callback: Callback) -> None:
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            LOGGER.exception("Debounced %s callback failed", channel)

    def _cancel_handle(self, channel: str) -> bool:
        handle = self._handles.pop(channel, None)
        if handle is None:
            return False
        handle.cancel()
        return True
