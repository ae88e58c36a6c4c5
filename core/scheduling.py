"""Scheduling primitives shared by the countdown engine and the debounced writer."""
from __future__ import annotations

import asyncio
from typing import Callable, Optional, Protocol


class Handle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> Handle: ...

    def call_every(self, interval: float, callback: Callable[[], None]) -> Handle: ...


class _RepeatingHandle:
    def __init__(self, loop: asyncio.AbstractEventLoop, interval: float, callback: Callable[[], None]):
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self._timer: Optional[asyncio.TimerHandle] = None
        self._cancelled = False
        self._arm()

    def _arm(self) -> None:
        self._timer = self._loop.call_later(self._interval, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        # re-arm first so a callback that cancels us wins
        self._arm()
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> Handle:
        return self.loop.call_later(max(0.0, delay), callback)

    def call_every(self, interval: float, callback: Callable[[], None]) -> Handle:
        return _RepeatingHandle(self.loop, max(0.001, interval), callback)


__all__ = ["AsyncioScheduler", "Handle", "Scheduler"]
