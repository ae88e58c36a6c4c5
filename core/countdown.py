"""
Drift-corrected countdown timer.

Remaining time is always derived from an absolute wall-clock deadline, never
accumulated from ticks, so missed or late callbacks cannot skew it.
"""
from __future__ import annotations

import math
from typing import Callable, Dict, List, Optional

from core.log import get_logger
from core.scheduling import Handle, Scheduler
from core.settings import TIMER
from datetime_utils import now_ms


TICK = "tick"
COMPLETE = "complete"
TRANSITION = "transition"
EVENTS = (TICK, COMPLETE, TRANSITION)


class NoDurationError(RuntimeError):
    """Raised by ``start(strict=True)`` when there is no time left to count down."""


class CountdownEngine:
    """
    Two-state (Idle / Running) countdown.

    While running, two watchers recompute the remaining seconds from the same
    deadline: a high-frequency foreground one and a coarse background one that
    keeps firing roughly once per second when the foreground one is starved.
    Whichever notices expiry first completes the run; completion fires once.

    Events:
        tick: ``callback(remaining_seconds)``
        complete: ``callback()``
        transition: ``callback(edge)`` with edge in start / pause / reset / complete
    """

    def __init__(
        self,
        scheduler: Scheduler,
        clock: Callable[[], int] = now_ms,
        *,
        foreground_interval: float = TIMER.foreground_interval_sec,
        background_interval: float = TIMER.background_interval_sec,
    ):
        self._scheduler = scheduler
        self._clock = clock
        self._foreground_interval = foreground_interval
        self._background_interval = background_interval

        self._target_time = 0
        self._remaining = 0
        self._running = False
        self._run_id = 0
        self._completed_run: Optional[int] = None
        self._foreground: Optional[Handle] = None
        self._background: Optional[Handle] = None
        self._listeners: Dict[str, List[Callable]] = {event: [] for event in EVENTS}
        self.logger = get_logger("countdown")

    # ----- listeners -----
    def subscribe(self, event: str, callback: Callable) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unsupported event: {event}")
        if callback not in self._listeners[event]:
            self._listeners[event].append(callback)

    def unsubscribe(self, event: str, callback: Callable) -> None:
        listeners = self._listeners.get(event)
        if listeners and callback in listeners:
            listeners.remove(callback)

    def _emit(self, event: str, *args) -> None:
        for listener in list(self._listeners[event]):
            try:
                listener(*args)
            except Exception:
                self.logger.exception("Countdown %s listener failed", event)

    # ----- state -----
    def is_running(self) -> bool:
        return self._running

    def get_remaining(self) -> int:
        if self._running:
            return self._left()
        return self._remaining

    def get_target_time(self) -> int:
        """Absolute deadline in epoch ms while running, ``0`` otherwise."""
        return self._target_time if self._running else 0

    def _left(self) -> int:
        return self._left_until(self._target_time)

    def _left_until(self, target_time: int) -> int:
        return max(0, math.ceil((target_time - self._clock()) / 1000))

    # ----- operations -----
    def set(self, seconds: int) -> None:
        self._stop_watchers()
        self._running = False
        self._target_time = 0
        self._remaining = max(0, int(seconds))
        self._emit(TICK, self._remaining)
        self._emit(TRANSITION, "reset")

    def reset(self, seconds: int) -> None:
        self.set(seconds)

    def start(self, *, strict: bool = False) -> bool:
        if self._running:
            return False
        if self._remaining <= 0:
            if strict:
                raise NoDurationError("Nothing to count down; set a duration first")
            return False
        self._begin(self._clock() + self._remaining * 1000)
        return True

    def _begin(self, target_time: int) -> None:
        self._run_id += 1
        self._running = True
        self._target_time = target_time
        self._foreground = self._scheduler.call_every(self._foreground_interval, self._watch)
        self._background = self._scheduler.call_every(self._background_interval, self._watch)
        self._emit(TRANSITION, "start")

    def resume(self, target_time: int) -> bool:
        """Run toward an absolute deadline restored from storage."""
        if self._running or target_time <= self._clock():
            return False
        self._remaining = self._left_until(target_time)
        self._begin(target_time)
        return True

    def pause(self) -> None:
        if not self._running:
            return
        self._stop_watchers()
        self._remaining = self._left()
        self._running = False
        self._target_time = 0
        self._emit(TRANSITION, "pause")

    def sync(self) -> int:
        """Recompute now and emit a tick, e.g. after the host regains focus."""
        if not self._running:
            self._emit(TICK, self._remaining)
            return self._remaining
        return self._watch()

    # ----- internals -----
    def _watch(self) -> int:
        if not self._running:
            return self._remaining
        left = self._left()
        if left <= 0:
            self._complete(self._run_id)
            return 0
        self._emit(TICK, left)
        return left

    def _complete(self, run_id: int) -> None:
        if not self._running or self._completed_run == run_id:
            return
        self._completed_run = run_id
        self._stop_watchers()
        self._running = False
        self._remaining = 0
        self._target_time = 0
        self._emit(TICK, 0)
        self._emit(TRANSITION, "complete")
        self._emit(COMPLETE)

    def _stop_watchers(self) -> None:
        for handle in (self._foreground, self._background):
            if handle is not None:
                handle.cancel()
        self._foreground = None
        self._background = None


__all__ = ["COMPLETE", "CountdownEngine", "NoDurationError", "TICK", "TRANSITION"]
