"""Coordinates the three persistence tiers and the extension channel."""
from __future__ import annotations

import asyncio
from typing import Callable, Optional, Set

from core.countdown import TICK, TRANSITION, CountdownEngine
from core.log import get_logger
from core.settings import REMOTE
from extension.channel import MessageChannel
from models.messages import RulesChanged, TimerStateMessage
from models.snapshot import BLOCKING_MODES, StateSnapshot, TimerCookie
from services.merge import merge
from storage.cookie_store import TimerCookieStore
from storage.local_store import LocalStateStore
from storage.remote import RemoteStore


def current_task_name(snapshot: StateSnapshot) -> Optional[str]:
    if snapshot.current_task_id is None:
        return None
    for task in snapshot.tasks:
        if task.id == snapshot.current_task_id and not task.done:
            return task.name or None
    return None


class SyncOrchestrator:
    """
    Owns the write path: debounced or immediate local writes, remote pushes
    after each local write, and the timer cookie kept in step with the engine.
    """

    def __init__(
        self,
        local: LocalStateStore,
        remote: RemoteStore,
        cookie: TimerCookieStore,
        *,
        channel: Optional[MessageChannel] = None,
        fetch_timeout: float = REMOTE.fetch_timeout_sec,
    ):
        self.local = local
        self.remote = remote
        self.cookie = cookie
        self.channel = channel
        self.fetch_timeout = fetch_timeout
        self._pushes: Set[asyncio.Future] = set()
        self._last_second: Optional[int] = None
        self.local.on_write = self._push
        self.logger = get_logger("sync")

    # ------------------------------------------------------------------
    # Startup
    async def startup(self) -> StateSnapshot:
        """Fetch remote, merge it into local, and write the result locally at once."""
        local_snapshot = self.local.load()
        remote_snapshot = await self._fetch_remote()
        merged = merge(local_snapshot, remote_snapshot)
        self.local.save_immediate(merged)
        self.logger.info(
            "Startup merge done (remote=%s, sessions=%s, pomodoros=%s)",
            "yes" if remote_snapshot is not None else "no",
            len(merged.sessions),
            merged.pomodoros_completed,
        )
        return merged

    async def _fetch_remote(self) -> Optional[StateSnapshot]:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.remote.fetch_remote),
                timeout=self.fetch_timeout,
            )
        except asyncio.TimeoutError:
            self.logger.warning("Remote fetch timed out after %ss", self.fetch_timeout)
        except Exception as exc:
            self.logger.warning("Remote fetch failed: %s", exc)
        return None

    def read_timer_cookie(self) -> Optional[TimerCookie]:
        return self.cookie.read()

    # ------------------------------------------------------------------
    # Write paths
    def persist(self, snapshot: StateSnapshot) -> None:
        self.local.save(snapshot)

    def persist_now(self, snapshot: StateSnapshot) -> None:
        self.local.save_immediate(snapshot)
        self._push(snapshot)

    def _push(self, snapshot: StateSnapshot) -> None:
        payload = snapshot.copy()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.remote.push_remote(payload)
            return
        task = loop.create_task(asyncio.to_thread(self.remote.push_remote, payload))
        self._pushes.add(task)
        task.add_done_callback(self._push_done)

    def _push_done(self, task: asyncio.Future) -> None:
        self._pushes.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.warning("Remote push failed: %s", exc)

    async def drain(self) -> None:
        while self._pushes:
            await asyncio.gather(*list(self._pushes), return_exceptions=True)
        if self.channel is not None:
            await self.channel.drain()

    # ------------------------------------------------------------------
    # Timer state
    def attach(self, engine: CountdownEngine, mode_getter: Callable[[], str]) -> None:
        def on_tick(remaining: int) -> None:
            if not engine.is_running() or remaining == self._last_second:
                return
            self._last_second = remaining
            self.publish_timer_state(engine, mode_getter())

        def on_transition(edge: str) -> None:
            self._last_second = engine.get_remaining() if engine.is_running() else None
            self.publish_timer_state(engine, mode_getter())

        engine.subscribe(TICK, on_tick)
        engine.subscribe(TRANSITION, on_transition)

    def publish_timer_state(self, engine: CountdownEngine, mode: str) -> None:
        running = engine.is_running()
        end_time = engine.get_target_time() if running else 0
        # cookie first: the extension may read it back as soon as it hears about the change
        if running:
            self.cookie.write(TimerCookie(end_time=end_time, mode=mode))
        else:
            self.cookie.clear()
        if self.channel is not None:
            self.channel.post(
                TimerStateMessage(
                    is_working=running and mode == "work",
                    mode=mode,
                    remaining_seconds=engine.get_remaining(),
                    end_time=end_time or None,
                )
            )

    # ------------------------------------------------------------------
    # Extension
    def notify_rules(self, snapshot: StateSnapshot) -> None:
        if self.channel is None:
            return
        settings = snapshot.settings
        mode = settings.get("blockingMode")
        self.channel.post(
            RulesChanged(
                blocklist=snapshot.blocklist,
                blocking_enabled=settings.get("blockingEnabled") is not False,
                blocking_mode=mode if mode in BLOCKING_MODES else "work",
                current_task_name=current_task_name(snapshot),
            )
        )


__all__ = ["SyncOrchestrator", "current_task_name"]
