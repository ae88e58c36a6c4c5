"""Application controller: drives the countdown through work and break phases."""
from __future__ import annotations

import copy
from typing import Any, Iterable, List, Optional

from core.countdown import COMPLETE, CountdownEngine
from core.log import get_logger
from datetime_utils import day_key, now_ms
from extension.rules import normalize_domain
from models.snapshot import (
    DEFAULT_MODE,
    DEFAULT_SETTINGS,
    MODES,
    Session,
    StateSnapshot,
    Streak,
    Task,
    TimerCookie,
    default_snapshot,
    valid_setting,
)
from services import stats
from services.sync_orchestrator import SyncOrchestrator
from services.tasks import TaskList

BLOCKING_KEYS = ("blocklist", "blockingEnabled", "blockingMode")
DURATION_KEYS = {
    "work": "workDuration",
    "shortBreak": "shortBreakDuration",
    "longBreak": "longBreakDuration",
}


class FocusApp:
    def __init__(self, orchestrator: SyncOrchestrator, engine: CountdownEngine, *, clock=now_ms):
        self.orchestrator = orchestrator
        self.engine = engine
        self._clock = clock
        self.mode = DEFAULT_MODE
        self.settings = copy.deepcopy(DEFAULT_SETTINGS)
        self.tasks = TaskList()
        self.sessions: List[Session] = []
        self.achievements: List[str] = []
        self.streak = Streak()
        self.pomodoros_completed = 0
        self.booted = False
        self.logger = get_logger("app")

    # ------------------------------------------------------------------
    # Boot
    async def boot(self) -> StateSnapshot:
        """Restore state from every tier and resume a timer left running."""
        cookie = self.orchestrator.read_timer_cookie()
        merged = await self.orchestrator.startup()
        self._load(merged)
        self.orchestrator.attach(self.engine, lambda: self.mode)
        self.engine.subscribe(COMPLETE, self._on_complete)
        self.booted = True

        # the cookie outlives its deadline briefly; the local copy is only trusted while still running
        if cookie is None and merged.timer_end_time and merged.timer_end_time > self._clock():
            cookie = TimerCookie(end_time=merged.timer_end_time, mode=merged.mode)
        self._restore(cookie)
        self.orchestrator.notify_rules(self.snapshot())
        return merged

    def _load(self, snapshot: StateSnapshot) -> None:
        self.settings = copy.deepcopy(snapshot.settings)
        self.tasks = TaskList(snapshot.tasks, snapshot.current_task_id)
        self._watch_tasks()
        self.sessions = list(snapshot.sessions)
        self.achievements = list(snapshot.achievements)
        self.streak = snapshot.streak
        self.pomodoros_completed = snapshot.pomodoros_completed
        self.mode = snapshot.mode

    def _restore(self, cookie: Optional[TimerCookie]) -> None:
        if cookie is None:
            self.engine.set(self.duration(self.mode))
            return
        self.mode = cookie.mode
        if cookie.end_time > self._clock():
            self.engine.set(self.duration(self.mode))
            self.engine.resume(cookie.end_time)
            self.logger.info("Resumed %s timer ending at %s", self.mode, cookie.end_time)
            return
        # deadline passed while nothing was running
        self.logger.info("Timer for %s expired while away, completing it", self.mode)
        self.engine.set(0)
        self._on_complete()

    # ------------------------------------------------------------------
    # Timer control
    def duration(self, mode: str) -> int:
        minutes = self.settings.get(DURATION_KEYS.get(mode, "workDuration"))
        if not isinstance(minutes, (int, float)) or isinstance(minutes, bool):
            minutes = DEFAULT_SETTINGS[DURATION_KEYS.get(mode, "workDuration")]
        return int(round(minutes * 60))

    def toggle(self) -> bool:
        if self.engine.is_running():
            self.pause()
            return False
        return self.start()

    def start(self) -> bool:
        started = self.engine.start()
        if started:
            self.persist()
        return started

    def pause(self) -> None:
        if not self.engine.is_running():
            return
        self.engine.pause()
        self.persist()

    def reset(self) -> None:
        self.engine.reset(self.duration(self.mode))
        self.persist()

    def skip(self) -> None:
        if self.mode == "work":
            # skipped work is not counted
            self.switch_mode(self._next_break(skipping=True))
        else:
            self.switch_mode("work")

    def switch_mode(self, mode: str, auto_start: bool = False) -> None:
        if mode not in MODES:
            raise ValueError(f"Unknown mode: {mode}")
        if self.engine.is_running():
            self.engine.pause()
        self.mode = mode
        self.engine.reset(self.duration(mode))
        if auto_start:
            self.engine.start()
        self.persist()

    def _next_break(self, *, skipping: bool = False) -> str:
        interval = self.settings.get("longBreakInterval")
        if not valid_setting("longBreakInterval", interval) or interval < 1:
            interval = DEFAULT_SETTINGS["longBreakInterval"]
        interval = int(interval)
        count = self.pomodoros_completed
        if skipping and count == 0:
            return "shortBreak"
        return "longBreak" if count % interval == 0 else "shortBreak"

    def _on_complete(self) -> None:
        now = self._clock()
        if self.mode == "work":
            self.pomodoros_completed += 1
            current = self.tasks.current()
            stats.record_session(
                self.sessions,
                "work",
                self.settings.get("workDuration", DEFAULT_SETTINGS["workDuration"]),
                now,
                task_name=current.name if current is not None and not current.done else None,
            )
            self.tasks.increment_current()
            self.streak = stats.update_streak(self.streak, day_key(now))
            self.logger.info("Work session complete (%s total)", self.pomodoros_completed)
            self.switch_mode(self._next_break(), bool(self.settings.get("autoStartBreaks")))
        else:
            stats.record_session(
                self.sessions,
                self.mode,
                self.settings.get(DURATION_KEYS[self.mode], DEFAULT_SETTINGS[DURATION_KEYS[self.mode]]),
                now,
            )
            self.logger.info("%s complete", self.mode)
            self.switch_mode("work", bool(self.settings.get("autoStartPomodoros")))

    # ------------------------------------------------------------------
    # Settings
    def update_settings(self, **changes: Any) -> dict:
        applied = {}
        for key, value in changes.items():
            if key not in DEFAULT_SETTINGS:
                self.logger.warning("Ignoring unknown setting %s", key)
                continue
            if not valid_setting(key, value):
                self.logger.warning("Ignoring invalid value for %s: %r", key, value)
                continue
            if self.settings.get(key) != value:
                applied[key] = value
        self.settings.update(copy.deepcopy(applied))
        if not self.engine.is_running():
            self.engine.reset(self.duration(self.mode))
        if any(key in applied for key in BLOCKING_KEYS):
            self.orchestrator.notify_rules(self.snapshot())
        self.persist()
        return applied

    def set_blocklist(self, domains: Iterable[str]) -> List[str]:
        cleaned: List[str] = []
        for entry in domains:
            domain = normalize_domain(entry)
            if domain and domain not in cleaned:
                cleaned.append(domain)
        self.update_settings(blocklist=cleaned)
        return cleaned

    # ------------------------------------------------------------------
    # Tasks
    def add_task(self, name: str, estimated_pomodoros: Optional[int] = None, **fields) -> Task:
        return self.tasks.add(name, estimated_pomodoros, **fields)

    def update_task(self, task_id: int, **fields) -> Optional[Task]:
        return self.tasks.update(task_id, **fields)

    def remove_task(self, task_id: int) -> bool:
        return self.tasks.remove(task_id)

    def toggle_task(self, task_id: int) -> Optional[Task]:
        return self.tasks.toggle_done(task_id)

    def select_task(self, task_id: Optional[int]) -> None:
        self.tasks.select(task_id)
        self._on_task_event(task_id)

    def reorder_task(self, task_id: int, index: int) -> bool:
        return self.tasks.reorder(task_id, index)

    def _watch_tasks(self) -> None:
        for event in TaskList.EVENTS:
            self.tasks.subscribe(event, self._on_task_event)

    def _on_task_event(self, task_id) -> None:
        # the extension shows the current task's name on the block page
        self.orchestrator.notify_rules(self.snapshot())
        self.persist()

    # ------------------------------------------------------------------
    # Achievements and stats
    def unlock_achievements(self, ids: Iterable[str]) -> List[str]:
        added = [i for i in dict.fromkeys(ids) if i not in self.achievements]
        if added:
            self.achievements.extend(added)
            self.persist()
        return added

    def today_pomodoros(self) -> int:
        return stats.today_pomodoros(self.sessions, day_key(self._clock()))

    def today_focus_minutes(self) -> float:
        return stats.today_focus_minutes(self.sessions, day_key(self._clock()))

    # ------------------------------------------------------------------
    # Lifecycle
    def on_visibility_hidden(self) -> None:
        self.orchestrator.persist_now(self.snapshot())

    def on_visible(self) -> int:
        return self.engine.sync()

    def on_unload(self) -> None:
        self.orchestrator.persist_now(self.snapshot())
        if self.engine.is_running():
            self.orchestrator.publish_timer_state(self.engine, self.mode)

    # ------------------------------------------------------------------
    # Snapshot
    def snapshot(self) -> StateSnapshot:
        if not self.booted:
            return default_snapshot()
        return StateSnapshot(
            settings=copy.deepcopy(self.settings),
            tasks=self.tasks.all(),
            sessions=list(self.sessions),
            achievements=list(self.achievements),
            streak=self.streak,
            pomodoros_completed=self.pomodoros_completed,
            current_task_id=self.tasks.current_id,
            mode=self.mode,
            timer_end_time=self.engine.get_target_time() or None,
        )

    def persist(self) -> None:
        if self.booted:
            self.orchestrator.persist(self.snapshot())


__all__ = ["FocusApp"]
