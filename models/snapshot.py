"""Application state snapshot: the unit of persistence and sync."""
from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional


MODES = ("work", "shortBreak", "longBreak")
DEFAULT_MODE = "work"
BLOCKING_MODES = ("work", "always")

DEFAULT_SETTINGS: Dict[str, Any] = {
    "workDuration": 25,
    "shortBreakDuration": 5,
    "longBreakDuration": 15,
    "longBreakInterval": 4,
    "autoStartBreaks": False,
    "autoStartPomodoros": False,
    "soundEnabled": True,
    "volume": 70,
    "dailyGoal": 8,
    "theme": "dark",
    "ambientEnabled": False,
    "ambientType": "rain",
    "ambientVolume": 40,
    "blocklist": [],
    "blockingEnabled": True,
    "blockingMode": "work",
}

# Fields that only make sense on the device that wrote them.
TRANSIENT_FIELDS = ("timerEndTime",)


def _as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def normalize_mode(value: Any, fallback: str = DEFAULT_MODE) -> str:
    return value if value in MODES else fallback


def valid_setting(key: str, value: Any) -> bool:
    """Whether ``value`` has the type of the default for ``key``; unknown keys pass."""
    default = DEFAULT_SETTINGS.get(key)
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, (int, float)):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return math.isfinite(value)
    if default is None:
        return True
    return isinstance(value, type(default))


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    seen: List[str] = []
    for item in value:
        if isinstance(item, str) and item not in seen:
            seen.append(item)
    return seen


@dataclass
class Task:
    id: int
    name: str
    estimated_pomodoros: Optional[int] = None
    completed_pomodoros: int = 0
    done: bool = False
    notes: str = ""
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional["Task"]:
        task_id = _optional_int(data.get("id"))
        if task_id is None:
            return None
        return cls(
            id=task_id,
            name=str(data.get("name") or ""),
            estimated_pomodoros=_optional_int(data.get("estimatedPomodoros")),
            completed_pomodoros=_as_int(data.get("completedPomodoros")),
            done=bool(data.get("done", False)),
            notes=str(data.get("notes") or ""),
            tags=_string_list(data.get("tags")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "estimatedPomodoros": self.estimated_pomodoros,
            "completedPomodoros": self.completed_pomodoros,
            "done": self.done,
            "notes": self.notes,
            "tags": list(self.tags),
        }


@dataclass(frozen=True)
class Session:
    """A recorded work or break period. ``timestamp`` is its identity."""

    mode: str
    duration_minutes: float
    date: str
    timestamp: int
    task_name: Optional[str] = None
    note: Optional[str] = None
    distraction_count: Optional[int] = None
    task_marked_done: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional["Session"]:
        timestamp = _optional_int(data.get("timestamp"))
        if timestamp is None:
            return None
        duration = data.get("durationMinutes", 0)
        if not isinstance(duration, (int, float)) or isinstance(duration, bool) or not math.isfinite(duration):
            duration = 0
        task_name = data.get("taskName")
        note = data.get("note")
        task_done = data.get("taskMarkedDone")
        return cls(
            mode=normalize_mode(data.get("mode")),
            duration_minutes=duration,
            date=str(data.get("date") or ""),
            timestamp=timestamp,
            task_name=task_name if isinstance(task_name, str) else None,
            note=note if isinstance(note, str) else None,
            distraction_count=_optional_int(data.get("distractionCount")),
            task_marked_done=bool(task_done) if task_done is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "mode": self.mode,
            "durationMinutes": self.duration_minutes,
            "date": self.date,
            "timestamp": self.timestamp,
        }
        optional = {
            "taskName": self.task_name,
            "note": self.note,
            "distractionCount": self.distraction_count,
            "taskMarkedDone": self.task_marked_done,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload


@dataclass(frozen=True)
class Streak:
    last_date: Optional[str] = None
    count: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> "Streak":
        if not isinstance(data, Mapping):
            return cls()
        last_date = data.get("lastDate")
        return cls(
            last_date=last_date if isinstance(last_date, str) and last_date else None,
            count=max(0, _as_int(data.get("count"))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"lastDate": self.last_date, "count": self.count}


@dataclass(frozen=True)
class TimerCookie:
    """Ephemeral record of a running timer: its absolute deadline and phase."""

    end_time: int
    mode: str = DEFAULT_MODE

    @classmethod
    def from_dict(cls, data: Any) -> Optional["TimerCookie"]:
        if not isinstance(data, Mapping):
            return None
        end_time = _optional_int(data.get("endTime"))
        if not end_time or end_time <= 0:
            return None
        return cls(end_time=end_time, mode=normalize_mode(data.get("mode")))

    def to_dict(self) -> Dict[str, Any]:
        return {"endTime": self.end_time, "mode": self.mode}


@dataclass
class StateSnapshot:
    settings: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_SETTINGS))
    tasks: List[Task] = field(default_factory=list)
    sessions: List[Session] = field(default_factory=list)
    achievements: List[str] = field(default_factory=list)
    streak: Streak = field(default_factory=Streak)
    pomodoros_completed: int = 0
    current_task_id: Optional[int] = None
    mode: str = DEFAULT_MODE
    timer_end_time: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> "StateSnapshot":
        """Build a snapshot over the full defaults; missing or bad fields fall back."""

        if not isinstance(data, Mapping):
            return default_snapshot()
        settings = copy.deepcopy(DEFAULT_SETTINGS)
        raw_settings = data.get("settings")
        if isinstance(raw_settings, Mapping):
            for key, value in raw_settings.items():
                if valid_setting(key, value):
                    settings[key] = copy.deepcopy(value)
        settings["blocklist"] = _string_list(settings.get("blocklist"))

        tasks = []
        raw_tasks = data.get("tasks")
        for item in raw_tasks if isinstance(raw_tasks, list) else []:
            if isinstance(item, Mapping):
                task = Task.from_dict(item)
                if task is not None:
                    tasks.append(task)

        sessions = []
        raw_sessions = data.get("sessions")
        for item in raw_sessions if isinstance(raw_sessions, list) else []:
            if isinstance(item, Mapping):
                session = Session.from_dict(item)
                if session is not None:
                    sessions.append(session)

        end_time = _optional_int(data.get("timerEndTime"))
        return cls(
            settings=settings,
            tasks=tasks,
            sessions=sessions,
            achievements=_string_list(data.get("achievements")),
            streak=Streak.from_dict(data.get("streakData")),
            pomodoros_completed=max(0, _as_int(data.get("pomodorosCompleted"))),
            current_task_id=_optional_int(data.get("currentTaskId")),
            mode=normalize_mode(data.get("mode")),
            timer_end_time=end_time if end_time and end_time > 0 else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "settings": copy.deepcopy(self.settings),
            "tasks": [task.to_dict() for task in self.tasks],
            "sessions": [session.to_dict() for session in self.sessions],
            "pomodorosCompleted": self.pomodoros_completed,
            "currentTaskId": self.current_task_id,
            "achievements": list(self.achievements),
            "streakData": self.streak.to_dict(),
            "mode": self.mode,
            "timerEndTime": self.timer_end_time,
        }

    def to_remote_dict(self) -> Dict[str, Any]:
        payload = self.to_dict()
        for key in TRANSIENT_FIELDS:
            payload.pop(key, None)
        return payload

    def copy(self) -> "StateSnapshot":
        return replace(
            self,
            settings=copy.deepcopy(self.settings),
            tasks=[replace(task, tags=list(task.tags)) for task in self.tasks],
            sessions=list(self.sessions),
            achievements=list(self.achievements),
        )

    @property
    def blocklist(self) -> List[str]:
        return list(self.settings.get("blocklist") or [])


def default_snapshot() -> StateSnapshot:
    return StateSnapshot()


__all__ = [
    "BLOCKING_MODES",
    "DEFAULT_MODE",
    "DEFAULT_SETTINGS",
    "MODES",
    "Session",
    "StateSnapshot",
    "Streak",
    "Task",
    "TimerCookie",
    "TRANSIENT_FIELDS",
    "default_snapshot",
    "normalize_mode",
    "valid_setting",
]
