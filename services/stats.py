"""Session history queries and the daily streak."""
from __future__ import annotations

from typing import Iterable, List, Optional

from datetime_utils import day_key, previous_day_key
from models.snapshot import Session, Streak


def record_session(
    sessions: List[Session],
    mode: str,
    duration_minutes: float,
    now: int,
    *,
    task_name: Optional[str] = None,
) -> Session:
    """Append a session stamped at ``now`` (epoch ms) and return it.

    Timestamps are the session identity, so a collision is nudged forward.
    """
    taken = {s.timestamp for s in sessions}
    timestamp = now
    while timestamp in taken:
        timestamp += 1
    session = Session(
        mode=mode,
        duration_minutes=duration_minutes,
        date=day_key(timestamp),
        timestamp=timestamp,
        task_name=task_name or None,
    )
    sessions.append(session)
    return session


def _today_work(sessions: Iterable[Session], today: str) -> List[Session]:
    return [s for s in sessions if s.date == today and s.mode == "work"]


def today_pomodoros(sessions: Iterable[Session], today: Optional[str] = None) -> int:
    return len(_today_work(sessions, today or day_key()))


def today_focus_minutes(sessions: Iterable[Session], today: Optional[str] = None) -> float:
    return sum(s.duration_minutes for s in _today_work(sessions, today or day_key()))


def update_streak(streak: Streak, today: str) -> Streak:
    if streak.last_date == today:
        return streak
    if streak.last_date and streak.last_date == previous_day_key(today):
        return Streak(last_date=today, count=streak.count + 1)
    return Streak(last_date=today, count=1)


__all__ = [
    "record_session",
    "today_focus_minutes",
    "today_pomodoros",
    "update_streak",
]
