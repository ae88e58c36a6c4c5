"""Deterministic reconciliation of a local and a remote snapshot.

One pass over a fixed per-field policy table; no timestamps on the snapshot
itself, no iteration to convergence. Applied once at startup.
"""
from __future__ import annotations

import copy
from typing import Dict, List, Optional, TypeVar

from models.snapshot import DEFAULT_MODE, DEFAULT_SETTINGS, Session, StateSnapshot, Streak

T = TypeVar("T")


def merge_sessions(local: List[Session], remote: List[Session]) -> List[Session]:
    by_timestamp: Dict[int, Session] = {}
    for session in remote:
        by_timestamp[session.timestamp] = session
    # local wins on collision
    for session in local:
        by_timestamp[session.timestamp] = session
    return sorted(by_timestamp.values(), key=lambda s: s.timestamp)


def union_ordered(local: List[T], remote: List[T]) -> List[T]:
    merged = list(dict.fromkeys(local))
    seen = set(merged)
    for item in remote:
        if item not in seen:
            merged.append(item)
            seen.add(item)
    return merged


def merge_streak(local: Streak, remote: Streak) -> Streak:
    # lastDate and count travel together
    return remote if remote.count > local.count else local


def merge_blocklist(local: List[str], remote: List[str]) -> List[str]:
    if len(local) >= len(remote):
        return union_ordered(local, remote)
    return union_ordered(remote, local)


def merge_settings(local: dict, remote: dict) -> dict:
    merged = copy.deepcopy(DEFAULT_SETTINGS)
    merged.update(copy.deepcopy(remote))
    merged.update(copy.deepcopy(local))
    merged["blocklist"] = merge_blocklist(
        list(local.get("blocklist") or []),
        list(remote.get("blocklist") or []),
    )
    return merged


def _first(*values: Optional[T]) -> Optional[T]:
    for value in values:
        if value is not None:
            return value
    return None


def _is_empty(snapshot: StateSnapshot) -> bool:
    return (
        not snapshot.sessions
        and not snapshot.tasks
        and not snapshot.achievements
        and snapshot.pomodoros_completed == 0
        and snapshot.streak.count == 0
        and snapshot.current_task_id is None
        and snapshot.settings == DEFAULT_SETTINGS
    )


def merge(local: StateSnapshot, remote: Optional[StateSnapshot]) -> StateSnapshot:
    """Merge ``remote`` into ``local``; an absent or empty remote returns ``local`` as-is."""

    if remote is None or _is_empty(remote):
        return local
    return StateSnapshot(
        settings=merge_settings(local.settings, remote.settings),
        tasks=copy.deepcopy(local.tasks) if local.tasks else copy.deepcopy(remote.tasks),
        sessions=merge_sessions(local.sessions, remote.sessions),
        achievements=union_ordered(local.achievements, remote.achievements),
        streak=merge_streak(local.streak, remote.streak),
        pomodoros_completed=max(local.pomodoros_completed, remote.pomodoros_completed),
        current_task_id=_first(local.current_task_id, remote.current_task_id),
        mode=_first(local.mode, remote.mode, DEFAULT_MODE),
        timer_end_time=local.timer_end_time,
    )


__all__ = [
    "merge",
    "merge_blocklist",
    "merge_sessions",
    "merge_settings",
    "merge_streak",
    "union_ordered",
]
