"""Snapshot schema and the table it is persisted in."""
from .snapshot import Session, StateSnapshot, Streak, Task, TimerCookie
from .state_record import StateRecord

__all__ = ["Session", "StateRecord", "StateSnapshot", "Streak", "Task", "TimerCookie"]
