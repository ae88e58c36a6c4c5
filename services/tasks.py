from __future__ import annotations

from dataclasses import replace
from typing import Iterable, List, Optional

from core.log import get_logger
from models.snapshot import Task


class TaskList:
    """Ordered task list with a weakly referenced current task."""

    EVENTS = ("after_create", "after_update", "after_delete")

    def __init__(self, tasks: Iterable[Task] = (), current_id: Optional[int] = None):
        self._tasks: List[Task] = [replace(t, tags=list(t.tags)) for t in tasks]
        self.current_id = current_id
        self._next_id = max((t.id for t in self._tasks), default=0) + 1
        self._listeners = {event: [] for event in self.EVENTS}
        self.logger = get_logger("tasks")

    def subscribe(self, event: str, callback) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unsupported event: {event}")
        if callback not in self._listeners[event]:
            self._listeners[event].append(callback)

    def unsubscribe(self, event: str, callback) -> None:
        listeners = self._listeners.get(event)
        if listeners and callback in listeners:
            listeners.remove(callback)

    def _emit(self, event: str, task_id: int) -> None:
        for listener in list(self._listeners[event]):
            try:
                listener(task_id)
            except Exception:
                self.logger.exception("Task %s listener failed", event)

    # ----- queries -----
    def all(self) -> List[Task]:
        return list(self._tasks)

    def get(self, task_id: int) -> Optional[Task]:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def current(self) -> Optional[Task]:
        if self.current_id is None:
            return None
        return self.get(self.current_id)

    def completed_count(self) -> int:
        return sum(1 for t in self._tasks if t.done)

    # ----- mutations -----
    def add(
        self,
        name: str,
        estimated_pomodoros: Optional[int] = None,
        *,
        notes: str = "",
        tags: Iterable[str] = (),
    ) -> Task:
        task = Task(
            id=self._next_id,
            name=name.strip(),
            estimated_pomodoros=estimated_pomodoros,
            notes=notes,
            tags=list(dict.fromkeys(tags)),
        )
        self._next_id += 1
        self._tasks.append(task)
        if len(self._tasks) == 1 and self.current_id is None:
            self.current_id = task.id
        self._emit("after_create", task.id)
        return task

    def update(
        self,
        task_id: int,
        *,
        name: Optional[str] = None,
        estimated_pomodoros: Optional[int] = None,
        notes: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> Optional[Task]:
        task = self.get(task_id)
        if task is None:
            return None
        if name is not None:
            task.name = name.strip()
        if estimated_pomodoros is not None:
            task.estimated_pomodoros = estimated_pomodoros
        if notes is not None:
            task.notes = notes
        if tags is not None:
            task.tags = list(dict.fromkeys(tags))
        self._emit("after_update", task.id)
        return task

    def remove(self, task_id: int) -> bool:
        task = self.get(task_id)
        if task is None:
            return False
        self._tasks.remove(task)
        if self.current_id == task_id:
            self.current_id = None
        self._emit("after_delete", task_id)
        return True

    def toggle_done(self, task_id: int) -> Optional[Task]:
        task = self.get(task_id)
        if task is None:
            return None
        task.done = not task.done
        self._emit("after_update", task.id)
        return task

    def select(self, task_id: Optional[int]) -> None:
        self.current_id = task_id

    def increment_current(self) -> Optional[Task]:
        task = self.current()
        if task is None or task.done:
            return None
        task.completed_pomodoros += 1
        self._emit("after_update", task.id)
        return task

    def reorder(self, task_id: int, index: int) -> bool:
        task = self.get(task_id)
        if task is None:
            return False
        self._tasks.remove(task)
        index = max(0, min(index, len(self._tasks)))
        self._tasks.insert(index, task)
        self._emit("after_update", task.id)
        return True


__all__ = ["TaskList"]
