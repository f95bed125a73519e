# app/services/task_store.py
from __future__ import annotations

import threading
from typing import Optional

from app.models.task import Task


class TaskStore:
    """
    Process-lifetime task records keyed by task_id, insertion-ordered.

    Returns the stored instances themselves; callers mutate them in place.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._lock = threading.Lock()

    def put(self, task: Task) -> None:
        with self._lock:
            self._tasks[task.task_id] = task

    def get(self, task_id: str) -> Optional[Task]:
        with self._lock:
            return self._tasks.get(task_id)

    def list(self) -> list[Task]:
        with self._lock:
            return list(self._tasks.values())

    def clear(self) -> list[Task]:
        """Remove everything and hand back what was removed."""
        with self._lock:
            removed = list(self._tasks.values())
            self._tasks.clear()
        return removed

    def __contains__(self, task_id: object) -> bool:
        with self._lock:
            return task_id in self._tasks

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)
