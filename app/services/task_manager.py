# app/services/task_manager.py
"""
Task lifecycle: pending -> completed (timer fired) | canceled (cancel_task).

completed/canceled are terminal. Every check-and-transition on a record runs
under one manager-wide lock, so a firing timer and a concurrent cancel can
never both observe `pending`.
"""
from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from app.models.task import Task, TaskStatus
from app.schemas.task import TaskRead
from app.services.task_store import TaskStore
from app.services.timers import ThreadingTimerScheduler, TimerScheduler

logger = logging.getLogger(__name__)


class CancelOutcome(str, Enum):
    CANCELED = "canceled"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class CancelResult:
    outcome: CancelOutcome
    task: Optional[Task]


class TaskManager:
    def __init__(
        self,
        scheduler: Optional[TimerScheduler] = None,
        store: Optional[TaskStore] = None,
    ) -> None:
        self.scheduler = scheduler or ThreadingTimerScheduler()
        self.store = store or TaskStore()
        self._lock = threading.RLock()

    def _new_task_id(self) -> str:
        while True:
            task_id = str(uuid.uuid4())
            if task_id not in self.store:
                return task_id

    def schedule_task(self, message: str, delay_seconds: Union[int, float]) -> Task:
        """
        Create a pending task and arm its timer.
        Input is assumed validated upstream (non-empty message, 0 <= delay <= 86400).
        """
        with self._lock:
            task = Task(
                task_id=self._new_task_id(),
                message=message,
                delay=delay_seconds,
                scheduled_at=self.scheduler.now(),
            )
            # 타이머가 실제로 걸린 뒤에만 store에 넣음 (schedule 실패 시 레코드 안 남김).
            # lock을 잡은 상태라 delay=0 타이머도 store에 들어가기 전 레코드를 볼 수 없음
            task.timer_handle = self.scheduler.schedule(delay_seconds, lambda: self._complete(task))
            self.store.put(task)
        logger.info("Task %s scheduled delay=%ss", task.task_id, delay_seconds)
        return task

    def _complete(self, task: Task) -> None:
        with self._lock:
            if self.store.get(task.task_id) is not task:
                logger.debug("Task %s fired after clear; ignored", task.task_id)
                return
            if task.status.is_terminal:
                return
            task.status = TaskStatus.COMPLETED
            task.completed_at = self.scheduler.now()
            task.timer_handle = None
        logger.info('Task %s completed: "%s"', task.task_id, task.message)

    def cancel_task(self, task_id: str) -> CancelResult:
        with self._lock:
            task = self.store.get(task_id)
            if task is None:
                return CancelResult(CancelOutcome.NOT_FOUND, None)
            if task.status is TaskStatus.COMPLETED:
                return CancelResult(CancelOutcome.CONFLICT, task)
            if task.status is TaskStatus.CANCELED:
                # re-cancel은 그대로 성공 처리
                return CancelResult(CancelOutcome.CANCELED, task)

            if task.timer_handle is not None:
                task.timer_handle.cancel()
            task.status = TaskStatus.CANCELED
            task.completed_at = self.scheduler.now()
            task.timer_handle = None
        logger.info("Task %s canceled", task_id)
        return CancelResult(CancelOutcome.CANCELED, task)

    def get_all_tasks(self) -> list[Task]:
        return self.store.list()

    def get_task_by_id(self, task_id: str) -> Optional[Task]:
        return self.store.get(task_id)

    @staticmethod
    def to_external_view(task: Task) -> TaskRead:
        return TaskRead.model_validate(task)

    def clear_all(self) -> int:
        """Release every outstanding timer, then drop all records."""
        with self._lock:
            for task in self.store.list():
                if task.timer_handle is not None:
                    task.timer_handle.cancel()
                    task.timer_handle = None
            removed = self.store.clear()
        logger.info("Cleared %d task(s)", len(removed))
        return len(removed)

    def shutdown(self) -> None:
        self.clear_all()
        self.scheduler.close()
