from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from app.services.timers import TimerHandle

MAX_DELAY_SECONDS = 86400


class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.PENDING


@dataclass
class Task:
    """
    In-memory task record.
    Store/manager/router 모두 같은 인스턴스를 공유한다 (복사본 아님).
    """
    task_id: str
    message: str
    delay: Union[int, float]
    scheduled_at: datetime
    status: TaskStatus = TaskStatus.PENDING
    completed_at: Optional[datetime] = None
    # internal only, never serialized
    timer_handle: Optional["TimerHandle"] = field(default=None, repr=False, compare=False)
