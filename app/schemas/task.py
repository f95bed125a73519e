# app/schemas/task.py
from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, field_validator

from app.models.task import MAX_DELAY_SECONDS, TaskStatus


class TaskCreateRequest(BaseModel):
    message: StrictStr = Field(..., description="완료 시점에 상태만 바뀌는 페이로드 (전달은 안 함)")
    delay: Union[StrictInt, StrictFloat] = Field(..., description=f"초 단위 지연 (0~{MAX_DELAY_SECONDS})")

    @field_validator("message")
    @classmethod
    def _message_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("message must not be blank")
        return v

    @field_validator("delay")
    @classmethod
    def _delay_in_range(cls, v: Union[int, float]) -> Union[int, float]:
        # NaN은 비교가 전부 False라서 여기서 같이 걸러짐
        if not (0 <= v <= MAX_DELAY_SECONDS):
            raise ValueError(f"delay must be between 0 and {MAX_DELAY_SECONDS} seconds")
        return v


class TaskRead(BaseModel):
    """External view of a task. timer_handle is never part of it."""
    task_id: str
    message: str
    delay: Union[int, float]
    status: TaskStatus
    scheduled_at: datetime
    completed_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class TaskClearResponse(BaseModel):
    ok: bool = True
    cleared: int
