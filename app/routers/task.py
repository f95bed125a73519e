# app/routers/task.py
from fastapi import APIRouter, Depends, HTTPException, status

from app.core.config import Settings
from app.dependencies.task_manager import get_app_settings, get_task_manager
from app.schemas.task import TaskClearResponse, TaskCreateRequest, TaskRead
from app.services.task_manager import CancelOutcome, TaskManager

router = APIRouter(prefix="/tasks", tags=["Tasks"])


@router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskCreateRequest,
    manager: TaskManager = Depends(get_task_manager),
):
    task = manager.schedule_task(payload.message, payload.delay)
    return manager.to_external_view(task)


@router.get("", response_model=list[TaskRead])
def get_all_tasks(manager: TaskManager = Depends(get_task_manager)):
    return [manager.to_external_view(t) for t in manager.get_all_tasks()]


@router.get("/{task_id}", response_model=TaskRead)
def get_task(task_id: str, manager: TaskManager = Depends(get_task_manager)):
    task = manager.get_task_by_id(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return manager.to_external_view(task)


@router.post("/{task_id}/cancel", response_model=TaskRead)
def cancel_task(task_id: str, manager: TaskManager = Depends(get_task_manager)):
    """
    - pending   -> canceled (200)
    - canceled  -> 그대로 반환 (200, 재취소는 성공 처리)
    - completed -> 409, 레코드는 변경 없이 detail.task 로 같이 내려줌
    """
    result = manager.cancel_task(task_id)
    if result.outcome is CancelOutcome.NOT_FOUND:
        raise HTTPException(status_code=404, detail="Task not found")
    view = manager.to_external_view(result.task)
    if result.outcome is CancelOutcome.CONFLICT:
        raise HTTPException(
            status_code=409,
            detail={"message": "Cannot cancel a completed task", "task": view.model_dump(mode="json")},
        )
    return view


@router.delete("", response_model=TaskClearResponse)
def clear_tasks(
    manager: TaskManager = Depends(get_task_manager),
    settings: Settings = Depends(get_app_settings),
):
    if not settings.allow_reset:
        raise HTTPException(status_code=403, detail="Reset is disabled")
    return TaskClearResponse(cleared=manager.clear_all())
