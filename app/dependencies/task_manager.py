from fastapi import Request

from app.core.config import Settings
from app.services.task_manager import TaskManager


def get_task_manager(request: Request) -> TaskManager:
    """FastAPI Depends(get_task_manager): the single manager owned by this app."""
    return request.app.state.task_manager


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
