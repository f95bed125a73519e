# app/main.py
from contextlib import asynccontextmanager
import logging
from typing import Optional

from dotenv import load_dotenv

# 루트 .env 로딩 (Settings보다 먼저)
load_dotenv()

from fastapi import FastAPI  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

from app.core.config import Settings, get_settings  # noqa: E402
from app.core.logging_config import setup_logging  # noqa: E402
from app.routers import task  # noqa: E402
from app.services.task_manager import TaskManager  # noqa: E402
from app.services.timers import TimerScheduler  # noqa: E402

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    scheduler: Optional[TimerScheduler] = None,
) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        # 종료 시 남은 타이머 전부 해제
        app.state.task_manager.shutdown()

    app = FastAPI(
        title="Delayed Task Scheduler",
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.task_manager = TaskManager(scheduler=scheduler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(task.router)

    @app.get("/health")
    def health_app():
        return {"ok": True}

    logger.info("app ready env=%s version=%s", settings.app_env, settings.app_version)
    return app


app = create_app()
