"""FastAPI application entry point.

Run with ``uvicorn --factory src.cms.main:create_app``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

from fastapi import FastAPI

from .config import AppConfig, load_config
from .dependencies import include_routers
from .jobs.runner import run_periodic_jobs
from .logging import configure_logging

logger = logging.getLogger(__name__)


def create_app(config: AppConfig | None = None, *, run_scheduler: bool = True) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    configure_logging()
    cfg = config or load_config()

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if not run_scheduler:
            yield
            return
        shutdown = asyncio.Event()
        app.state.task_context.shutdown_event = shutdown
        scheduler = asyncio.create_task(
            run_periodic_jobs(
                tasks=app.state.tasks,
                context=app.state.task_context,
                shutdown_event=shutdown,
                tick_seconds=cfg.scheduler_tick_seconds,
            )
        )
        logger.info("jobs.scheduler.started", extra={"tasks": [task.slug for task in app.state.tasks]})
        try:
            yield
        finally:
            shutdown.set()
            await scheduler
            logger.info("jobs.scheduler.stopped")

    app = FastAPI(title="Meditation CMS", lifespan=lifespan)
    include_routers(app, cfg)
    return app
