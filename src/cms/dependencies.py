"""Dependency wiring helpers."""

from __future__ import annotations

from fastapi import FastAPI

from .api.health_api import router as health_router
from .api.jobs_api import router as jobs_router
from .attachments.attachment_storage import AttachmentFileStore
from .attachments.ownership import owner_delete_hooks
from .config import AppConfig
from .jobs.tasks import TASKS, TaskContext
from .store.sqlalchemy_store import SqlAlchemyDocumentStore


def build_store(config: AppConfig) -> SqlAlchemyDocumentStore:
    return SqlAlchemyDocumentStore(
        config.session_factory,
        file_store=AttachmentFileStore(config.media_paths),
        after_delete=owner_delete_hooks(),
    )


def build_task_context(config: AppConfig, store: SqlAlchemyDocumentStore) -> TaskContext:
    return TaskContext(
        store=store,
        store_retry=config.store_retry,
        owner_lookup_error_policy=config.owner_lookup_error_policy,
        deadline_seconds=config.reclaim_deadline_seconds,
    )


def include_routers(app: FastAPI, config: AppConfig) -> None:
    """Mount routers and attach services."""
    store = build_store(config)

    app.state.config = config
    app.state.store = store
    app.state.tasks = TASKS
    app.state.task_context = build_task_context(config, store)
    app.state.jobs_api_token = config.jobs_api_token

    app.include_router(health_router)
    app.include_router(jobs_router)
