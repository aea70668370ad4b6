"""Background task declarations."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

from croniter import croniter

from ..config import RetryPolicy
from ..exceptions import UnknownTaskError
from ..store.document_store import DocumentStore
from .orphan_reclaimer import LOOKUP_ERROR_DELETE, OrphanReclaimer


@dataclass(slots=True)
class TaskContext:
    """Collaborators handed to every task handler."""

    store: DocumentStore
    store_retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(attempts=3, backoff_seconds=0.5))
    owner_lookup_error_policy: str = LOOKUP_ERROR_DELETE
    deadline_seconds: float | None = None
    shutdown_event: asyncio.Event | None = None
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)


TaskHandler = Callable[[TaskContext], Awaitable[dict[str, Any]]]


@dataclass(frozen=True, slots=True)
class Schedule:
    """Five-field cron expression (minute hour day-of-month month day-of-week)."""

    cron: str
    queue: str

    def __post_init__(self) -> None:
        if len(self.cron.split()) != 5 or not croniter.is_valid(self.cron):
            raise ValueError(f"invalid cron expression '{self.cron}'")

    def matches(self, moment: datetime) -> bool:
        """Return ``True`` when ``moment`` falls on a scheduled minute."""
        return croniter.match(self.cron, moment.replace(second=0, microsecond=0))


@dataclass(frozen=True, slots=True)
class TaskConfig:
    slug: str
    label: str
    handler: TaskHandler
    retries: int = 0
    schedule: tuple[Schedule, ...] = ()


async def cleanup_orphaned_files(context: TaskContext) -> dict[str, Any]:
    reclaimer = OrphanReclaimer(
        store=context.store,
        retry=context.store_retry,
        lookup_error_policy=context.owner_lookup_error_policy,
        clock=context.clock,
    )
    deadline = None
    if context.deadline_seconds:
        deadline = context.clock() + timedelta(seconds=context.deadline_seconds)
    result = await reclaimer.run(deadline=deadline, shutdown_event=context.shutdown_event)
    return result.as_output()


CLEANUP_ORPHANED_FILES = TaskConfig(
    slug="cleanupOrphanedFiles",
    label="Cleanup Orphaned File Attachments",
    handler=cleanup_orphaned_files,
    retries=2,
    # first day of every month at midnight
    schedule=(Schedule(cron="0 0 1 * *", queue="monthly"),),
)

TASKS: tuple[TaskConfig, ...] = (CLEANUP_ORPHANED_FILES,)


def get_task(slug: str, tasks: tuple[TaskConfig, ...] = TASKS) -> TaskConfig:
    for task in tasks:
        if task.slug == slug:
            return task
    raise UnknownTaskError(f"task '{slug}' is not registered")
