"""Task execution with retries and the periodic scheduler loop."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Iterable

from .tasks import TaskConfig, TaskContext

logger = logging.getLogger(__name__)


async def run_task(task: TaskConfig, context: TaskContext) -> dict[str, Any]:
    """Run ``task`` up to ``retries + 1`` times; the last failure propagates."""
    attempts = max(0, task.retries) + 1
    for attempt in range(1, attempts + 1):
        logger.info("jobs.task.start", extra={"task": task.slug, "attempt": attempt})
        try:
            output = await task.handler(context)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error(
                "jobs.task.failed",
                extra={"task": task.slug, "attempt": attempt, "max_attempts": attempts, "error": str(exc)},
            )
            if attempt >= attempts:
                raise
            continue
        logger.info("jobs.task.completed", extra={"task": task.slug, "attempt": attempt, "output": output})
        return output
    raise AssertionError("unreachable")  # pragma: no cover


def due_tasks(
    tasks: Iterable[TaskConfig], now: datetime, fired: dict[tuple[str, str], datetime]
) -> list[TaskConfig]:
    """Return tasks with a schedule matching ``now``, at most once per minute."""
    minute = now.replace(second=0, microsecond=0)
    due: list[TaskConfig] = []
    for task in tasks:
        for schedule in task.schedule:
            key = (task.slug, schedule.queue)
            if fired.get(key) == minute or not schedule.matches(now):
                continue
            fired[key] = minute
            if task not in due:
                due.append(task)
    return due


async def run_periodic_jobs(
    *,
    tasks: Iterable[TaskConfig],
    context: TaskContext,
    shutdown_event: asyncio.Event,
    tick_seconds: float = 30.0,
    clock: Callable[[], datetime] | None = None,
) -> None:
    """Fire scheduled tasks until ``shutdown_event`` is signalled."""

    registered = tuple(tasks)
    interval = max(0.01, float(tick_seconds))
    tick = clock or context.clock
    fired: dict[tuple[str, str], datetime] = {}
    while not shutdown_event.is_set():
        for task in due_tasks(registered, tick(), fired):
            try:
                await run_task(task, context)
            except Exception:
                logger.exception("jobs.scheduler.task_failed", extra={"task": task.slug})
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue
