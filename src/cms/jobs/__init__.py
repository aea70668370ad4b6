"""Background jobs: orphan reclaiming, task registry and scheduler."""

from .orphan_reclaimer import (
    CANDIDATE_BUFFER,
    GRACE_PERIOD,
    MAX_DELETIONS,
    OrphanReclaimer,
    ReclaimResult,
)
from .runner import run_periodic_jobs, run_task
from .tasks import CLEANUP_ORPHANED_FILES, TASKS, Schedule, TaskConfig, TaskContext, get_task

__all__ = [
    "CANDIDATE_BUFFER",
    "CLEANUP_ORPHANED_FILES",
    "GRACE_PERIOD",
    "MAX_DELETIONS",
    "OrphanReclaimer",
    "ReclaimResult",
    "Schedule",
    "TASKS",
    "TaskConfig",
    "TaskContext",
    "get_task",
    "run_periodic_jobs",
    "run_task",
]
