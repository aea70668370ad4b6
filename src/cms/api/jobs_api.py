"""Routes for listing and manually triggering background tasks."""

from __future__ import annotations

import hmac

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..exceptions import UnknownTaskError
from ..jobs.runner import run_task
from ..jobs.tasks import TaskConfig, TaskContext, get_task
from .jobs_schemas import ScheduleResponse, TaskListResponse, TaskResponse, TaskRunResponse

security = HTTPBearer(auto_error=False)


def require_jobs_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> None:
    expected = getattr(request.app.state, "jobs_api_token", None)
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "error", "failure_reason": "jobs_api_disabled"},
        )
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"status": "error", "failure_reason": "missing_token"},
        )
    if not hmac.compare_digest(credentials.credentials.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"status": "error", "failure_reason": "invalid_token"},
        )


router = APIRouter(
    prefix="/api/jobs",
    tags=["jobs"],
    dependencies=[Depends(require_jobs_token)],
)


def get_tasks(request: Request) -> tuple[TaskConfig, ...]:
    try:
        return request.app.state.tasks  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("Task registry is not configured") from exc


def get_task_context(request: Request) -> TaskContext:
    try:
        return request.app.state.task_context  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("Task context is not configured") from exc


def _task_response(task: TaskConfig) -> TaskResponse:
    return TaskResponse(
        slug=task.slug,
        label=task.label,
        retries=task.retries,
        schedule=[ScheduleResponse(cron=item.cron, queue=item.queue) for item in task.schedule],
    )


@router.get("", response_model=TaskListResponse)
def list_tasks(tasks: tuple[TaskConfig, ...] = Depends(get_tasks)) -> TaskListResponse:
    """Return registered tasks with their schedules."""
    return TaskListResponse(tasks=[_task_response(task) for task in tasks])


@router.post("/{slug}/run", response_model=TaskRunResponse)
async def run_task_now(
    slug: str,
    tasks: tuple[TaskConfig, ...] = Depends(get_tasks),
    context: TaskContext = Depends(get_task_context),
) -> TaskRunResponse:
    """Run a task immediately with the same contract as its schedule."""
    try:
        task = get_task(slug, tasks)
    except UnknownTaskError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"status": "error", "failure_reason": "unknown_task", "message": str(exc)},
        ) from exc
    try:
        output = await run_task(task, context)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"status": "error", "failure_reason": "task_failed", "message": str(exc)},
        ) from exc
    return TaskRunResponse(slug=task.slug, status="completed", output=output)
