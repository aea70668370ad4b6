"""Pydantic schemas for the jobs API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class ScheduleResponse(BaseModel):
    cron: str
    queue: str


class TaskResponse(BaseModel):
    slug: str
    label: str
    retries: int
    schedule: list[ScheduleResponse]


class TaskListResponse(BaseModel):
    tasks: list[TaskResponse]


class TaskRunResponse(BaseModel):
    slug: str
    status: str
    output: dict[str, Any]
