"""Retry helper for transient document store failures."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from ..exceptions import DatabaseOperationError

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    DatabaseOperationError,
    TimeoutError,
    ConnectionError,
)

logger = logging.getLogger(__name__)


async def call_with_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    backoff_seconds: float = 0.5,
    retry_on: tuple[type[BaseException], ...] = TRANSIENT_ERRORS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = "store call",
) -> T:
    """Await ``operation`` retrying transient errors with linear backoff.

    The error of the final attempt propagates unchanged.
    """
    max_attempts = max(1, attempts)
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            if attempt >= max_attempts:
                raise
            delay = backoff_seconds * attempt
            logger.warning(
                "store.retry",
                extra={
                    "operation": description,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "delay_seconds": delay,
                    "error": str(exc),
                },
            )
            if delay > 0:
                await sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
