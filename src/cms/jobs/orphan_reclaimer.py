"""Reclaim file attachments that lost (or never got) their owner document.

An attachment is created as soon as an upload field is populated, and its
parent document claims it shortly afterwards. Attachments older than the grace
period that still have no owner, or whose owner no longer resolves, are
deleted. Each run deletes at most ``MAX_DELETIONS`` records; whatever is left
is picked up by the next run.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from ..attachments.attachment_models import (
    FILE_ATTACHMENTS,
    OWNER_COLLECTIONS,
    FileAttachment,
    owner_id,
)
from ..config import RetryPolicy
from ..exceptions import NotFoundError
from ..store.document_store import DocumentStore
from ..store.retry import call_with_retries

MAX_DELETIONS = 1000
GRACE_PERIOD = timedelta(hours=24)
# Extra candidates fetched beyond the cap so that owned attachments in the
# batch do not starve the run of deletable ones.
CANDIDATE_BUFFER = 100

LOOKUP_ERROR_DELETE = "delete"
LOOKUP_ERROR_SKIP = "skip"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(slots=True)
class ReclaimResult:
    """Counters of a single run.

    ``skipped_count`` includes the ``deferred_count`` candidates that were
    fetched but left unevaluated once ``MAX_DELETIONS`` was reached, so
    ``deleted_count + skipped_count`` never exceeds ``candidates``.
    """

    deleted_count: int = 0
    skipped_count: int = 0
    candidates: int = 0
    deferred_count: int = 0
    interrupted: bool = False
    dry_run: bool = False

    @property
    def total_processed(self) -> int:
        return self.deleted_count + self.skipped_count

    def as_output(self) -> dict[str, int]:
        return {"deletedCount": self.deleted_count, "skippedCount": self.skipped_count}


@dataclass(slots=True)
class Verdict:
    orphan: bool
    reason: str = ""


@dataclass(slots=True)
class OrphanReclaimer:
    """Single sequential scan over stale file attachments."""

    store: DocumentStore
    retry: RetryPolicy = field(default_factory=lambda: RetryPolicy(attempts=3, backoff_seconds=0.5))
    lookup_error_policy: str = LOOKUP_ERROR_DELETE
    clock: Callable[[], datetime] = _utcnow
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    def __post_init__(self) -> None:
        if self.lookup_error_policy not in (LOOKUP_ERROR_DELETE, LOOKUP_ERROR_SKIP):
            raise ValueError(f"unknown lookup error policy '{self.lookup_error_policy}'")

    async def run(
        self,
        *,
        now: datetime | None = None,
        deadline: datetime | None = None,
        shutdown_event: asyncio.Event | None = None,
        dry_run: bool = False,
    ) -> ReclaimResult:
        """Scan, delete orphans up to the cap and return the counters.

        A failing candidate query aborts the run and propagates. Reaching
        ``deadline`` or ``shutdown_event`` stops the scan and returns the
        counters gathered so far.
        """
        current = _as_aware(now or self.clock())
        cutoff = current - GRACE_PERIOD
        result = ReclaimResult(dry_run=dry_run)

        self.log.info(
            "attachments.reclaim.start",
            extra={
                "cutoff": cutoff.isoformat(),
                "max_deletions": MAX_DELETIONS,
                "grace_period_hours": GRACE_PERIOD.total_seconds() / 3600,
                "dry_run": dry_run,
            },
        )

        try:
            found = await self._call(
                lambda: self.store.find(
                    FILE_ATTACHMENTS,
                    where={"createdAt": {"less_than": cutoff.isoformat()}},
                    limit=MAX_DELETIONS + CANDIDATE_BUFFER,
                    depth=0,
                ),
                description="find candidates",
            )
        except Exception as exc:
            self.log.error(
                "attachments.reclaim.failed",
                extra={
                    "error": str(exc),
                    "deleted_count": result.deleted_count,
                    "skipped_count": result.skipped_count,
                },
            )
            raise

        candidates = [FileAttachment.from_document(doc) for doc in found.docs]
        result.candidates = len(candidates)
        self.log.info(
            "attachments.reclaim.candidates",
            extra={"candidates": len(candidates), "grace_period_hours": GRACE_PERIOD.total_seconds() / 3600},
        )

        for index, attachment in enumerate(candidates):
            if result.deleted_count >= MAX_DELETIONS:
                result.deferred_count = len(candidates) - index
                result.skipped_count += result.deferred_count
                self.log.info(
                    "attachments.reclaim.cap_reached",
                    extra={"max_deletions": MAX_DELETIONS, "deferred": result.deferred_count},
                )
                break
            if self._should_stop(deadline, shutdown_event):
                result.interrupted = True
                self.log.warning(
                    "attachments.reclaim.interrupted",
                    extra={"evaluated": index, "candidates": len(candidates)},
                )
                break
            if attachment.created_at is not None and _as_aware(attachment.created_at) >= cutoff:
                # store returned a record inside the grace period; leave it alone
                continue

            verdict = await self._evaluate(attachment)
            if not verdict.orphan:
                result.skipped_count += 1
                continue
            if dry_run:
                result.deleted_count += 1
                self.log.info(
                    "attachments.reclaim.would_delete",
                    extra={"attachment_id": attachment.id, "file_name": attachment.filename, "reason": verdict.reason},
                )
                continue
            await self._delete(attachment, verdict.reason, result)

        self.log.info(
            "attachments.reclaim.completed",
            extra={
                "deleted_count": result.deleted_count,
                "skipped_count": result.skipped_count,
                "total_processed": result.total_processed,
                "interrupted": result.interrupted,
                "dry_run": dry_run,
            },
        )
        return result

    async def _evaluate(self, attachment: FileAttachment) -> Verdict:
        owner = attachment.owner
        if owner is None:
            return Verdict(orphan=True, reason="No owner assigned")

        pair = f"{owner.collection}:{owner_id(owner)}"
        if owner.collection not in OWNER_COLLECTIONS:
            return Verdict(orphan=True, reason=f"Owner {pair} is not in an owner collection")

        try:
            found = await self._call(
                lambda: self.store.find_by_id(owner.collection, owner_id(owner), depth=0),
                description="find owner",
            )
        except NotFoundError as exc:
            return Verdict(orphan=True, reason=f"Owner {pair} does not exist (error: {exc})")
        except Exception as exc:
            if self.lookup_error_policy == LOOKUP_ERROR_SKIP:
                self.log.warning(
                    "attachments.reclaim.owner_lookup_failed",
                    extra={"attachment_id": attachment.id, "owner": pair, "error": str(exc)},
                )
                return Verdict(orphan=False, reason=f"Owner {pair} lookup failed (error: {exc})")
            return Verdict(orphan=True, reason=f"Owner {pair} does not exist (error: {exc})")

        if not found:
            return Verdict(orphan=True, reason=f"Owner {pair} does not exist")
        return Verdict(orphan=False)

    async def _delete(self, attachment: FileAttachment, reason: str, result: ReclaimResult) -> None:
        try:
            await self._call(
                lambda: self.store.delete(FILE_ATTACHMENTS, attachment.id),
                description="delete attachment",
            )
        except Exception as exc:
            result.skipped_count += 1
            self.log.error(
                "attachments.reclaim.delete_failed",
                extra={
                    "attachment_id": attachment.id,
                    "file_name": attachment.filename,
                    "error": str(exc),
                    "reason": reason,
                },
            )
            return
        result.deleted_count += 1
        self.log.info(
            "attachments.reclaim.deleted",
            extra={
                "attachment_id": attachment.id,
                "file_name": attachment.filename,
                "reason": reason,
                "created_at": attachment.created_at.isoformat() if attachment.created_at else None,
            },
        )

    async def _call(self, operation: Callable[[], Any], *, description: str) -> Any:
        return await call_with_retries(
            operation,
            attempts=self.retry.attempts,
            backoff_seconds=self.retry.backoff_seconds,
            description=description,
        )

    def _should_stop(self, deadline: datetime | None, shutdown_event: asyncio.Event | None) -> bool:
        if shutdown_event is not None and shutdown_event.is_set():
            return True
        return deadline is not None and _as_aware(self.clock()) >= _as_aware(deadline)
