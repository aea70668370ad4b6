import asyncio
import logging
from datetime import datetime, timedelta, timezone

import pytest

from src.cms.config import RetryPolicy
from src.cms.exceptions import DatabaseOperationError
from src.cms.jobs.orphan_reclaimer import (
    CANDIDATE_BUFFER,
    GRACE_PERIOD,
    MAX_DELETIONS,
    OrphanReclaimer,
)
from tests.mocks.store import InMemoryDocumentStore

NOW = datetime(2026, 10, 1, 0, 0, tzinfo=timezone.utc)
STALE = timedelta(hours=48)
ATTACHMENTS = "file-attachments"


def build_reclaimer(store: InMemoryDocumentStore, **kwargs) -> OrphanReclaimer:
    kwargs.setdefault("retry", RetryPolicy(attempts=1, backoff_seconds=0.0))
    return OrphanReclaimer(store=store, clock=lambda: NOW, **kwargs)


def _records(caplog, message: str) -> list[logging.LogRecord]:
    return [record for record in caplog.records if record.getMessage() == message]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_deletes_ownerless_and_keeps_owned_attachment() -> None:
    store = InMemoryDocumentStore()
    store.add("lessons", {"id": "X", "title": "Breathing"})
    store.add_attachment("A", age=STALE, owner=None, now=NOW)
    store.add_attachment("B", age=STALE, owner={"relationTo": "lessons", "value": "X"}, now=NOW)

    result = await build_reclaimer(store).run()

    assert result.as_output() == {"deletedCount": 1, "skippedCount": 1}
    assert store.ids(ATTACHMENTS) == {"B"}
    assert store.lookups == [("lessons", "X")]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_candidate_query_uses_cutoff_buffer_and_depth_zero() -> None:
    store = InMemoryDocumentStore()

    await build_reclaimer(store).run()

    assert store.find_calls == [
        {
            "collection": ATTACHMENTS,
            "where": {"createdAt": {"less_than": (NOW - GRACE_PERIOD).isoformat()}},
            "limit": MAX_DELETIONS + CANDIDATE_BUFFER,
            "depth": 0,
        }
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_attachments_inside_grace_period_are_never_evaluated() -> None:
    store = InMemoryDocumentStore()
    store.add_attachment("fresh-orphan", age=timedelta(hours=1), owner=None, now=NOW)
    store.add_attachment(
        "fresh-dangling",
        age=timedelta(hours=23, minutes=59),
        owner={"relationTo": "lessons", "value": "gone"},
        now=NOW,
    )

    result = await build_reclaimer(store).run()

    assert result.candidates == 0
    assert result.as_output() == {"deletedCount": 0, "skippedCount": 0}
    assert store.lookups == []
    assert store.ids(ATTACHMENTS) == {"fresh-orphan", "fresh-dangling"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cap_limits_deletions_and_next_run_finishes_backlog() -> None:
    store = InMemoryDocumentStore()
    for index in range(1200):
        store.add_attachment(f"orphan-{index:04}", age=STALE + timedelta(minutes=index), now=NOW)

    first = await build_reclaimer(store).run()

    assert first.candidates == MAX_DELETIONS + CANDIDATE_BUFFER
    assert first.deleted_count == MAX_DELETIONS
    assert first.deferred_count == CANDIDATE_BUFFER
    assert first.skipped_count == CANDIDATE_BUFFER
    assert first.deleted_count + first.skipped_count <= first.candidates
    assert len(store.ids(ATTACHMENTS)) == 200

    second = await build_reclaimer(store).run()

    assert second.as_output() == {"deletedCount": 200, "skippedCount": 0}
    assert store.ids(ATTACHMENTS) == set()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cap_prefers_oldest_candidates() -> None:
    store = InMemoryDocumentStore()
    for index in range(MAX_DELETIONS + 5):
        store.add_attachment(f"orphan-{index:04}", age=STALE + timedelta(minutes=index), now=NOW)

    await build_reclaimer(store).run()

    # larger index means older, so the five newest survive
    assert store.ids(ATTACHMENTS) == {f"orphan-{index:04}" for index in range(5)}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_second_run_without_writes_deletes_nothing() -> None:
    store = InMemoryDocumentStore()
    store.add("lesson-units", {"id": "U1"})
    store.add_attachment("orphan", age=STALE, now=NOW)
    store.add_attachment("owned", age=STALE, owner={"relationTo": "lesson-units", "value": "U1"}, now=NOW)

    await build_reclaimer(store).run()
    again = await build_reclaimer(store).run()

    assert again.deleted_count == 0
    assert again.skipped_count == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_dangling_owner_is_deleted_with_reason(caplog) -> None:
    caplog.set_level(logging.INFO)
    store = InMemoryDocumentStore()
    store.add_attachment("dangling", age=STALE, owner={"relationTo": "lessons", "value": "missing"}, now=NOW)

    result = await build_reclaimer(store).run()

    assert result.deleted_count == 1
    [record] = _records(caplog, "attachments.reclaim.deleted")
    assert record.attachment_id == "dangling"
    assert record.file_name == "dangling.mp4"
    assert record.reason.startswith("Owner lessons:missing does not exist (error: ")
    assert record.created_at == (NOW - STALE).isoformat()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_owner_lookup_timeout_counts_as_missing_owner(caplog) -> None:
    caplog.set_level(logging.INFO)
    store = InMemoryDocumentStore()
    store.add("lessons", {"id": "slow"})
    store.add_attachment("A", age=STALE, owner={"relationTo": "lessons", "value": "slow"}, now=NOW)
    store.lookup_errors["slow"] = TimeoutError("store timeout")

    result = await build_reclaimer(store).run()

    assert result.deleted_count == 1
    assert store.ids(ATTACHMENTS) == set()
    [record] = _records(caplog, "attachments.reclaim.deleted")
    assert "store timeout" in record.reason


@pytest.mark.unit
@pytest.mark.asyncio
async def test_owner_lookup_error_is_retried_before_verdict() -> None:
    store = InMemoryDocumentStore()
    store.add("lessons", {"id": "L1"})
    store.add_attachment("A", age=STALE, owner={"relationTo": "lessons", "value": "L1"}, now=NOW)
    store.lookup_errors["L1"] = DatabaseOperationError("connection reset")

    result = await build_reclaimer(store, retry=RetryPolicy(attempts=3, backoff_seconds=0.0)).run()

    assert store.lookups == [("lessons", "L1")] * 3
    assert result.deleted_count == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_skip_policy_keeps_attachment_when_lookup_fails(caplog) -> None:
    caplog.set_level(logging.INFO)
    store = InMemoryDocumentStore()
    store.add_attachment("A", age=STALE, owner={"relationTo": "lessons", "value": "L1"}, now=NOW)
    store.lookup_errors["L1"] = TimeoutError("store timeout")

    result = await build_reclaimer(store, lookup_error_policy="skip").run()

    assert result.as_output() == {"deletedCount": 0, "skippedCount": 1}
    assert store.ids(ATTACHMENTS) == {"A"}
    [record] = _records(caplog, "attachments.reclaim.owner_lookup_failed")
    assert record.owner == "lessons:L1"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_skip_policy_still_deletes_confirmed_missing_owner() -> None:
    store = InMemoryDocumentStore()
    store.add_attachment("A", age=STALE, owner={"relationTo": "lessons", "value": "gone"}, now=NOW)

    result = await build_reclaimer(store, lookup_error_policy="skip").run()

    assert result.deleted_count == 1


@pytest.mark.unit
def test_unknown_lookup_policy_is_rejected() -> None:
    with pytest.raises(ValueError):
        build_reclaimer(InMemoryDocumentStore(), lookup_error_policy="maybe")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_expanded_owner_resolves_by_embedded_id() -> None:
    store = InMemoryDocumentStore()
    store.add("lesson-units", {"id": "U7", "title": "Unit"})
    store.add_attachment(
        "A",
        age=STALE,
        owner={"relationTo": "lesson-units", "value": {"id": "U7", "title": "Unit"}},
        now=NOW,
    )

    result = await build_reclaimer(store).run()

    assert store.lookups == [("lesson-units", "U7")]
    assert result.as_output() == {"deletedCount": 0, "skippedCount": 1}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_owner_outside_owner_collections_is_reclaimed_without_lookup() -> None:
    store = InMemoryDocumentStore()
    store.add("pages", {"id": "P1"})
    store.add_attachment("A", age=STALE, owner={"relationTo": "pages", "value": "P1"}, now=NOW)

    result = await build_reclaimer(store).run()

    assert result.deleted_count == 1
    assert store.lookups == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_owner_with_empty_value_counts_as_ownerless() -> None:
    store = InMemoryDocumentStore()
    store.add_attachment("A", age=STALE, owner={"relationTo": "lessons", "value": None}, now=NOW)

    result = await build_reclaimer(store).run()

    assert result.deleted_count == 1
    assert store.lookups == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_failure_is_skipped_and_loop_continues(caplog) -> None:
    caplog.set_level(logging.INFO)
    store = InMemoryDocumentStore()
    store.add_attachment("first", age=STALE + timedelta(hours=1), now=NOW)
    store.add_attachment("second", age=STALE, now=NOW)
    store.delete_errors["first"] = PermissionError("read-only volume")

    result = await build_reclaimer(store).run()

    assert result.as_output() == {"deletedCount": 1, "skippedCount": 1}
    assert store.ids(ATTACHMENTS) == {"first"}
    [record] = _records(caplog, "attachments.reclaim.delete_failed")
    assert record.attachment_id == "first"
    assert record.error == "read-only volume"
    assert record.reason == "No owner assigned"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_candidate_query_failure_aborts_run(caplog) -> None:
    caplog.set_level(logging.INFO)
    store = InMemoryDocumentStore()
    store.find_error = ConnectionError("store unavailable")

    with pytest.raises(ConnectionError, match="store unavailable"):
        await build_reclaimer(store).run()

    [record] = _records(caplog, "attachments.reclaim.failed")
    assert record.error == "store unavailable"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_summary_log_reports_totals(caplog) -> None:
    caplog.set_level(logging.INFO)
    store = InMemoryDocumentStore()
    store.add("lessons", {"id": "X"})
    store.add_attachment("A", age=STALE, now=NOW)
    store.add_attachment("B", age=STALE, owner={"relationTo": "lessons", "value": "X"}, now=NOW)

    await build_reclaimer(store).run()

    [summary] = _records(caplog, "attachments.reclaim.completed")
    assert (summary.deleted_count, summary.skipped_count, summary.total_processed) == (1, 1, 2)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_dry_run_counts_without_deleting() -> None:
    store = InMemoryDocumentStore()
    store.add_attachment("A", age=STALE, now=NOW)
    store.add_attachment("B", age=STALE, owner={"relationTo": "lessons", "value": "gone"}, now=NOW)

    result = await build_reclaimer(store).run(dry_run=True)

    assert result.dry_run is True
    assert result.deleted_count == 2
    assert store.deleted == []
    assert store.ids(ATTACHMENTS) == {"A", "B"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_shutdown_event_returns_partial_result() -> None:
    store = InMemoryDocumentStore()
    store.add_attachment("A", age=STALE, now=NOW)
    shutdown = asyncio.Event()
    shutdown.set()

    result = await build_reclaimer(store).run(shutdown_event=shutdown)

    assert result.interrupted is True
    assert result.as_output() == {"deletedCount": 0, "skippedCount": 0}
    assert store.ids(ATTACHMENTS) == {"A"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_deadline_stops_before_next_candidate() -> None:
    store = InMemoryDocumentStore()
    for index in range(3):
        store.add_attachment(f"A{index}", age=STALE + timedelta(minutes=index), now=NOW)
    ticks = iter([NOW, NOW, NOW + timedelta(seconds=10)])

    reclaimer = OrphanReclaimer(
        store=store,
        retry=RetryPolicy(attempts=1, backoff_seconds=0.0),
        clock=lambda: next(ticks),
    )
    result = await reclaimer.run(now=NOW, deadline=NOW + timedelta(seconds=5))

    assert result.interrupted is True
    assert result.deleted_count == 2
    assert len(store.ids(ATTACHMENTS)) == 1
