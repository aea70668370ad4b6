"""Ownership hooks linking file attachments to their parent documents."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Iterable

from ..store.document_store import DocumentStore
from .attachment_models import FILE_ATTACHMENTS, OWNER_COLLECTIONS

CASCADE_DELETE_LIMIT = 1000

logger = logging.getLogger(__name__)


def _ensure_owner_collection(collection: str) -> None:
    if collection not in OWNER_COLLECTIONS:
        raise ValueError(
            f"'{collection}' cannot own file attachments (allowed: {', '.join(OWNER_COLLECTIONS)})"
        )


async def assign_owner(
    store: DocumentStore, attachment_id: str, *, collection: str, owner_id: str
) -> None:
    """Point an attachment at its parent document."""
    _ensure_owner_collection(collection)
    await store.update(
        FILE_ATTACHMENTS,
        attachment_id,
        {"owner": {"relationTo": collection, "value": owner_id}},
    )
    logger.info(
        "attachments.owner.assigned",
        extra={"attachment_id": attachment_id, "owner": f"{collection}:{owner_id}"},
    )


async def claim_orphan_attachments(
    store: DocumentStore,
    attachment_ids: Iterable[str],
    *,
    collection: str,
    owner_id: str,
) -> int:
    """Assign attachments uploaded before the parent document had an id.

    Duplicate ids are claimed once. Returns the number of claimed attachments.
    """
    claimed = 0
    seen: set[str] = set()
    for attachment_id in attachment_ids:
        if not attachment_id or attachment_id in seen:
            continue
        seen.add(attachment_id)
        await assign_owner(store, attachment_id, collection=collection, owner_id=owner_id)
        claimed += 1
    return claimed


async def delete_owned_attachments(store: DocumentStore, owner_id: str) -> int:
    """Cascade delete of attachments after their owner was deleted."""
    owned = await store.find(
        FILE_ATTACHMENTS,
        where={"owner.value": {"equals": owner_id}},
        limit=CASCADE_DELETE_LIMIT,
    )
    for doc in owned.docs:
        await store.delete(FILE_ATTACHMENTS, doc["id"])
    if owned.docs:
        logger.info(
            "attachments.owner.cascade_deleted",
            extra={"owner_id": owner_id, "deleted": len(owned.docs)},
        )
    return len(owned.docs)


def owner_delete_hooks() -> dict[str, tuple[Callable[[DocumentStore, str], Awaitable[int]], ...]]:
    """``after_delete`` hooks that cascade owner deletions to their attachments."""
    return {collection: (delete_owned_attachments,) for collection in OWNER_COLLECTIONS}
