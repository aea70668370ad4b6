"""Document store interface consumed by hooks and background jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

Document = dict[str, Any]
Where = Mapping[str, Any]


@dataclass(slots=True)
class FindResult:
    docs: list[Document] = field(default_factory=list)
    limit: int | None = None


class DocumentStore(Protocol):
    """Persistence operations over CMS collections.

    Every operation may fail transiently. ``find_by_id`` and ``delete`` raise
    :class:`~src.cms.exceptions.NotFoundError` for missing documents.
    """

    async def find(
        self,
        collection: str,
        *,
        where: Where | None = None,
        limit: int | None = None,
        depth: int = 0,
    ) -> FindResult:
        """Return documents matching ``where`` ordered by creation time."""

    async def find_by_id(self, collection: str, id: str, *, depth: int = 0) -> Document | None:
        """Return a single document."""

    async def update(self, collection: str, id: str, data: Mapping[str, Any]) -> Document:
        """Apply ``data`` to an existing document and return it."""

    async def delete(self, collection: str, id: str) -> None:
        """Remove a document (and its binary for upload collections)."""
