"""File attachment data models and owner reference helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Union

FILE_ATTACHMENTS = "file-attachments"
LESSONS = "lessons"
LESSON_UNITS = "lesson-units"

OWNER_COLLECTIONS: tuple[str, ...] = (LESSONS, LESSON_UNITS)

ALLOWED_MIME_TYPES: tuple[str, ...] = (
    "application/pdf",
    "audio/mpeg",
    "video/mpeg",
    "video/mp4",
    "image/webp",
)


@dataclass(frozen=True, slots=True)
class OwnerReference:
    """Owner stored as a bare document id (depth 0)."""

    collection: str
    id: str


@dataclass(frozen=True, slots=True)
class ExpandedOwner:
    """Owner whose document was expanded by the store (depth >= 1)."""

    collection: str
    id: str
    snapshot: Mapping[str, Any] = field(default_factory=dict)


Owner = Union[OwnerReference, ExpandedOwner]


def owner_id(owner: Owner) -> str:
    return owner.id


def parse_owner(raw: Mapping[str, Any] | None) -> Owner | None:
    """Turn the stored ``{relationTo, value}`` shape into an owner reference.

    Returns ``None`` when there is no owner or its value is empty, which is
    what an unclaimed attachment looks like.
    """
    if not raw:
        return None
    collection = raw.get("relationTo")
    value = raw.get("value")
    if not value or not collection:
        return None
    if isinstance(value, Mapping):
        expanded_id = value.get("id")
        if not expanded_id:
            return None
        return ExpandedOwner(collection=str(collection), id=str(expanded_id), snapshot=dict(value))
    return OwnerReference(collection=str(collection), id=str(value))


def parse_timestamp(value: datetime | str | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass(slots=True)
class FileAttachment:
    id: str
    filename: str
    created_at: datetime | None
    owner: Owner | None = None
    mime_type: str | None = None
    filesize: int | None = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "FileAttachment":
        return cls(
            id=str(doc["id"]),
            filename=str(doc.get("filename") or ""),
            created_at=parse_timestamp(doc.get("createdAt")),
            owner=parse_owner(doc.get("owner")),
            mime_type=doc.get("mimeType"),
            filesize=doc.get("filesize"),
        )
