"""SQLAlchemy-backed document store for CMS collections."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..attachments.attachment_models import (
    ALLOWED_MIME_TYPES,
    FILE_ATTACHMENTS,
    LESSON_UNITS,
    LESSONS,
)
from ..attachments.attachment_storage import AttachmentFileStore
from ..db.db_models import Base, FileAttachmentModel, LessonModel, LessonUnitModel
from ..exceptions import (
    InvalidDocumentError,
    NotFoundError,
    UnknownCollectionError,
    ensure_found,
    handle_sqlalchemy_errors,
)
from .document_store import Document, FindResult, Where
from .where import build_where, to_naive_utc

T = TypeVar("T")

# Awaited after a document is deleted, with the store and the deleted id.
DeleteHook = Callable[[Any, str], Awaitable[Any]]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CollectionBinding:
    slug: str
    model: type[Base]
    fields: Mapping[str, Any]
    writable: frozenset[str]


def _timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat()


def _parse_timestamp(value: datetime | str) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return to_naive_utc(value)


def _default_bindings() -> dict[str, CollectionBinding]:
    attachment = FileAttachmentModel
    bindings = {
        FILE_ATTACHMENTS: CollectionBinding(
            slug=FILE_ATTACHMENTS,
            model=FileAttachmentModel,
            fields={
                "id": attachment.id,
                "filename": attachment.filename,
                "mimeType": attachment.mime_type,
                "filesize": attachment.filesize,
                "owner": attachment.owner_id,
                "owner.value": attachment.owner_id,
                "owner.relationTo": attachment.owner_collection,
                "createdAt": attachment.created_at,
                "updatedAt": attachment.updated_at,
            },
            writable=frozenset({"filename", "mimeType", "filesize", "owner", "createdAt"}),
        ),
    }
    for slug, model in ((LESSONS, LessonModel), (LESSON_UNITS, LessonUnitModel)):
        bindings[slug] = CollectionBinding(
            slug=slug,
            model=model,
            fields={
                "id": model.id,
                "title": model.title,
                "createdAt": model.created_at,
                "updatedAt": model.updated_at,
            },
            writable=frozenset({"title", "createdAt"}),
        )
    return bindings


class SqlAlchemyDocumentStore:
    """Document store over SQLAlchemy sessions.

    Sessions are synchronous; every public method runs its work in a worker
    thread so the event loop is never blocked.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        file_store: AttachmentFileStore | None = None,
        after_delete: Mapping[str, Sequence[DeleteHook]] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._file_store = file_store
        self._bindings = _default_bindings()
        self._after_delete: dict[str, tuple[DeleteHook, ...]] = {}
        for collection, hooks in (after_delete or {}).items():
            self._binding(collection)
            self._after_delete[collection] = tuple(hooks)

    @property
    def collections(self) -> tuple[str, ...]:
        return tuple(self._bindings)

    async def find(
        self,
        collection: str,
        *,
        where: Where | None = None,
        limit: int | None = None,
        depth: int = 0,
    ) -> FindResult:
        return await self._run_sync(self._find, collection, where, limit, depth)

    async def find_by_id(self, collection: str, id: str, *, depth: int = 0) -> Document | None:
        return await self._run_sync(self._find_by_id, collection, id, depth)

    async def create(self, collection: str, data: Mapping[str, Any]) -> Document:
        return await self._run_sync(self._create, collection, data)

    async def update(self, collection: str, id: str, data: Mapping[str, Any]) -> Document:
        return await self._run_sync(self._update, collection, id, data)

    async def delete(self, collection: str, id: str) -> None:
        """Delete a document, then run the collection's ``after_delete`` hooks."""
        await self._run_sync(self._delete, collection, id)
        for hook in self._after_delete.get(collection, ()):
            await hook(self, id)

    @staticmethod
    async def _run_sync(func_: Callable[..., T], /, *args: Any) -> T:
        return await asyncio.to_thread(func_, *args)

    def _binding(self, collection: str) -> CollectionBinding:
        binding = self._bindings.get(collection)
        if binding is None:
            raise UnknownCollectionError(f"collection '{collection}' is not registered")
        return binding

    # ------------------------------------------------------------------
    # Synchronous implementations
    # ------------------------------------------------------------------
    def _find(
        self, collection: str, where: Where | None, limit: int | None, depth: int
    ) -> FindResult:
        binding = self._binding(collection)
        clause = build_where(where, binding.fields)
        with handle_sqlalchemy_errors(entity=collection), self._session_factory() as session:
            query = (
                select(binding.model)
                .where(clause)
                .order_by(binding.model.created_at.asc(), binding.model.id.asc())
            )
            if limit is not None and limit > 0:
                query = query.limit(limit)
            rows = session.scalars(query).all()
            docs = [self._to_document(session, binding, row, depth) for row in rows]
        return FindResult(docs=docs, limit=limit)

    def _find_by_id(self, collection: str, id: str, depth: int) -> Document:
        binding = self._binding(collection)
        with handle_sqlalchemy_errors(entity=collection), self._session_factory() as session:
            row = ensure_found(session.get(binding.model, id), entity=collection, identifier=id)
            return self._to_document(session, binding, row, depth)

    def _create(self, collection: str, data: Mapping[str, Any]) -> Document:
        binding = self._binding(collection)
        doc_id = str(data.get("id") or uuid.uuid4().hex)
        now = datetime.utcnow()
        with handle_sqlalchemy_errors(entity=collection), self._session_factory() as session:
            row = binding.model(id=doc_id, created_at=now, updated_at=now)
            if binding.model is FileAttachmentModel and "filename" not in data:
                raise InvalidDocumentError("file attachments require a filename")
            self._apply(binding, row, data)
            session.add(row)
            session.commit()
            return self._to_document(session, binding, row, 0)

    def _update(self, collection: str, id: str, data: Mapping[str, Any]) -> Document:
        binding = self._binding(collection)
        with handle_sqlalchemy_errors(entity=collection), self._session_factory() as session:
            row = ensure_found(session.get(binding.model, id), entity=collection, identifier=id)
            self._apply(binding, row, data)
            row.updated_at = datetime.utcnow()
            session.commit()
            return self._to_document(session, binding, row, 0)

    def _delete(self, collection: str, id: str) -> None:
        binding = self._binding(collection)
        filename: str | None = None
        with handle_sqlalchemy_errors(entity=collection), self._session_factory() as session:
            row = session.get(binding.model, id)
            if row is None:
                raise NotFoundError(f"{collection} '{id}' not found")
            if isinstance(row, FileAttachmentModel):
                filename = row.filename
            session.delete(row)
            session.flush()
            # an OSError here rolls the row back so a later run can retry it
            if filename and self._file_store is not None:
                self._file_store.remove(filename)
            session.commit()
        logger.debug("store.deleted", extra={"collection": collection, "doc_id": id})

    def _apply(self, binding: CollectionBinding, row: Any, data: Mapping[str, Any]) -> None:
        unknown = set(data) - binding.writable - {"id"}
        if unknown:
            raise InvalidDocumentError(
                f"{binding.slug}: fields not writable: {', '.join(sorted(unknown))}"
            )
        mime_type = data.get("mimeType")
        if mime_type is not None and mime_type not in ALLOWED_MIME_TYPES:
            raise InvalidDocumentError(
                f"{binding.slug}: mime type '{mime_type}' is not allowed"
            )
        for key, value in data.items():
            if key == "id":
                continue
            if key == "owner":
                self._apply_owner(row, value)
            elif key == "createdAt":
                row.created_at = _parse_timestamp(value)
            elif key == "mimeType":
                row.mime_type = value
            else:
                setattr(row, key, value)

    def _apply_owner(self, row: FileAttachmentModel, owner: Mapping[str, Any] | None) -> None:
        if not owner or not owner.get("value"):
            row.owner_collection = None
            row.owner_id = None
            return
        collection = owner.get("relationTo")
        value = owner["value"]
        if isinstance(value, Mapping):
            value = value.get("id")
        self._binding(str(collection))
        row.owner_collection = str(collection)
        row.owner_id = str(value)

    def _to_document(
        self, session: Session, binding: CollectionBinding, row: Any, depth: int
    ) -> Document:
        doc: Document = {
            "id": row.id,
            "createdAt": _timestamp(row.created_at),
            "updatedAt": _timestamp(row.updated_at),
        }
        if isinstance(row, FileAttachmentModel):
            doc.update(
                filename=row.filename,
                mimeType=row.mime_type,
                filesize=row.filesize,
                owner=self._owner_document(session, row, depth),
            )
        else:
            doc["title"] = row.title
        return doc

    def _owner_document(
        self, session: Session, row: FileAttachmentModel, depth: int
    ) -> dict[str, Any] | None:
        if row.owner_collection is None and row.owner_id is None:
            return None
        value: Any = row.owner_id
        if depth > 0 and row.owner_collection in self._bindings and row.owner_id:
            owner_binding = self._bindings[row.owner_collection]
            owner_row = session.get(owner_binding.model, row.owner_id)
            if owner_row is not None:
                value = self._to_document(session, owner_binding, owner_row, depth - 1)
        return {"relationTo": row.owner_collection, "value": value}
