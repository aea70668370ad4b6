"""Document store contracts and the SQLAlchemy-backed implementation."""

from .document_store import Document, DocumentStore, FindResult
from .retry import TRANSIENT_ERRORS, call_with_retries
from .sqlalchemy_store import SqlAlchemyDocumentStore

__all__ = [
    "Document",
    "DocumentStore",
    "FindResult",
    "SqlAlchemyDocumentStore",
    "TRANSIENT_ERRORS",
    "call_with_retries",
]
