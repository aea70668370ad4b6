from __future__ import annotations

import logging

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.cms.attachments.attachment_storage import AttachmentFileStore
from src.cms.config import MediaPaths
from src.cms.db.db_init import init_db
from src.cms.store.sqlalchemy_store import SqlAlchemyDocumentStore


@pytest.fixture
def media_paths(tmp_path) -> MediaPaths:
    paths = MediaPaths(root=tmp_path / "media", files=tmp_path / "media" / "files")
    paths.files.mkdir(parents=True)
    return paths


@pytest.fixture
def session_factory(tmp_path):
    # file-backed so worker threads share one database
    engine = create_engine(f"sqlite:///{tmp_path / 'cms.db'}", future=True)
    init_db(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def file_store(media_paths) -> AttachmentFileStore:
    return AttachmentFileStore(media_paths)


@pytest.fixture
def sql_store(session_factory, file_store) -> SqlAlchemyDocumentStore:
    return SqlAlchemyDocumentStore(session_factory, file_store=file_store)


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
