"""Application configuration builder."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db.db_init import init_db

LOOKUP_ERROR_POLICIES = ("delete", "skip")


@dataclass(slots=True)
class MediaPaths:
    root: Path
    files: Path


@dataclass(slots=True)
class RetryPolicy:
    attempts: int
    backoff_seconds: float


@dataclass(slots=True)
class AppConfig:
    media_paths: MediaPaths
    database_url: str
    engine: Engine
    session_factory: sessionmaker[Session]
    store_retry: RetryPolicy
    owner_lookup_error_policy: str
    reclaim_deadline_seconds: float | None
    scheduler_tick_seconds: float
    jobs_api_token: str | None


def _ensure_media_paths(paths: MediaPaths) -> None:
    paths.root.mkdir(parents=True, exist_ok=True)
    paths.files.mkdir(parents=True, exist_ok=True)


def _lookup_error_policy() -> str:
    policy = os.getenv("OWNER_LOOKUP_ERROR_POLICY", "delete").strip().lower()
    if policy not in LOOKUP_ERROR_POLICIES:
        raise ValueError(
            f"OWNER_LOOKUP_ERROR_POLICY must be one of {', '.join(LOOKUP_ERROR_POLICIES)}, got '{policy}'"
        )
    return policy


def _optional_float(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return float(raw)


def load_config() -> AppConfig:
    """Load configuration from environment (SQLite by default)."""
    root = Path(os.getenv("MEDIA_ROOT", "media"))
    media_paths = MediaPaths(root=root, files=root / "files")
    _ensure_media_paths(media_paths)

    database_url = os.getenv("DATABASE_URL", "sqlite:///cms.db")
    engine = create_engine(database_url, future=True)
    session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)

    store_retry = RetryPolicy(
        attempts=max(1, int(os.getenv("STORE_RETRY_ATTEMPTS", 3))),
        backoff_seconds=max(0.0, float(os.getenv("STORE_RETRY_BACKOFF_SECONDS", 0.5))),
    )

    init_db(engine)

    return AppConfig(
        media_paths=media_paths,
        database_url=database_url,
        engine=engine,
        session_factory=session_factory,
        store_retry=store_retry,
        owner_lookup_error_policy=_lookup_error_policy(),
        reclaim_deadline_seconds=_optional_float("RECLAIM_DEADLINE_SECONDS"),
        scheduler_tick_seconds=float(os.getenv("SCHEDULER_TICK_SECONDS", 30)),
        jobs_api_token=os.getenv("JOBS_API_TOKEN") or None,
    )
