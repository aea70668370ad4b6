"""On-disk storage for file attachment binaries."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from ..config import MediaPaths


@dataclass(slots=True)
class AttachmentFileStore:
    """Keeps attachment payloads under ``<media root>/files``."""

    paths: MediaPaths
    log: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    def path_for(self, filename: str) -> Path:
        return self.paths.files / Path(filename).name

    def save(self, filename: str, data: bytes) -> str:
        """Write ``data`` and return the stored filename (suffixed on collision)."""
        self.paths.files.mkdir(parents=True, exist_ok=True)
        stored = self._available_name(self._derive_filename(filename))
        self.path_for(stored).write_bytes(data)
        return stored

    def remove(self, filename: str) -> bool:
        """Delete the payload; returns ``False`` when it was already gone."""
        path = self.path_for(filename)
        if not path.exists():
            self.log.warning("attachments.storage.missing", extra={"file_name": filename})
            return False
        path.unlink()
        return True

    def _available_name(self, filename: str) -> str:
        candidate = filename
        stem = Path(filename).stem
        suffix = Path(filename).suffix
        counter = 1
        while self.path_for(candidate).exists():
            candidate = f"{stem}-{counter}{suffix}"
            counter += 1
        return candidate

    @staticmethod
    def _derive_filename(filename: str | None) -> str:
        if filename:
            name = Path(filename).name
            stem = Path(name).stem or "upload"
            return f"{stem}{Path(name).suffix}"
        return "upload.bin"
