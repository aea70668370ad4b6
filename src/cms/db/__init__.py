"""Database models and utilities for CMS collections."""

from .db_models import Base, FileAttachmentModel, LessonModel, LessonUnitModel

__all__ = [
    "Base",
    "FileAttachmentModel",
    "LessonModel",
    "LessonUnitModel",
]
