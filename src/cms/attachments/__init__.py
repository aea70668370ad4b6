"""File attachment models, storage and ownership hooks."""

from .attachment_models import (
    FILE_ATTACHMENTS,
    OWNER_COLLECTIONS,
    ExpandedOwner,
    FileAttachment,
    Owner,
    OwnerReference,
    owner_id,
    parse_owner,
)

__all__ = [
    "FILE_ATTACHMENTS",
    "OWNER_COLLECTIONS",
    "ExpandedOwner",
    "FileAttachment",
    "Owner",
    "OwnerReference",
    "owner_id",
    "parse_owner",
]
