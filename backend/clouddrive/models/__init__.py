"""SQLAlchemy ORM models for CloudDrive."""

from clouddrive.models.base import Base
from clouddrive.models.file_entry import EntryKind, FileEntry
from clouddrive.models.user import User

__all__ = [
    "Base",
    "EntryKind",
    "FileEntry",
    "User",
]
