"""File entry model: one row per file or folder in a user's tree."""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from clouddrive.models.base import Base, new_id, utcnow


class EntryKind(str, enum.Enum):
    FILE = "file"
    FOLDER = "folder"


class FileEntry(Base):
    """A file or folder.

    The hierarchy is a parent pointer (``parent_id``) to another entry of
    kind folder; ``None`` means root level. Rows are never hard-deleted,
    removal flips ``is_deleted``.
    """

    __tablename__ = "file_entries"
    __table_args__ = (
        Index("ix_file_entries_owner_parent", "owner_id", "parent_id"),
        Index("ix_file_entries_owner_deleted", "owner_id", "is_deleted"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[EntryKind] = mapped_column(
        Enum(
            EntryKind,
            native_enum=False,
            length=16,
            values_callable=lambda kinds: [k.value for k in kinds],
        ),
        nullable=False,
    )
    size: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    mime_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    blob_key: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    blob_location: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # No FK on parent_id: subtree removal is an explicit walk, not a cascade
    parent_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    owner_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    @property
    def is_folder(self) -> bool:
        return self.kind is EntryKind.FOLDER

    def __repr__(self) -> str:
        return f"<FileEntry(id={self.id}, kind={self.kind.value}, name='{self.name}')>"
