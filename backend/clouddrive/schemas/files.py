"""File tree schemas."""

from datetime import datetime

from pydantic import Field

from clouddrive.models.file_entry import EntryKind
from clouddrive.schemas.base import ApiModel


class FileEntryOut(ApiModel):
    """A file or folder as returned by the API."""
    id: str
    name: str
    kind: EntryKind
    size: int = 0
    mime_type: str | None = None
    blob_key: str | None = None
    blob_location: str | None = None
    parent_id: str | None = None
    owner_id: str
    is_deleted: bool = False
    created_at: datetime
    updated_at: datetime


class PathItem(ApiModel):
    """One breadcrumb step."""
    id: str
    name: str


class FileListing(ApiModel):
    files: list[FileEntryOut]
    path: list[PathItem]


class CreateFolderRequest(ApiModel):
    name: str = ""
    parent_id: str | None = None


class RenameRequest(ApiModel):
    name: str = ""


class DownloadUrl(ApiModel):
    url: str
    expires_in: int = Field(description="Seconds until the URL stops working")
