"""File routes: folder tree listing, upload, download, rename and delete."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from clouddrive.api.deps import get_current_user, get_file_service, get_settings_dep
from clouddrive.config import Settings
from clouddrive.database import get_db
from clouddrive.exceptions import PayloadTooLarge, ValidationFailed
from clouddrive.models.user import User
from clouddrive.schemas.base import MessageResponse
from clouddrive.schemas.files import (
    CreateFolderRequest,
    DownloadUrl,
    FileEntryOut,
    FileListing,
    RenameRequest,
)
from clouddrive.services.file_service import FileService

logger = logging.getLogger(__name__)
router = APIRouter()


def _parent_or_root(parent_id: Optional[str]) -> Optional[str]:
    return parent_id or None


def _format_limit(limit: int) -> str:
    mib = 1024 * 1024
    if limit < mib:
        return f"{limit} bytes"
    return f"{limit // mib} MB"


@router.get("", response_model=FileListing)
async def list_files(
    parent_id: Optional[str] = Query(None, alias="parentId"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    files: FileService = Depends(get_file_service),
):
    """Children of a folder (root when no parentId) plus the breadcrumb to it."""
    parent_id = _parent_or_root(parent_id)
    entries = await files.list_children(db, current_user.id, parent_id)
    path = await files.build_breadcrumb(db, current_user.id, parent_id)
    return {"files": entries, "path": path}


@router.post("/folder", response_model=FileEntryOut, status_code=status.HTTP_201_CREATED)
async def create_folder(
    body: CreateFolderRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    files: FileService = Depends(get_file_service),
):
    return await files.create_folder(
        db, current_user.id, body.name, _parent_or_root(body.parent_id)
    )


@router.post("/upload", response_model=FileEntryOut, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: Optional[UploadFile] = File(None),
    parent_id: Optional[str] = Form(None, alias="parentId"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    files: FileService = Depends(get_file_service),
    app_settings: Settings = Depends(get_settings_dep),
):
    """Single multipart field ``file``, buffered in memory up to the size limit."""
    if file is None:
        raise ValidationFailed("No file uploaded")

    limit = app_settings.max_upload_bytes
    try:
        data = await file.read(limit + 1)
    finally:
        await file.close()
    if len(data) > limit:
        raise PayloadTooLarge(f"File too large. Max {_format_limit(limit)}")

    return await files.upload_file(
        db,
        current_user.id,
        file.filename,
        data,
        content_type=file.content_type,
        parent_id=_parent_or_root(parent_id),
    )


@router.get("/download/{entry_id}", response_model=DownloadUrl)
async def download_file(
    entry_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    files: FileService = Depends(get_file_service),
):
    url = await files.download_url(db, current_user.id, entry_id)
    return DownloadUrl(url=url, expires_in=files.download_url_ttl)


@router.patch("/{entry_id}", response_model=FileEntryOut)
async def rename_entry(
    entry_id: str,
    body: RenameRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    files: FileService = Depends(get_file_service),
):
    return await files.rename(db, current_user.id, entry_id, body.name)


@router.delete("/{entry_id}", response_model=MessageResponse)
async def delete_entry(
    entry_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    files: FileService = Depends(get_file_service),
):
    await files.delete(db, current_user.id, entry_id)
    return MessageResponse(message="Deleted successfully")
