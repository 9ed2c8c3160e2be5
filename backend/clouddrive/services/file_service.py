"""File tree operations: listing, breadcrumbs, uploads and subtree deletion."""

from __future__ import annotations

import logging
import mimetypes
import uuid
from pathlib import PurePath

from sqlalchemy import case, select
from sqlalchemy.ext.asyncio import AsyncSession

from clouddrive.exceptions import BlobStoreError, NotFound, ValidationFailed
from clouddrive.models.file_entry import EntryKind, FileEntry
from clouddrive.services.blob_store import BlobStore

logger = logging.getLogger(__name__)


def clean_name(name: str | None) -> str:
    return (name or "").strip()


def guess_mime(filename: str, declared: str | None) -> str:
    guess, _ = mimetypes.guess_type(filename)
    return declared or guess or "application/octet-stream"


def make_blob_key(owner_id: str, filename: str) -> str:
    """``{owner}/{uuid}{.ext}``, keeping the upload's extension."""
    suffix = PurePath(filename).suffix
    return f"{owner_id}/{uuid.uuid4()}{suffix}"


class FileService:
    """Operations on one owner's file tree.

    Every lookup is scoped to ``owner_id`` and skips soft-deleted rows, so
    a foreign or deleted id behaves exactly like an unknown one.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        max_path_depth: int = 256,
        download_url_ttl: int = 3600,
    ):
        self._blobs = blob_store
        self._max_path_depth = max_path_depth
        self._download_url_ttl = download_url_ttl

    # === LOOKUPS ===

    async def get_entry(
        self,
        db: AsyncSession,
        entry_id: str,
        owner_id: str,
        kind: EntryKind | None = None,
    ) -> FileEntry | None:
        stmt = select(FileEntry).where(
            FileEntry.id == entry_id,
            FileEntry.owner_id == owner_id,
            FileEntry.is_deleted.is_(False),
        )
        if kind is not None:
            stmt = stmt.where(FileEntry.kind == kind)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def _require_parent(self, db: AsyncSession, parent_id: str | None, owner_id: str) -> None:
        if parent_id is None:
            return
        if await self.get_entry(db, parent_id, owner_id, EntryKind.FOLDER) is None:
            raise NotFound("Parent folder not found")

    async def _live_children(self, db: AsyncSession, folder_id: str, owner_id: str) -> list[FileEntry]:
        result = await db.execute(
            select(FileEntry).where(
                FileEntry.parent_id == folder_id,
                FileEntry.owner_id == owner_id,
                FileEntry.is_deleted.is_(False),
            )
        )
        return list(result.scalars().all())

    # === LISTING ===

    async def list_children(
        self, db: AsyncSession, owner_id: str, parent_id: str | None = None
    ) -> list[FileEntry]:
        """Direct children of ``parent_id`` (root when None), folders first, then by name.

        Names compare with SQLite's BINARY collation, i.e. case-sensitively.
        """
        parent_clause = (
            FileEntry.parent_id.is_(None) if parent_id is None else FileEntry.parent_id == parent_id
        )
        folders_first = case((FileEntry.kind == EntryKind.FOLDER, 0), else_=1)
        result = await db.execute(
            select(FileEntry)
            .where(
                FileEntry.owner_id == owner_id,
                parent_clause,
                FileEntry.is_deleted.is_(False),
            )
            .order_by(folders_first, FileEntry.name)
        )
        return list(result.scalars().all())

    async def build_breadcrumb(
        self, db: AsyncSession, owner_id: str, parent_id: str | None
    ) -> list[dict[str, str]]:
        """Ancestors from the root down to ``parent_id`` as ``{id, name}`` dicts.

        Stops at the first missing or deleted folder. Parent pointers are
        not guaranteed acyclic, so the walk also stops on a repeated id or
        after ``max_path_depth`` steps, returning what it has so far.
        """
        path: list[dict[str, str]] = []
        seen: set[str] = set()
        current_id = parent_id

        while current_id is not None:
            if current_id in seen:
                logger.warning("Cycle in folder parents at %s (owner %s)", current_id, owner_id)
                break
            if len(path) >= self._max_path_depth:
                logger.warning(
                    "Breadcrumb for %s exceeded %d levels (owner %s)",
                    parent_id, self._max_path_depth, owner_id,
                )
                break
            seen.add(current_id)

            folder = await self.get_entry(db, current_id, owner_id, EntryKind.FOLDER)
            if folder is None:
                break
            path.insert(0, {"id": folder.id, "name": folder.name})
            current_id = folder.parent_id

        return path

    # === CREATION ===

    async def create_folder(
        self, db: AsyncSession, owner_id: str, name: str | None, parent_id: str | None = None
    ) -> FileEntry:
        name = clean_name(name)
        if not name:
            raise ValidationFailed("Folder name is required")
        await self._require_parent(db, parent_id, owner_id)

        parent_clause = (
            FileEntry.parent_id.is_(None) if parent_id is None else FileEntry.parent_id == parent_id
        )
        clash = await db.execute(
            select(FileEntry.id).where(
                FileEntry.owner_id == owner_id,
                parent_clause,
                FileEntry.name == name,
                FileEntry.kind == EntryKind.FOLDER,
                FileEntry.is_deleted.is_(False),
            )
        )
        if clash.first() is not None:
            raise ValidationFailed("A folder with this name already exists")

        folder = FileEntry(
            name=name,
            kind=EntryKind.FOLDER,
            size=0,
            parent_id=parent_id,
            owner_id=owner_id,
        )
        db.add(folder)
        await db.commit()
        await db.refresh(folder)
        logger.info("Created folder %s '%s' (owner %s)", folder.id, name, owner_id)
        return folder

    async def upload_file(
        self,
        db: AsyncSession,
        owner_id: str,
        filename: str | None,
        data: bytes,
        content_type: str | None = None,
        parent_id: str | None = None,
    ) -> FileEntry:
        """Push ``data`` to the blob store, then record it in the tree."""
        name = clean_name(PurePath(filename or "").name)
        if not name:
            raise ValidationFailed("No file uploaded")
        await self._require_parent(db, parent_id, owner_id)

        mime = guess_mime(name, content_type)
        key = make_blob_key(owner_id, name)
        await self._blobs.put(key, data, mime)

        entry = FileEntry(
            name=name,
            kind=EntryKind.FILE,
            size=len(data),
            mime_type=mime,
            blob_key=key,
            blob_location=self._blobs.location_for(key),
            parent_id=parent_id,
            owner_id=owner_id,
        )
        db.add(entry)
        await db.commit()
        await db.refresh(entry)
        logger.info("Uploaded %s '%s' (%d bytes, owner %s)", entry.id, name, len(data), owner_id)
        return entry

    # === DOWNLOAD / RENAME / DELETE ===

    async def download_url(self, db: AsyncSession, owner_id: str, entry_id: str) -> str:
        entry = await self.get_entry(db, entry_id, owner_id, EntryKind.FILE)
        if entry is None or not entry.blob_key:
            raise NotFound("File not found")
        return await self._blobs.presigned_get_url(entry.blob_key, self._download_url_ttl)

    @property
    def download_url_ttl(self) -> int:
        return self._download_url_ttl

    async def rename(self, db: AsyncSession, owner_id: str, entry_id: str, name: str | None) -> FileEntry:
        # TODO: reject sibling folder-name clashes like create_folder does
        name = clean_name(name)
        if not name:
            raise ValidationFailed("Name is required")
        entry = await self.get_entry(db, entry_id, owner_id)
        if entry is None:
            raise NotFound("File or folder not found")
        entry.name = name
        await db.commit()
        await db.refresh(entry)
        return entry

    async def delete(self, db: AsyncSession, owner_id: str, entry_id: str) -> None:
        """Soft-delete one entry; a folder takes its whole subtree with it."""
        entry = await self.get_entry(db, entry_id, owner_id)
        if entry is None:
            raise NotFound("File or folder not found")

        if entry.is_folder:
            await self.delete_subtree(db, entry.id, owner_id)
        elif entry.blob_key:
            await self._discard_blob(entry.blob_key)

        entry.is_deleted = True
        await db.commit()
        logger.info("Deleted %s %s (owner %s)", entry.kind.value, entry.id, owner_id)

    async def delete_subtree(
        self,
        db: AsyncSession,
        folder_id: str,
        owner_id: str,
        _visited: set[str] | None = None,
    ) -> None:
        """Soft-delete every live descendant of ``folder_id``, deepest first.

        The folder itself is left for the caller. Blob removal is best
        effort; a failed commit propagates and stops the walk, leaving what
        was already committed in place. Already-deleted rows are skipped, so
        running it again on the same folder is harmless.
        """
        visited = _visited if _visited is not None else set()
        visited.add(folder_id)

        for child in await self._live_children(db, folder_id, owner_id):
            if child.is_folder:
                if child.id in visited:
                    logger.warning("Cycle in folder parents at %s (owner %s)", child.id, owner_id)
                    continue
                await self.delete_subtree(db, child.id, owner_id, visited)
            elif child.blob_key:
                await self._discard_blob(child.blob_key)

            child.is_deleted = True
            await db.commit()

    async def _discard_blob(self, key: str) -> None:
        try:
            await self._blobs.delete(key)
        except BlobStoreError:
            # The row is still marked deleted; the object is left orphaned.
            logger.exception("Blob delete failed for %s", key)
