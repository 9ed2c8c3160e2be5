"""Tests for the file tree service: subtree deletion, breadcrumbs, listing, rename."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from clouddrive.exceptions import BlobStoreError, NotFound, ValidationFailed
from clouddrive.models import EntryKind, FileEntry, User
from clouddrive.services.blob_store import BlobStore
from clouddrive.services.file_service import FileService, make_blob_key

from conftest import make_user


@pytest.fixture
def blobs():
    store = MagicMock(spec=BlobStore)
    store.put = AsyncMock()
    store.delete = AsyncMock()
    store.presigned_get_url = AsyncMock(return_value="https://signed.example.com/x")
    store.location_for.side_effect = lambda key: f"https://bucket.example.com/{key}"
    return store


@pytest.fixture
def service(blobs):
    return FileService(blobs, max_path_depth=16, download_url_ttl=3600)


async def _folder(db: AsyncSession, owner: User, name: str, parent: FileEntry | None = None) -> FileEntry:
    entry = FileEntry(
        name=name,
        kind=EntryKind.FOLDER,
        parent_id=parent.id if parent else None,
        owner_id=owner.id,
    )
    db.add(entry)
    await db.commit()
    return entry


async def _file(
    db: AsyncSession,
    owner: User,
    name: str,
    parent: FileEntry | None = None,
    blob_key: str | None = None,
) -> FileEntry:
    entry = FileEntry(
        name=name,
        kind=EntryKind.FILE,
        size=3,
        mime_type="text/plain",
        blob_key=blob_key,
        parent_id=parent.id if parent else None,
        owner_id=owner.id,
    )
    db.add(entry)
    await db.commit()
    return entry


async def _reload(db: AsyncSession, entry: FileEntry) -> FileEntry:
    await db.refresh(entry)
    return entry


class TestSubtreeDeletion:
    @pytest.mark.asyncio
    async def test_nested_folder_and_file_all_deleted(self, db_session, service, blobs, user):
        a = await _folder(db_session, user, "A")
        b = await _folder(db_session, user, "B", a)
        f1 = await _file(db_session, user, "f1.txt", b, blob_key="k1")

        await service.delete(db_session, user.id, a.id)

        for entry in (a, b, f1):
            assert (await _reload(db_session, entry)).is_deleted is True
        blobs.delete.assert_awaited_once_with("k1")

    @pytest.mark.asyncio
    async def test_every_blob_gets_one_delete_attempt(self, db_session, service, blobs, user):
        root = await _folder(db_session, user, "root")
        sub = await _folder(db_session, user, "sub", root)
        deeper = await _folder(db_session, user, "deeper", sub)
        await _file(db_session, user, "a.txt", root, blob_key="ka")
        await _file(db_session, user, "b.txt", sub, blob_key="kb")
        await _file(db_session, user, "c.txt", deeper, blob_key="kc")
        await _file(db_session, user, "empty.txt", deeper)

        await service.delete(db_session, user.id, root.id)

        keys = sorted(call.args[0] for call in blobs.delete.await_args_list)
        assert keys == ["ka", "kb", "kc"]
        result = await db_session.execute(
            select(FileEntry).where(FileEntry.owner_id == user.id, FileEntry.is_deleted.is_(False))
        )
        assert result.scalars().all() == []

    @pytest.mark.asyncio
    async def test_descendants_deleted_before_their_parents(self, db_session, service, user):
        a = await _folder(db_session, user, "A")
        b = await _folder(db_session, user, "B", a)
        c = await _file(db_session, user, "c.txt", b, blob_key="kc")

        order: list[str] = []
        real_commit = AsyncSession.commit

        async def _tracking_commit(session):
            for entry in (b, c):
                if entry.is_deleted and entry.id not in order:
                    order.append(entry.id)
            await real_commit(session)

        with patch.object(AsyncSession, "commit", _tracking_commit):
            await service.delete_subtree(db_session, a.id, user.id)

        assert order == [c.id, b.id]
        # The walk leaves the root for the caller
        assert (await _reload(db_session, a)).is_deleted is False

    @pytest.mark.asyncio
    async def test_blob_failure_is_swallowed(self, db_session, service, blobs, user):
        a = await _folder(db_session, user, "A")
        f1 = await _file(db_session, user, "f1.txt", a, blob_key="k1")
        f2 = await _file(db_session, user, "f2.txt", a, blob_key="k2")
        blobs.delete.side_effect = BlobStoreError("S3 unavailable")

        await service.delete(db_session, user.id, a.id)

        assert blobs.delete.await_count == 2
        for entry in (a, f1, f2):
            assert (await _reload(db_session, entry)).is_deleted is True

    @pytest.mark.asyncio
    async def test_store_failure_aborts_walk(self, db_session, service, user):
        a = await _folder(db_session, user, "A")
        await _file(db_session, user, "f1.txt", a, blob_key="k1")

        failing = AsyncMock(side_effect=OperationalError("UPDATE", {}, Exception("disk I/O")))
        with patch.object(AsyncSession, "commit", failing), pytest.raises(OperationalError):
            await service.delete(db_session, user.id, a.id)
        failing.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_second_delete_is_idempotent(self, db_session, service, blobs, user):
        a = await _folder(db_session, user, "A")
        await _file(db_session, user, "f1.txt", a, blob_key="k1")

        await service.delete_subtree(db_session, a.id, user.id)
        await service.delete_subtree(db_session, a.id, user.id)

        blobs.delete.assert_awaited_once_with("k1")

    @pytest.mark.asyncio
    async def test_deleting_twice_through_api_reports_not_found(self, db_session, service, user):
        a = await _folder(db_session, user, "A")
        await service.delete(db_session, user.id, a.id)

        with pytest.raises(NotFound):
            await service.delete(db_session, user.id, a.id)

    @pytest.mark.asyncio
    async def test_other_owners_children_untouched(self, db_session, service, user):
        bob = await make_user(db_session, email="bob@example.com")
        a = await _folder(db_session, user, "A")
        intruder = await _file(db_session, bob, "bob.txt", a, blob_key="kb")

        await service.delete(db_session, user.id, a.id)

        assert (await _reload(db_session, intruder)).is_deleted is False

    @pytest.mark.asyncio
    async def test_cycle_does_not_recurse_forever(self, db_session, service, user):
        a = await _folder(db_session, user, "A")
        b = await _folder(db_session, user, "B", a)
        # Corrupt the tree: A's parent is its own child
        a.parent_id = b.id
        await db_session.commit()

        await service.delete(db_session, user.id, a.id)

        assert (await _reload(db_session, a)).is_deleted is True
        assert (await _reload(db_session, b)).is_deleted is True

    @pytest.mark.asyncio
    async def test_single_file_delete_removes_blob(self, db_session, service, blobs, user):
        f = await _file(db_session, user, "solo.txt", blob_key="solo")

        await service.delete(db_session, user.id, f.id)

        blobs.delete.assert_awaited_once_with("solo")
        assert (await _reload(db_session, f)).is_deleted is True


class TestBreadcrumb:
    @pytest.mark.asyncio
    async def test_root_has_empty_path(self, db_session, service, user):
        assert await service.build_breadcrumb(db_session, user.id, None) == []

    @pytest.mark.asyncio
    async def test_depth_k_returns_k_ancestors_root_first(self, db_session, service, user):
        a = await _folder(db_session, user, "A")
        b = await _folder(db_session, user, "B", a)
        c = await _folder(db_session, user, "C", b)

        path = await service.build_breadcrumb(db_session, user.id, c.id)

        assert path == [
            {"id": a.id, "name": "A"},
            {"id": b.id, "name": "B"},
            {"id": c.id, "name": "C"},
        ]

    @pytest.mark.asyncio
    async def test_cycle_is_cut(self, db_session, service, user):
        a = await _folder(db_session, user, "A")
        b = await _folder(db_session, user, "B", a)
        a.parent_id = b.id
        await db_session.commit()

        path = await service.build_breadcrumb(db_session, user.id, b.id)

        assert [p["name"] for p in path] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_depth_bound(self, db_session, blobs, user):
        shallow = FileService(blobs, max_path_depth=2)
        a = await _folder(db_session, user, "A")
        b = await _folder(db_session, user, "B", a)
        c = await _folder(db_session, user, "C", b)

        path = await shallow.build_breadcrumb(db_session, user.id, c.id)

        assert [p["name"] for p in path] == ["B", "C"]

    @pytest.mark.asyncio
    async def test_stops_at_deleted_ancestor(self, db_session, service, user):
        a = await _folder(db_session, user, "A")
        b = await _folder(db_session, user, "B", a)
        a.is_deleted = True
        await db_session.commit()

        path = await service.build_breadcrumb(db_session, user.id, b.id)

        assert [p["name"] for p in path] == ["B"]


class TestListing:
    @pytest.mark.asyncio
    async def test_root_listing_only_root_entries(self, db_session, service, user):
        a = await _folder(db_session, user, "A")
        await _file(db_session, user, "nested.txt", a)
        top = await _file(db_session, user, "top.txt")

        entries = await service.list_children(db_session, user.id, None)

        assert [e.id for e in entries] == [a.id, top.id]
        assert all(e.parent_id is None for e in entries)

    @pytest.mark.asyncio
    async def test_folders_first_then_name(self, db_session, service, user):
        await _file(db_session, user, "alpha.txt")
        await _folder(db_session, user, "zeta")
        await _folder(db_session, user, "Beta")
        await _file(db_session, user, "Apple.txt")

        names = [e.name for e in await service.list_children(db_session, user.id)]

        assert names == ["Beta", "zeta", "Apple.txt", "alpha.txt"]

    @pytest.mark.asyncio
    async def test_deleted_and_foreign_entries_hidden(self, db_session, service, user):
        bob = await make_user(db_session, email="bob@example.com")
        gone = await _file(db_session, user, "gone.txt")
        gone.is_deleted = True
        await db_session.commit()
        await _file(db_session, bob, "bobs.txt")

        assert await service.list_children(db_session, user.id) == []


class TestCreateAndRename:
    @pytest.mark.asyncio
    async def test_create_folder_trims_name(self, db_session, service, user):
        folder = await service.create_folder(db_session, user.id, "  Docs  ")
        assert folder.name == "Docs"
        assert folder.kind is EntryKind.FOLDER
        assert folder.size == 0

    @pytest.mark.asyncio
    async def test_create_folder_rejects_blank(self, db_session, service, user):
        with pytest.raises(ValidationFailed):
            await service.create_folder(db_session, user.id, "   ")

    @pytest.mark.asyncio
    async def test_create_folder_rejects_sibling_clash(self, db_session, service, user):
        await service.create_folder(db_session, user.id, "Docs")
        with pytest.raises(ValidationFailed):
            await service.create_folder(db_session, user.id, "Docs")

    @pytest.mark.asyncio
    async def test_same_name_allowed_after_delete(self, db_session, service, user):
        first = await service.create_folder(db_session, user.id, "Docs")
        await service.delete(db_session, user.id, first.id)
        second = await service.create_folder(db_session, user.id, "Docs")
        assert second.id != first.id

    @pytest.mark.asyncio
    async def test_create_folder_in_foreign_parent(self, db_session, service, user):
        bob = await make_user(db_session, email="bob@example.com")
        bobs = await _folder(db_session, bob, "Bob's")
        with pytest.raises(NotFound):
            await service.create_folder(db_session, user.id, "Mine", bobs.id)

    @pytest.mark.asyncio
    async def test_rename_trims(self, db_session, service, user):
        f = await _file(db_session, user, "old.txt")
        renamed = await service.rename(db_session, user.id, f.id, "  new.txt ")
        assert renamed.name == "new.txt"

    @pytest.mark.asyncio
    async def test_rename_blank_rejected(self, db_session, service, user):
        f = await _file(db_session, user, "old.txt")
        with pytest.raises(ValidationFailed):
            await service.rename(db_session, user.id, f.id, "")

    @pytest.mark.asyncio
    async def test_rename_deleted_or_foreign_not_found(self, db_session, service, user):
        bob = await make_user(db_session, email="bob@example.com")
        bobs = await _file(db_session, bob, "b.txt")
        gone = await _file(db_session, user, "gone.txt")
        gone.is_deleted = True
        await db_session.commit()

        for entry_id in (bobs.id, gone.id):
            with pytest.raises(NotFound):
                await service.rename(db_session, user.id, entry_id, "x")

    @pytest.mark.asyncio
    async def test_rename_does_not_check_sibling_clash(self, db_session, service, user):
        await service.create_folder(db_session, user.id, "Docs")
        other = await service.create_folder(db_session, user.id, "Other")
        renamed = await service.rename(db_session, user.id, other.id, "Docs")
        assert renamed.name == "Docs"


class TestUploadAndDownload:
    @pytest.mark.asyncio
    async def test_upload_stores_blob_then_row(self, db_session, service, blobs, user):
        entry = await service.upload_file(
            db_session, user.id, "report.pdf", b"%PDF-1.4", content_type="application/pdf"
        )

        key = blobs.put.await_args.args[0]
        assert key.startswith(f"{user.id}/") and key.endswith(".pdf")
        blobs.put.assert_awaited_once_with(key, b"%PDF-1.4", "application/pdf")
        assert entry.blob_key == key
        assert entry.blob_location == f"https://bucket.example.com/{key}"
        assert entry.size == 8
        assert entry.kind is EntryKind.FILE

    @pytest.mark.asyncio
    async def test_upload_guesses_mime(self, db_session, service, user):
        entry = await service.upload_file(db_session, user.id, "notes.txt", b"hi")
        assert entry.mime_type == "text/plain"

    @pytest.mark.asyncio
    async def test_upload_strips_client_path(self, db_session, service, user):
        entry = await service.upload_file(db_session, user.id, "../../etc/passwd", b"x")
        assert entry.name == "passwd"

    @pytest.mark.asyncio
    async def test_blob_failure_leaves_no_row(self, db_session, service, blobs, user):
        blobs.put.side_effect = BlobStoreError("S3 unavailable")
        with pytest.raises(BlobStoreError):
            await service.upload_file(db_session, user.id, "a.txt", b"x")
        assert await service.list_children(db_session, user.id) == []

    @pytest.mark.asyncio
    async def test_download_of_folder_not_found(self, db_session, service, user):
        folder = await _folder(db_session, user, "A")
        with pytest.raises(NotFound):
            await service.download_url(db_session, user.id, folder.id)

    @pytest.mark.asyncio
    async def test_download_signs_blob_key(self, db_session, service, blobs, user):
        f = await _file(db_session, user, "a.txt", blob_key="kk")
        url = await service.download_url(db_session, user.id, f.id)
        assert url == "https://signed.example.com/x"
        blobs.presigned_get_url.assert_awaited_once_with("kk", 3600)


def test_blob_key_without_extension():
    key = make_blob_key("owner", "Makefile")
    assert key.startswith("owner/")
    assert "." not in key.split("/", 1)[1]
