"""
Unit tests for file storage.
"""

import hashlib
import os
from datetime import datetime, timezone

import pytest

from downloadserver.delivery import MediaType
from downloadserver.delivery import descriptor as descriptor_module
from downloadserver.storage import FileSystemStorage, MemoryStorage, file_id_for


@pytest.fixture
def root(tmp_path):
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "guide.pdf").write_bytes(b"%PDF-1.7 guide")
    (tmp_path / "hello.txt").write_bytes(b"hello")
    return tmp_path


class TestFileSystemStorage:

    def test_scan_indexes_every_file(self, root):
        storage = FileSystemStorage(root)

        assert storage.files() == [
            (file_id_for("docs/guide.pdf"), "docs/guide.pdf"),
            (file_id_for("hello.txt"), "hello.txt"),
        ]

    def test_ids_are_stable(self, root):
        first = FileSystemStorage(root).files()
        second = FileSystemStorage(root).files()

        assert first == second

    def test_find_file(self, root):
        storage = FileSystemStorage(root)

        stored = storage.find_file(file_id_for("docs/guide.pdf"))

        assert stored.descriptor.original_name == "guide.pdf"
        assert stored.descriptor.size == 14
        assert stored.descriptor.content_hash == hashlib.sha512(b"%PDF-1.7 guide").hexdigest()
        assert stored.descriptor.media_type == MediaType("application", "pdf")
        with stored.open() as stream:
            assert stream.read() == b"%PDF-1.7 guide"

    def test_open_returns_independent_streams(self, root):
        stored = FileSystemStorage(root).find_file(file_id_for("hello.txt"))

        first = stored.open()
        second = stored.open()
        try:
            assert first.read(2) == b"he"
            assert second.read() == b"hello"
        finally:
            first.close()
            second.close()

    def test_unknown_id(self, root):
        assert FileSystemStorage(root).find_file("nope") is None

    def test_files_are_hashed_at_scan(self, root, monkeypatch):
        storage = FileSystemStorage(root)
        hashed = []
        monkeypatch.setattr(descriptor_module, "hash_stream", lambda *args: hashed.append(args))

        for file_id, _ in storage.files():
            assert storage.find_file(file_id).descriptor.size > 0

        assert hashed == []

    def test_rescan_keeps_unchanged_descriptors(self, root):
        storage = FileSystemStorage(root)
        file_id = file_id_for("hello.txt")
        before = storage.find_file(file_id).descriptor

        storage.scan()

        assert storage.find_file(file_id).descriptor is before

    def test_rescan_rehashes_changed_file(self, root):
        storage = FileSystemStorage(root)
        file_id = file_id_for("hello.txt")
        before = storage.find_file(file_id).descriptor

        path = root / "hello.txt"
        path.write_bytes(b"goodbye")
        later = datetime(2030, 1, 1, tzinfo=timezone.utc).timestamp()
        os.utime(path, (later, later))
        storage.scan()

        after = storage.find_file(file_id).descriptor
        assert after.content_hash == hashlib.sha512(b"goodbye").hexdigest()
        assert after.etag != before.etag

    def test_descriptor_is_cached(self, root):
        storage = FileSystemStorage(root)
        file_id = file_id_for("hello.txt")

        assert storage.find_file(file_id).descriptor is storage.find_file(file_id).descriptor

    def test_changed_file_gets_new_descriptor(self, root):
        storage = FileSystemStorage(root)
        file_id = file_id_for("hello.txt")
        before = storage.find_file(file_id).descriptor

        path = root / "hello.txt"
        path.write_bytes(b"hello, world")
        later = datetime(2030, 1, 1, tzinfo=timezone.utc).timestamp()
        os.utime(path, (later, later))

        after = storage.find_file(file_id).descriptor

        assert after.etag != before.etag
        assert after.size == 12
        assert after.last_modified == datetime(2030, 1, 1, tzinfo=timezone.utc)

    def test_deleted_file_is_not_found(self, root):
        storage = FileSystemStorage(root)
        file_id = file_id_for("hello.txt")

        (root / "hello.txt").unlink()

        assert storage.find_file(file_id) is None

    def test_rescan_picks_up_new_files(self, root):
        storage = FileSystemStorage(root)
        (root / "new.bin").write_bytes(b"\x00")

        assert storage.find_file(file_id_for("new.bin")) is None
        assert storage.scan() == 3
        assert storage.find_file(file_id_for("new.bin")) is not None

    def test_missing_root(self, tmp_path):
        with pytest.raises(ValueError):
            FileSystemStorage(tmp_path / "missing")


class TestMemoryStorage:

    def test_add_and_find(self):
        storage = MemoryStorage()
        mtime = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        descriptor = storage.add("7", "notes.txt", b"abc", last_modified=mtime)
        stored = storage.find_file("7")

        assert stored.descriptor == descriptor
        assert descriptor.last_modified == mtime
        assert descriptor.content_hash == hashlib.sha512(b"abc").hexdigest()
        assert str(descriptor.media_type) == "text/plain; charset=utf-8"
        assert stored.open().read() == b"abc"

    def test_explicit_media_type(self):
        storage = MemoryStorage()

        assert storage.add("1", "x", b"", media_type="image/png").media_type == MediaType("image", "png")
        assert storage.add("2", "x", b"").media_type is None

    def test_remove(self):
        storage = MemoryStorage()
        storage.add("1", "x.txt", b"x")

        storage.remove("1")
        storage.remove("1")

        assert storage.find_file("1") is None
