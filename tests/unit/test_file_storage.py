"""Unit tests for firehouse.services.files.storage."""
from pathlib import Path

import pytest

from firehouse.core.errors import ErrorCode, NotFoundError, ValidationError
from firehouse.services.files.storage import FileStorage


async def test_save_uses_generated_name_and_keeps_metadata(storage, make_upload):
    stored = await storage.save(make_upload("../../etc/Passwd.TXT", b"abc", "text/plain"))

    path = Path(stored.file_path)
    assert path.read_bytes() == b"abc"
    assert path.parent.name == "uploads"
    assert stored.filename == path.name
    assert stored.filename.endswith(".txt")
    assert stored.original_filename == "../../etc/Passwd.TXT"
    assert stored.file_size == 3
    assert stored.mime_type == "text/plain"


async def test_oversized_file_is_rejected(tmp_path, make_upload):
    small = FileStorage(tmp_path / "small", max_file_bytes=4, max_files=5)
    with pytest.raises(ValidationError) as exc_info:
        await small.save(make_upload(content=b"12345"))
    assert exc_info.value.detail["code"] == ErrorCode.FILE_TOO_LARGE.value
    assert not (tmp_path / "small").exists()


async def test_too_many_files(storage, make_upload):
    with pytest.raises(ValidationError) as exc_info:
        await storage.save_all([make_upload(f"{i}.txt") for i in range(6)])
    assert exc_info.value.detail["code"] == ErrorCode.TOO_MANY_FILES.value


async def test_save_all_cleans_up_after_partial_failure(tmp_path, make_upload):
    small = FileStorage(tmp_path / "small", max_file_bytes=4, max_files=5)
    with pytest.raises(ValidationError):
        await small.save_all([make_upload("ok.txt", b"ok"), make_upload("big.txt", b"too big")])
    assert list((tmp_path / "small").iterdir()) == []


def test_resolve_missing_file(storage, tmp_path):
    with pytest.raises(NotFoundError) as exc_info:
        storage.resolve(str(tmp_path / "gone.bin"))
    assert exc_info.value.code == ErrorCode.FILE_MISSING_ON_DISK


async def test_discard_tolerates_missing_files(storage, make_upload, tmp_path):
    stored = await storage.save(make_upload())
    storage.discard([stored.file_path, str(tmp_path / "never-existed")])
    assert not Path(stored.file_path).exists()
