"""
On-disk storage for uploaded files.

Uploads are written under a generated ``uuid4().hex + suffix`` name so a
client-supplied filename never reaches the filesystem. Callers persist the
returned metadata; a metadata row whose file has vanished from disk is
reported with its own error code.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog
from fastapi import UploadFile

from firehouse.core.errors import ErrorCode, NotFoundError, ValidationError

_log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StoredFile:
    filename: str
    original_filename: str
    file_path: str
    file_size: int
    mime_type: str

    def as_columns(self) -> dict[str, object]:
        return {
            "filename": self.filename,
            "original_filename": self.original_filename,
            "file_path": self.file_path,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
        }


class FileStorage:
    """Writes, resolves and removes files within one root directory."""

    def __init__(self, root: Path, max_file_bytes: int, max_files: int) -> None:
        self._root = root
        self._max_file_bytes = max_file_bytes
        self._max_files = max_files

    def check_count(self, uploads: Sequence[UploadFile]) -> None:
        if len(uploads) > self._max_files:
            raise ValidationError(
                f"At most {self._max_files} files may be attached",
                detail={"code": ErrorCode.TOO_MANY_FILES.value, "received": len(uploads)},
            )

    async def save(self, upload: UploadFile) -> StoredFile:
        raw = await upload.read()
        if len(raw) > self._max_file_bytes:
            raise ValidationError(
                f"File exceeds maximum allowed size of {self._max_file_bytes // (1024 * 1024)}MB",
                detail={
                    "code": ErrorCode.FILE_TOO_LARGE.value,
                    "size_bytes": len(raw),
                    "limit_bytes": self._max_file_bytes,
                },
            )

        original = upload.filename or "upload"
        safe_name = f"{uuid.uuid4().hex}{Path(original).suffix.lower()}"
        self._root.mkdir(parents=True, exist_ok=True)
        dest = self._root / safe_name
        dest.write_bytes(raw)

        _log.info("file_stored", filename=safe_name, size_bytes=len(raw))
        return StoredFile(
            filename=safe_name,
            original_filename=original,
            file_path=str(dest),
            file_size=len(raw),
            mime_type=upload.content_type or "application/octet-stream",
        )

    async def save_all(self, uploads: Sequence[UploadFile]) -> list[StoredFile]:
        """Store every upload; if one fails, files already written are removed."""
        self.check_count(uploads)
        stored: list[StoredFile] = []
        try:
            for upload in uploads:
                stored.append(await self.save(upload))
        except Exception:
            self.discard(f.file_path for f in stored)
            raise
        return stored

    def resolve(self, file_path: str) -> Path:
        path = Path(file_path).resolve()
        if not path.is_file():
            _log.error("file_missing_on_disk", file_path=str(path))
            raise NotFoundError("File on disk", code=ErrorCode.FILE_MISSING_ON_DISK)
        return path

    def discard(self, file_paths: Iterable[str]) -> None:
        for file_path in file_paths:
            try:
                Path(file_path).unlink(missing_ok=True)
            except OSError as exc:
                _log.warning("file_discard_failed", file_path=file_path, error=str(exc))
