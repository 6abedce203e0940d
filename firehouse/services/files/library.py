"""Department file library: shared SOPs, forms and training documents."""

from __future__ import annotations

from pathlib import Path

import structlog
from fastapi import UploadFile
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from firehouse.core.errors import ErrorCode, ForbiddenError, NotFoundError, ValidationError
from firehouse.db.models.files import LibraryCategory, LibraryFile
from firehouse.db.models.user import User
from firehouse.db.session import atomic
from firehouse.services.access.ranking import has_override
from firehouse.services.files.storage import FileStorage

_log = structlog.get_logger(__name__)


def parse_category(value: str) -> LibraryCategory:
    try:
        return LibraryCategory(value)
    except ValueError as exc:
        raise ValidationError(
            f"Invalid library category: {value}",
            detail={"allowed": [c.value for c in LibraryCategory]},
        ) from exc


class LibraryStore:
    def __init__(self, db: AsyncSession, storage: FileStorage) -> None:
        self._db = db
        self._storage = storage

    async def get(self, file_id: int) -> LibraryFile:
        item = await self._db.get(LibraryFile, file_id, populate_existing=True)
        if item is None:
            raise NotFoundError("File", file_id, code=ErrorCode.ATTACHMENT_NOT_FOUND)
        return item

    async def list_files(self, category: str | None = None) -> list[LibraryFile]:
        query = select(LibraryFile).order_by(LibraryFile.created_at.desc(), LibraryFile.id.desc())
        if category:
            query = query.where(LibraryFile.category == parse_category(category).value)
        result = await self._db.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def upload(
        self,
        *,
        title: str,
        description: str,
        category: str,
        upload: UploadFile,
        uploader: User,
    ) -> LibraryFile:
        if not has_override(uploader.roles):
            raise ForbiddenError("Unauthorized - Admin access required")
        library_category = parse_category(category)

        stored = await self._storage.save(upload)
        try:
            async with atomic(self._db):
                item = LibraryFile(
                    title=title.strip() or stored.original_filename,
                    description=description,
                    category=library_category.value,
                    uploaded_by=uploader.id,
                    **stored.as_columns(),
                )
                self._db.add(item)
                await self._db.flush()
        except Exception:
            self._storage.discard([stored.file_path])
            raise

        _log.info("library_file_uploaded", file_id=item.id, category=item.category)
        return item

    async def delete(self, file_id: int, actor: User) -> None:
        item = await self.get(file_id)
        if not (has_override(actor.roles) or item.uploaded_by == actor.id):
            raise ForbiddenError("Only administrators or the uploader can delete this file")

        path = item.file_path
        async with atomic(self._db):
            await self._db.execute(delete(LibraryFile).where(LibraryFile.id == file_id))
        self._storage.discard([path])
        _log.info("library_file_deleted", file_id=file_id)

    async def download(self, file_id: int) -> tuple[LibraryFile, Path]:
        item = await self.get(file_id)
        return item, self._storage.resolve(item.file_path)
