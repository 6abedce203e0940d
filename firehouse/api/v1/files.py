"""File library endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, File, Form, Query, UploadFile
from fastapi.responses import FileResponse

from firehouse.api.deps import ActiveUser, DbSession, LibraryStorage
from firehouse.db.models.files import LibraryCategory, LibraryFile
from firehouse.schemas.auth import MessageResponse
from firehouse.schemas.files import LibraryFileCreated, LibraryFileOut
from firehouse.services.files.library import LibraryStore

router = APIRouter(prefix="/files", tags=["files"])


def _library_file_out(item: LibraryFile) -> LibraryFileOut:
    return LibraryFileOut(
        id=item.id,
        title=item.title,
        description=item.description,
        category=item.category,
        original_filename=item.original_filename,
        file_size=item.file_size,
        mime_type=item.mime_type,
        uploaded_by=item.uploaded_by,
        uploader_name=item.uploader.name,
        created_at=item.created_at,
    )


@router.get("", response_model=list[LibraryFileOut], summary="List library files")
async def list_files(
    current_user: ActiveUser,
    db: DbSession,
    storage: LibraryStorage,
    category: Annotated[str | None, Query()] = None,
) -> list[LibraryFileOut]:
    items = await LibraryStore(db, storage).list_files(category)
    return [_library_file_out(item) for item in items]


@router.post(
    "",
    response_model=LibraryFileCreated,
    status_code=201,
    summary="Upload a library file (admins only)",
)
async def upload_file(
    file: Annotated[UploadFile, File()],
    current_user: ActiveUser,
    db: DbSession,
    storage: LibraryStorage,
    title: Annotated[str, Form(max_length=300)] = "",
    description: Annotated[str, Form()] = "",
    category: Annotated[str, Form()] = LibraryCategory.GENERAL.value,
) -> LibraryFileCreated:
    item = await LibraryStore(db, storage).upload(
        title=title,
        description=description,
        category=category,
        upload=file,
        uploader=current_user,
    )
    return LibraryFileCreated(id=item.id)


@router.delete("/{file_id}", response_model=MessageResponse, summary="Delete a library file")
async def delete_file(
    file_id: int, current_user: ActiveUser, db: DbSession, storage: LibraryStorage
) -> MessageResponse:
    await LibraryStore(db, storage).delete(file_id, current_user)
    return MessageResponse(message="File deleted")


@router.get("/{file_id}/download", summary="Download a library file")
async def download_file(
    file_id: int, current_user: ActiveUser, db: DbSession, storage: LibraryStorage
) -> FileResponse:
    item, path = await LibraryStore(db, storage).download(file_id)
    return FileResponse(path, media_type=item.mime_type, filename=item.original_filename)
