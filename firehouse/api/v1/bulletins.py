"""Bulletin board endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import FileResponse

from firehouse.api.deps import ActiveUser, AttachmentStorage, DbSession
from firehouse.schemas.auth import MessageResponse
from firehouse.schemas.bulletins import (
    AttachmentOut,
    BulletinCreated,
    BulletinOut,
    BulletinSummaryOut,
    MarkBulletinReadRequest,
    PermissionsOut,
)
from firehouse.services.access.policy import permissions
from firehouse.services.bulletins.store import BulletinStore, BulletinView

router = APIRouter(prefix="/bulletins", tags=["bulletins"])


def _bulletin_out(view: BulletinView) -> BulletinOut:
    bulletin = view.bulletin
    return BulletinOut(
        id=bulletin.id,
        title=bulletin.title,
        body=bulletin.body,
        category=bulletin.category,
        author_id=bulletin.author_id,
        author_name=bulletin.author.name,
        created_at=bulletin.created_at,
        is_read=view.is_read,
        attachments=[AttachmentOut.model_validate(a) for a in bulletin.attachments],
    )


@router.get(
    "/category/{category}",
    response_model=list[BulletinOut],
    summary="List bulletins in a category",
)
async def list_category(
    category: str, current_user: ActiveUser, db: DbSession, storage: AttachmentStorage
) -> list[BulletinOut]:
    """Newest first. A category the caller may not view yields an empty list."""
    views = await BulletinStore(db, storage).list_by_category(category, current_user)
    return [_bulletin_out(view) for view in views]


@router.get(
    "/all",
    response_model=list[BulletinSummaryOut],
    summary="Summaries of every visible bulletin",
)
async def list_all(
    current_user: ActiveUser, db: DbSession, storage: AttachmentStorage
) -> list[BulletinSummaryOut]:
    summaries = await BulletinStore(db, storage).list_visible(current_user)
    return [BulletinSummaryOut.model_validate(s) for s in summaries]


@router.get(
    "/permissions/{category}",
    response_model=PermissionsOut,
    summary="Caller's permissions for a category",
)
async def category_permissions(category: str, current_user: ActiveUser) -> PermissionsOut:
    granted = permissions(current_user.roles, category)
    return PermissionsOut(
        can_view=granted.can_view, can_post=granted.can_post, can_delete=granted.can_delete
    )


@router.post("", response_model=BulletinCreated, status_code=201, summary="Post a bulletin")
async def post_bulletin(
    title: Annotated[str, Form(min_length=1, max_length=300)],
    body: Annotated[str, Form(min_length=1)],
    category: Annotated[str, Form(min_length=1, max_length=50)],
    current_user: ActiveUser,
    db: DbSession,
    storage: AttachmentStorage,
    files: Annotated[list[UploadFile] | None, File()] = None,
) -> BulletinCreated:
    bulletin = await BulletinStore(db, storage).post(
        title=title, body=body, category=category, author=current_user, uploads=files or []
    )
    return BulletinCreated(id=bulletin.id)


@router.delete("/{bulletin_id}", response_model=MessageResponse, summary="Delete a bulletin")
async def delete_bulletin(
    bulletin_id: int, current_user: ActiveUser, db: DbSession, storage: AttachmentStorage
) -> MessageResponse:
    await BulletinStore(db, storage).remove(bulletin_id, current_user)
    return MessageResponse(message="Bulletin deleted")


@router.post("/mark-read", response_model=MessageResponse, summary="Mark a bulletin as read")
async def mark_read(
    body: MarkBulletinReadRequest,
    current_user: ActiveUser,
    db: DbSession,
    storage: AttachmentStorage,
) -> MessageResponse:
    await BulletinStore(db, storage).mark_read(current_user.id, body.bulletin_id)
    return MessageResponse(message="Marked as read")


@router.get(
    "/{bulletin_id}/attachments",
    response_model=list[AttachmentOut],
    summary="List a bulletin's attachments",
)
async def list_attachments(
    bulletin_id: int, current_user: ActiveUser, db: DbSession, storage: AttachmentStorage
) -> list[AttachmentOut]:
    attachments = await BulletinStore(db, storage).list_attachments(bulletin_id, current_user)
    return [AttachmentOut.model_validate(a) for a in attachments]


@router.get("/{bulletin_id}/attachments/{attachment_id}", summary="Download an attachment")
async def download_attachment(
    bulletin_id: int,
    attachment_id: int,
    current_user: ActiveUser,
    db: DbSession,
    storage: AttachmentStorage,
) -> FileResponse:
    attachment, path = await BulletinStore(db, storage).get_attachment(
        bulletin_id, attachment_id, current_user
    )
    return FileResponse(
        path, media_type=attachment.mime_type, filename=attachment.original_filename
    )


@router.delete(
    "/{bulletin_id}/attachments/{attachment_id}",
    response_model=MessageResponse,
    summary="Remove one attachment from a bulletin",
)
async def delete_attachment(
    bulletin_id: int,
    attachment_id: int,
    current_user: ActiveUser,
    db: DbSession,
    storage: AttachmentStorage,
) -> MessageResponse:
    await BulletinStore(db, storage).remove_attachment(bulletin_id, attachment_id, current_user)
    return MessageResponse(message="Attachment deleted")
