"""Internal messaging endpoints."""

from __future__ import annotations

import json
from typing import Annotated

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import FileResponse

from firehouse.api.deps import ActiveUser, AttachmentStorage, DbSession
from firehouse.core.errors import ValidationError
from firehouse.schemas.auth import MessageResponse
from firehouse.schemas.bulletins import AttachmentOut
from firehouse.schemas.messages import (
    InboxEntryOut,
    MarkMessageReadRequest,
    MessageSent,
    ParticipantOut,
    ReadStatusOut,
    SentMessageOut,
    ThreadMessageOut,
)
from firehouse.services.messaging.store import MessageStore

router = APIRouter(prefix="/messages", tags=["messages"])
read_status_router = APIRouter(tags=["messages"])


def _parse_recipients(raw: str) -> list[int]:
    """``to`` arrives as a JSON array of user ids inside a multipart form."""
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError("'to' must be a JSON array of user ids") from exc
    if isinstance(value, int):
        value = [value]
    if not isinstance(value, list) or not all(
        isinstance(item, int) and not isinstance(item, bool) for item in value
    ):
        raise ValidationError("'to' must be a JSON array of user ids")
    return value


@router.get("/inbox", response_model=list[InboxEntryOut], summary="Conversations, newest first")
async def inbox(
    current_user: ActiveUser, db: DbSession, storage: AttachmentStorage
) -> list[InboxEntryOut]:
    entries = await MessageStore(db, storage).get_inbox(current_user.id)
    return [
        InboxEntryOut(
            thread_id=entry.thread_id,
            message_id=entry.latest.id,
            subject=entry.latest.subject,
            body=entry.latest.body,
            sender_id=entry.latest.sender_id,
            sender_name=entry.latest.sender.name,
            created_at=entry.latest.created_at,
            message_count=entry.message_count,
            participant_names=entry.participant_names,
            unread_count=entry.unread_count,
        )
        for entry in entries
    ]


@router.get("/sent", response_model=list[SentMessageOut], summary="Messages sent by the caller")
async def sent(
    current_user: ActiveUser, db: DbSession, storage: AttachmentStorage
) -> list[SentMessageOut]:
    messages = await MessageStore(db, storage).get_sent(current_user.id)
    return [SentMessageOut.model_validate(m) for m in messages]


@router.post("", response_model=MessageSent, status_code=201, summary="Send a message")
async def send_message(
    to: Annotated[str, Form()],
    subject: Annotated[str, Form(min_length=1, max_length=300)],
    body: Annotated[str, Form(min_length=1)],
    current_user: ActiveUser,
    db: DbSession,
    storage: AttachmentStorage,
    thread_id: Annotated[int | None, Form(alias="threadId")] = None,
    parent_message_id: Annotated[int | None, Form(alias="parentMessageId")] = None,
    files: Annotated[list[UploadFile] | None, File()] = None,
) -> MessageSent:
    """Start a new conversation, or reply when ``threadId`` is given."""
    message = await MessageStore(db, storage).send(
        current_user,
        _parse_recipients(to),
        subject,
        body,
        thread_id=thread_id,
        parent_message_id=parent_message_id,
        uploads=files or [],
    )
    return MessageSent(thread_id=message.thread_id, message_id=message.id)


@router.get(
    "/thread/{thread_id}",
    response_model=list[ThreadMessageOut],
    summary="Every message in a conversation",
)
async def get_thread(
    thread_id: int, current_user: ActiveUser, db: DbSession, storage: AttachmentStorage
) -> list[ThreadMessageOut]:
    items = await MessageStore(db, storage).get_thread(thread_id, current_user.id)
    return [
        ThreadMessageOut(
            id=item.message.id,
            thread_id=item.message.thread_id,
            parent_message_id=item.message.parent_message_id,
            sender_id=item.message.sender_id,
            sender_name=item.message.sender.name,
            subject=item.message.subject,
            body=item.message.body,
            created_at=item.message.created_at,
            attachments=[AttachmentOut.model_validate(a) for a in item.message.attachments],
            read_by=item.read_by,
        )
        for item in items
    ]


@router.get(
    "/thread/{thread_id}/participants",
    response_model=list[ParticipantOut],
    summary="Current participants of a conversation",
)
async def get_participants(
    thread_id: int, current_user: ActiveUser, db: DbSession, storage: AttachmentStorage
) -> list[ParticipantOut]:
    users = await MessageStore(db, storage).get_participants(thread_id, current_user.id)
    return [ParticipantOut.model_validate(u) for u in users]


@router.delete(
    "/{message_id}",
    response_model=MessageResponse,
    summary="Leave the conversation containing a message",
)
async def delete_message(
    message_id: int, current_user: ActiveUser, db: DbSession, storage: AttachmentStorage
) -> MessageResponse:
    """Removes only the caller's participation; other participants keep the history."""
    await MessageStore(db, storage).delete_participation(message_id, current_user.id)
    return MessageResponse(message="Conversation removed")


@router.post("/mark-read", response_model=MessageResponse, summary="Mark a message as read")
async def mark_read(
    body: MarkMessageReadRequest,
    current_user: ActiveUser,
    db: DbSession,
    storage: AttachmentStorage,
) -> MessageResponse:
    await MessageStore(db, storage).mark_read(current_user.id, body.message_id)
    return MessageResponse(message="Marked as read")


@router.get(
    "/{message_id}/attachments",
    response_model=list[AttachmentOut],
    summary="List a message's attachments",
)
async def list_attachments(
    message_id: int, current_user: ActiveUser, db: DbSession, storage: AttachmentStorage
) -> list[AttachmentOut]:
    attachments = await MessageStore(db, storage).list_attachments(message_id, current_user.id)
    return [AttachmentOut.model_validate(a) for a in attachments]


@router.get("/{message_id}/attachments/{attachment_id}", summary="Download an attachment")
async def download_attachment(
    message_id: int,
    attachment_id: int,
    current_user: ActiveUser,
    db: DbSession,
    storage: AttachmentStorage,
) -> FileResponse:
    attachment, path = await MessageStore(db, storage).get_attachment(
        message_id, attachment_id, current_user.id
    )
    return FileResponse(
        path, media_type=attachment.mime_type, filename=attachment.original_filename
    )


@router.delete(
    "/{message_id}/attachments/{attachment_id}",
    response_model=MessageResponse,
    summary="Remove one attachment from a message",
)
async def delete_attachment(
    message_id: int,
    attachment_id: int,
    current_user: ActiveUser,
    db: DbSession,
    storage: AttachmentStorage,
) -> MessageResponse:
    """Only the sender may remove an attachment."""
    await MessageStore(db, storage).remove_attachment(message_id, attachment_id, current_user.id)
    return MessageResponse(message="Attachment deleted")


@read_status_router.get(
    "/read-status",
    response_model=ReadStatusOut,
    summary="Ids of bulletins and messages the caller has read",
)
async def read_status(
    current_user: ActiveUser, db: DbSession, storage: AttachmentStorage
) -> ReadStatusOut:
    status = await MessageStore(db, storage).read_status(current_user.id)
    return ReadStatusOut(bulletins=status.bulletins, messages=status.messages)
