"""Messaging schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from firehouse.schemas.bulletins import AttachmentOut


class InboxEntryOut(BaseModel):
    thread_id: int
    message_id: int
    subject: str
    body: str
    sender_id: int
    sender_name: str
    created_at: datetime
    message_count: int
    participant_names: str
    unread_count: int


class SentMessageOut(BaseModel):
    id: int
    thread_id: int
    recipient_id: int
    subject: str
    body: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ThreadMessageOut(BaseModel):
    id: int
    thread_id: int
    parent_message_id: int | None
    sender_id: int
    sender_name: str
    subject: str
    body: str
    created_at: datetime
    attachments: list[AttachmentOut]
    read_by: list[int]


class ParticipantOut(BaseModel):
    id: int
    name: str
    username: str

    model_config = ConfigDict(from_attributes=True)


class MessageSent(BaseModel):
    success: bool = True
    thread_id: int = Field(serialization_alias="threadId")
    message_id: int = Field(serialization_alias="messageId")


class MarkMessageReadRequest(BaseModel):
    message_id: int = Field(..., alias="messageId")

    model_config = ConfigDict(populate_by_name=True)


class ReadStatusOut(BaseModel):
    bulletins: list[int]
    messages: list[int]
