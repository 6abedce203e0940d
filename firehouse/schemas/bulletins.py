"""Bulletin board schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class AttachmentOut(BaseModel):
    id: int
    original_filename: str
    file_size: int
    mime_type: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BulletinOut(BaseModel):
    id: int
    title: str
    body: str
    category: str
    author_id: int
    author_name: str
    created_at: datetime
    is_read: bool
    attachments: list[AttachmentOut]


class BulletinSummaryOut(BaseModel):
    id: int
    category: str
    created_at: datetime
    is_read: bool

    model_config = ConfigDict(from_attributes=True)


class PermissionsOut(BaseModel):
    can_view: bool = Field(serialization_alias="canView")
    can_post: bool = Field(serialization_alias="canPost")
    can_delete: bool = Field(serialization_alias="canDelete")


class BulletinCreated(BaseModel):
    success: bool = True
    id: int


class MarkBulletinReadRequest(BaseModel):
    bulletin_id: int = Field(..., alias="bulletinId")

    model_config = ConfigDict(populate_by_name=True)
