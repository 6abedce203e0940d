"""File library schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class LibraryFileOut(BaseModel):
    id: int
    title: str
    description: str
    category: str
    original_filename: str
    file_size: int
    mime_type: str
    uploaded_by: int
    uploader_name: str
    created_at: datetime


class LibraryFileCreated(BaseModel):
    success: bool = True
    id: int

    model_config = ConfigDict(from_attributes=True)
