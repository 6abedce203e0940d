"""User directory and admin console schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from firehouse.db.models.user import ResetStatus, UserStatus
from firehouse.schemas.auth import EMAIL_PATTERN, PASSWORD_MIN_LENGTH


class UserSummary(BaseModel):
    """Directory entry; what any active member may see about another."""

    id: int
    name: str
    username: str
    email: str
    primary_role: str
    roles: list[str]

    model_config = ConfigDict(from_attributes=True)


class AdminUserOut(UserSummary):
    status: UserStatus
    must_change_password: bool
    created_at: datetime


class ApproveUserRequest(BaseModel):
    assigned_role: str = Field(..., alias="assignedRole", min_length=1, max_length=50)

    model_config = ConfigDict(populate_by_name=True)


class CreateUserRequest(BaseModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    name: str = Field(..., min_length=1, max_length=200)
    username: str = Field(..., min_length=3, max_length=100, pattern=r"^[a-zA-Z0-9_.\-]+$")
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=256)
    roles: list[str] = Field(..., min_length=1)


class UpdateUserRequest(BaseModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    name: str = Field(..., min_length=1, max_length=200)
    username: str = Field(..., min_length=3, max_length=100, pattern=r"^[a-zA-Z0-9_.\-]+$")
    roles: list[str] = Field(..., min_length=1)


class AdminResetPasswordRequest(BaseModel):
    new_password: str = Field(
        ..., alias="newPassword", min_length=PASSWORD_MIN_LENGTH, max_length=256
    )

    model_config = ConfigDict(populate_by_name=True)


class PasswordResetRequestOut(BaseModel):
    id: int
    user_id: int
    username: str
    name: str
    email: str
    status: ResetStatus
    created_at: datetime
