"""Auth schemas: registration, login, token responses and the user profile."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from firehouse.db.models.user import UserStatus

PASSWORD_MIN_LENGTH = 6
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class RegisterRequest(BaseModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    name: str = Field(..., min_length=1, max_length=200)
    username: str = Field(..., min_length=3, max_length=100, pattern=r"^[a-zA-Z0-9_.\-]+$")
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=256)


class RegisterResponse(BaseModel):
    success: bool = True
    message: str = "Registration submitted. An administrator must approve your account."
    user_id: int


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=256)


class UserOut(BaseModel):
    id: int
    email: str
    name: str
    username: str
    status: UserStatus
    primary_role: str
    roles: list[str]
    must_change_password: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    success: bool = True
    user: UserOut
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class RefreshRequest(BaseModel):
    refresh_token: str


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=256)


class PasswordResetRequestIn(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)


class MessageResponse(BaseModel):
    success: bool = True
    message: str
