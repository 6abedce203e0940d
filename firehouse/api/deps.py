"""
FastAPI dependency providers.

Authentication lives here; authorization decisions are made by the
stores from the caller's stored role set, never from token claims.
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from firehouse.config.settings import get_settings
from firehouse.core.errors import AuthError, ErrorCode, ForbiddenError
from firehouse.core.security import decode_token
from firehouse.db.models.user import User
from firehouse.db.session import get_db
from firehouse.services.files.storage import FileStorage
from firehouse.services.users.store import UserStore

_log = structlog.get_logger(__name__)
_bearer = HTTPBearer(auto_error=False)

DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
    db: DbSession,
) -> User:
    """
    Validate the JWT Bearer token and return the authenticated User.

    Raises AuthError on any JWT problem and ForbiddenError when the
    account is not active.
    """
    if credentials is None:
        raise AuthError(
            ErrorCode.AUTH_TOKEN_INVALID, "Authorization header missing or not Bearer type"
        )

    try:
        payload = decode_token(credentials.credentials)
    except JWTError as exc:
        raise AuthError(ErrorCode.AUTH_TOKEN_INVALID, "Token invalid or expired") from exc

    if payload.get("type") != "access":
        raise AuthError(ErrorCode.AUTH_TOKEN_INVALID, "Token is not an access token")

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise AuthError(ErrorCode.AUTH_TOKEN_INVALID, "Token missing subject")

    user = await UserStore(db).find(int(subject))
    if user is None:
        raise AuthError(ErrorCode.AUTH_TOKEN_INVALID, "User not found")

    if not user.is_active:
        raise ForbiddenError("Account is pending approval", code=ErrorCode.AUTH_ACCOUNT_PENDING)

    structlog.contextvars.bind_contextvars(user_id=user.id, username=user.username)
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


async def get_active_user(user: CurrentUser) -> User:
    """Like ``get_current_user`` but refuses accounts that must change their password."""
    if user.must_change_password:
        raise ForbiddenError(
            "Password change required before continuing",
            code=ErrorCode.AUTH_PASSWORD_CHANGE_REQUIRED,
        )
    return user


ActiveUser = Annotated[User, Depends(get_active_user)]


def get_attachment_storage() -> FileStorage:
    settings = get_settings()
    return FileStorage(
        settings.upload_dir, settings.max_upload_size_bytes, settings.max_files_per_upload
    )


def get_library_storage() -> FileStorage:
    settings = get_settings()
    return FileStorage(settings.library_dir, settings.max_upload_size_bytes, max_files=1)


AttachmentStorage = Annotated[FileStorage, Depends(get_attachment_storage)]
LibraryStorage = Annotated[FileStorage, Depends(get_library_storage)]
