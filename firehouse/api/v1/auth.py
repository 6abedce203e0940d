"""Authentication API endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter
from jose import JWTError

from firehouse.api.deps import CurrentUser, DbSession
from firehouse.config.settings import get_settings
from firehouse.core.errors import AuthError, ErrorCode
from firehouse.core.security import create_access_token, create_refresh_token, decode_token
from firehouse.db.models.user import User
from firehouse.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    PasswordResetRequestIn,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
    UserOut,
)
from firehouse.services.users.password_reset import PasswordResetService
from firehouse.services.users.store import UserStore

_log = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_response(user: User, refresh: str | None = None) -> TokenResponse:
    settings = get_settings()
    return TokenResponse(
        user=UserOut.model_validate(user),
        access_token=create_access_token(subject=user.id, roles=user.roles),
        refresh_token=refresh or create_refresh_token(subject=user.id),
        token_type="bearer",
        expires_in=settings.jwt_access_token_expire_minutes * 60,
    )


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=201,
    summary="Register a new account pending approval",
)
async def register(body: RegisterRequest, db: DbSession) -> RegisterResponse:
    user = await UserStore(db).register(
        email=body.email, name=body.name, username=body.username, password=body.password
    )
    return RegisterResponse(user_id=user.id)


@router.post("/login", response_model=TokenResponse, summary="Obtain access and refresh tokens")
async def login(body: LoginRequest, db: DbSession) -> TokenResponse:
    """
    Authenticate with username (case-insensitive) and password.

    Pending accounts are refused with ``AUTH_ACCOUNT_PENDING``.
    """
    user = await UserStore(db).authenticate(body.username, body.password)
    _log.info("login_success", username=user.username, roles=user.roles)
    return _token_response(user)


@router.post("/refresh", response_model=TokenResponse, summary="Refresh access token")
async def refresh_token(body: RefreshRequest, db: DbSession) -> TokenResponse:
    """Exchange a valid refresh token for a new access token."""
    try:
        payload = decode_token(body.refresh_token)
    except JWTError as exc:
        raise AuthError(ErrorCode.AUTH_TOKEN_INVALID, "Refresh token invalid") from exc

    if payload.get("type") != "refresh":
        raise AuthError(ErrorCode.AUTH_TOKEN_INVALID, "Not a refresh token")

    subject = str(payload.get("sub", ""))
    user = await UserStore(db).find(int(subject)) if subject.isdigit() else None
    if user is None or not user.is_active:
        raise AuthError(ErrorCode.AUTH_TOKEN_INVALID, "User not found")

    return _token_response(user, refresh=body.refresh_token)


@router.get("/me", response_model=UserOut, summary="Current user profile")
async def get_me(current_user: CurrentUser) -> UserOut:
    return UserOut.model_validate(current_user)


@router.post("/change-password", response_model=MessageResponse, summary="Change own password")
async def change_password(
    body: ChangePasswordRequest, current_user: CurrentUser, db: DbSession
) -> MessageResponse:
    """Change the caller's password; clears a pending forced change."""
    await UserStore(db).change_password(current_user, body.old_password, body.new_password)
    return MessageResponse(message="Password changed successfully")


@router.post(
    "/request-password-reset",
    response_model=MessageResponse,
    summary="Ask an administrator to reset a forgotten password",
)
async def request_password_reset(
    body: PasswordResetRequestIn, db: DbSession
) -> MessageResponse:
    message = await PasswordResetService(db).request_reset(body.username)
    return MessageResponse(message=message)
