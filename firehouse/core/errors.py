"""
Structured error taxonomy for the portal.

Every application error has:
  - A stable error code (prefixed by domain)
  - An HTTP status code
  - A human-readable message
  - An optional detail dict for machine consumers

No internal state (stack traces, DB internals) is ever surfaced to clients.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Stable error codes. Never reuse a retired code."""

    # Auth
    AUTH_INVALID_CREDENTIALS = "AUTH_001"
    AUTH_TOKEN_INVALID = "AUTH_002"
    AUTH_INSUFFICIENT_PERMISSIONS = "AUTH_003"
    AUTH_ACCOUNT_PENDING = "AUTH_004"
    AUTH_PASSWORD_CHANGE_REQUIRED = "AUTH_005"

    # Users
    USER_NOT_FOUND = "USR_001"
    USER_ALREADY_EXISTS = "USR_002"
    USER_NOT_PENDING = "USR_003"
    USER_PROTECTED = "USR_004"

    # Bulletins
    BULLETIN_NOT_FOUND = "BUL_001"

    # Messages
    MESSAGE_NOT_FOUND = "MSG_001"
    THREAD_NOT_FOUND = "MSG_002"
    THREAD_ACCESS_DENIED = "MSG_003"

    # Files
    ATTACHMENT_NOT_FOUND = "FIL_001"
    FILE_MISSING_ON_DISK = "FIL_002"
    FILE_TOO_LARGE = "FIL_003"
    TOO_MANY_FILES = "FIL_004"

    # Password reset
    RESET_REQUEST_NOT_FOUND = "RST_001"
    RESET_REQUEST_RESOLVED = "RST_002"

    # Generic
    VALIDATION_ERROR = "GEN_001"
    INTERNAL_ERROR = "GEN_002"
    NOT_FOUND = "GEN_003"
    STORAGE_ERROR = "GEN_004"


class AppError(Exception):
    """Base class for all application errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        http_status: int = 500,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status
        self.detail = detail or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": {
                "code": self.code.value,
                "message": self.message,
                "detail": self.detail,
            },
        }


# ── Typed convenience subclasses ──────────────────────────────────────── #


class NotFoundError(AppError):
    def __init__(
        self,
        entity: str,
        entity_id: int | str | None = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ) -> None:
        detail: dict[str, Any] = {"entity": entity}
        if entity_id is not None:
            detail["id"] = entity_id
        super().__init__(
            code=code,
            message=f"{entity} not found",
            http_status=404,
            detail=detail,
        )


class AuthError(AppError):
    """Authentication failed: the caller could not be identified."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(code=code, message=message, http_status=401)


class ForbiddenError(AppError):
    """The caller is authenticated but not allowed to perform the action."""

    def __init__(
        self,
        message: str = "Insufficient permissions",
        code: ErrorCode = ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS,
    ) -> None:
        super().__init__(code=code, message=message, http_status=403)


class ValidationError(AppError):
    def __init__(self, message: str, detail: dict[str, Any] | None = None) -> None:
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            http_status=400,
            detail=detail,
        )


class ConflictError(AppError):
    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(code=code, message=message, http_status=409)


class StorageError(AppError):
    """Unexpected persistence failure. The message shown to clients is generic."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            code=ErrorCode.STORAGE_ERROR,
            message="A storage error occurred. Please try again later.",
            http_status=500,
            detail={"operation": operation},
        )
