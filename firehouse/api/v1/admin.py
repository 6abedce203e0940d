"""Admin console: registration approval, account management and password resets."""

from __future__ import annotations

from fastapi import APIRouter

from firehouse.api.deps import ActiveUser, AttachmentStorage, DbSession
from firehouse.schemas.auth import MessageResponse
from firehouse.schemas.users import (
    AdminResetPasswordRequest,
    AdminUserOut,
    ApproveUserRequest,
    CreateUserRequest,
    PasswordResetRequestOut,
    UpdateUserRequest,
)
from firehouse.services.users.password_reset import PasswordResetService
from firehouse.services.users.store import UserStore, require_admin

router = APIRouter(prefix="/admin", tags=["admin"])


# ── Registration approval ─────────────────────────────────────────────── #


@router.get(
    "/pending-users",
    response_model=list[AdminUserOut],
    summary="List registrations awaiting approval",
)
async def pending_users(current_user: ActiveUser, db: DbSession) -> list[AdminUserOut]:
    users = await UserStore(db).list_pending(current_user)
    return [AdminUserOut.model_validate(user) for user in users]


@router.post(
    "/approve-user/{user_id}",
    response_model=AdminUserOut,
    summary="Approve a registration and assign a role",
)
async def approve_user(
    user_id: int, body: ApproveUserRequest, current_user: ActiveUser, db: DbSession
) -> AdminUserOut:
    user = await UserStore(db).approve(user_id, body.assigned_role, current_user)
    return AdminUserOut.model_validate(user)


@router.post(
    "/reject-user/{user_id}",
    response_model=MessageResponse,
    summary="Reject (delete) a pending registration",
)
async def reject_user(user_id: int, current_user: ActiveUser, db: DbSession) -> MessageResponse:
    await UserStore(db).reject(user_id, current_user)
    return MessageResponse(message="User rejected")


# ── Account management ────────────────────────────────────────────────── #


@router.get("/users", response_model=list[AdminUserOut], summary="List all accounts")
async def list_users(current_user: ActiveUser, db: DbSession) -> list[AdminUserOut]:
    require_admin(current_user)
    users = await UserStore(db).list_users()
    return [AdminUserOut.model_validate(user) for user in users]


@router.post(
    "/users",
    response_model=AdminUserOut,
    status_code=201,
    summary="Create an active account",
)
async def create_user(
    body: CreateUserRequest, current_user: ActiveUser, db: DbSession
) -> AdminUserOut:
    user = await UserStore(db).create_user(
        current_user,
        email=body.email,
        name=body.name,
        username=body.username,
        password=body.password,
        roles=body.roles,
    )
    return AdminUserOut.model_validate(user)


@router.put("/users/{user_id}", response_model=AdminUserOut, summary="Edit an account")
async def update_user(
    user_id: int, body: UpdateUserRequest, current_user: ActiveUser, db: DbSession
) -> AdminUserOut:
    user = await UserStore(db).update_user(
        current_user,
        user_id,
        email=body.email,
        name=body.name,
        username=body.username,
        roles=body.roles,
    )
    return AdminUserOut.model_validate(user)


@router.delete("/users/{user_id}", response_model=MessageResponse, summary="Delete an account")
async def delete_user(
    user_id: int,
    current_user: ActiveUser,
    db: DbSession,
    storage: AttachmentStorage,
) -> MessageResponse:
    """Delete the account and all content it authored; super users are protected."""
    orphaned = await UserStore(db).delete_user(current_user, user_id)
    storage.discard(orphaned)
    return MessageResponse(message="User deleted")


@router.post(
    "/users/{user_id}/reset-password",
    response_model=MessageResponse,
    summary="Set a new password for an account",
)
async def reset_password(
    user_id: int, body: AdminResetPasswordRequest, current_user: ActiveUser, db: DbSession
) -> MessageResponse:
    await UserStore(db).reset_password(current_user, user_id, body.new_password)
    return MessageResponse(message="Password reset")


# ── Password reset requests ───────────────────────────────────────────── #


@router.get(
    "/password-reset-requests",
    response_model=list[PasswordResetRequestOut],
    summary="List pending password reset requests",
)
async def list_reset_requests(
    current_user: ActiveUser, db: DbSession
) -> list[PasswordResetRequestOut]:
    requests = await PasswordResetService(db).list_pending_resets(current_user)
    return [
        PasswordResetRequestOut(
            id=req.id,
            user_id=req.user_id,
            username=req.user.username,
            name=req.user.name,
            email=req.user.email,
            status=req.status,
            created_at=req.created_at,
        )
        for req in requests
    ]


@router.post(
    "/password-reset-requests/{request_id}/approve",
    response_model=MessageResponse,
    summary="Approve a reset request with a temporary password",
)
async def approve_reset_request(
    request_id: int,
    body: AdminResetPasswordRequest,
    current_user: ActiveUser,
    db: DbSession,
) -> MessageResponse:
    await PasswordResetService(db).approve_reset(request_id, body.new_password, current_user)
    return MessageResponse(message="Password reset approved")


@router.post(
    "/password-reset-requests/{request_id}/reject",
    response_model=MessageResponse,
    summary="Reject a reset request",
)
async def reject_reset_request(
    request_id: int, current_user: ActiveUser, db: DbSession
) -> MessageResponse:
    await PasswordResetService(db).reject_reset(request_id, current_user)
    return MessageResponse(message="Password reset request rejected")
