"""Member directory endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from firehouse.api.deps import ActiveUser, DbSession
from firehouse.core.errors import ErrorCode, NotFoundError
from firehouse.schemas.users import UserSummary
from firehouse.services.users.store import UserStore

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserSummary], summary="List active members")
async def list_users(current_user: ActiveUser, db: DbSession) -> list[UserSummary]:
    """Active accounts only; used to pick message recipients."""
    users = await UserStore(db).list_active()
    return [UserSummary.model_validate(user) for user in users]


@router.get(
    "/by-role/{role}",
    response_model=list[UserSummary],
    summary="List active members holding a role",
)
async def users_by_role(role: str, current_user: ActiveUser, db: DbSession) -> list[UserSummary]:
    users = await UserStore(db).users_by_role(role)
    return [UserSummary.model_validate(user) for user in users]


@router.get("/{user_id}", response_model=UserSummary, summary="Get one member")
async def get_user(user_id: int, current_user: ActiveUser, db: DbSession) -> UserSummary:
    user = await UserStore(db).find(user_id)
    if user is None or not user.is_active:
        raise NotFoundError("User", user_id, code=ErrorCode.USER_NOT_FOUND)
    return UserSummary.model_validate(user)
