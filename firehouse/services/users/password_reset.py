"""Admin-approved password reset workflow."""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from firehouse.core.errors import ConflictError, ErrorCode, ForbiddenError, NotFoundError
from firehouse.core.security import hash_password
from firehouse.db.base import utcnow
from firehouse.db.models.user import PasswordResetRequest, ResetStatus, User
from firehouse.db.session import atomic
from firehouse.services.access.ranking import Role
from firehouse.services.users.store import UserStore, require_chief

_log = structlog.get_logger(__name__)

RESET_ACKNOWLEDGEMENT = (
    "If the account exists, a password reset request has been sent to the administrators."
)


class PasswordResetService:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db
        self._users = UserStore(db)

    async def request_reset(self, username: str) -> str:
        """
        File a reset request for ``username``.

        The same acknowledgement is returned whether or not the account exists
        and whether or not a request is already pending.
        """
        user = await self._users.find_by_username(username)
        if user is None:
            _log.info("password_reset_requested_unknown_user")
            return RESET_ACKNOWLEDGEMENT

        existing = await self._db.execute(
            select(PasswordResetRequest.id).where(
                PasswordResetRequest.user_id == user.id,
                PasswordResetRequest.status == ResetStatus.PENDING,
            )
        )
        if existing.scalar_one_or_none() is not None:
            return RESET_ACKNOWLEDGEMENT

        try:
            async with atomic(self._db):
                self._db.add(PasswordResetRequest(user_id=user.id, status=ResetStatus.PENDING))
        except IntegrityError:
            # A concurrent request won the partial unique index.
            return RESET_ACKNOWLEDGEMENT

        _log.info("password_reset_requested", target_user_id=user.id)
        return RESET_ACKNOWLEDGEMENT

    async def list_pending_resets(self, actor: User) -> list[PasswordResetRequest]:
        require_chief(actor)
        result = await self._db.execute(
            select(PasswordResetRequest)
            .where(PasswordResetRequest.status == ResetStatus.PENDING)
            .order_by(PasswordResetRequest.created_at.desc(), PasswordResetRequest.id.desc())
        )
        return list(result.scalars().all())

    async def _get_pending(self, request_id: int) -> PasswordResetRequest:
        request = await self._db.get(PasswordResetRequest, request_id)
        if request is None:
            raise NotFoundError(
                "Password reset request", request_id, code=ErrorCode.RESET_REQUEST_NOT_FOUND
            )
        if request.status != ResetStatus.PENDING:
            raise ConflictError(
                ErrorCode.RESET_REQUEST_RESOLVED, "Password reset request was already resolved"
            )
        return request

    async def approve_reset(self, request_id: int, new_password: str, actor: User) -> None:
        """Set a temporary password the user must change at next login."""
        require_chief(actor)
        request = await self._get_pending(request_id)
        target = await self._users.get(request.user_id)
        if Role.SUPER_USER in target.roles and Role.SUPER_USER not in actor.roles:
            raise ForbiddenError("Only Super Users can reset a Super User's password")

        async with atomic(self._db):
            target.password_hash = hash_password(new_password)
            target.must_change_password = True
            request.status = ResetStatus.APPROVED
            request.resolved_at = utcnow()
            request.resolved_by = actor.id

        _log.info("password_reset_approved", request_id=request_id, target_user_id=target.id)

    async def reject_reset(self, request_id: int, actor: User) -> None:
        require_chief(actor)
        request = await self._get_pending(request_id)
        async with atomic(self._db):
            request.status = ResetStatus.REJECTED
            request.resolved_at = utcnow()
            request.resolved_by = actor.id
        _log.info("password_reset_rejected", request_id=request_id)
