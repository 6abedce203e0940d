"""
User and role-set persistence.

Owns registration and approval, admin account management and the role
set invariants:
  - a user's role set is never empty;
  - ``primary_role`` always equals the highest-ranked member of the set.

Every mutating method runs inside ``atomic`` so a failure part-way through
leaves no partial user, role or password state behind.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from firehouse.core.errors import (
    AuthError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from firehouse.core.security import hash_password, verify_password
from firehouse.db.models.bulletin import Bulletin, BulletinRead
from firehouse.db.models.files import Attachment, LibraryFile
from firehouse.db.models.message import Message, MessageRead, ThreadParticipant
from firehouse.db.models.user import PasswordResetRequest, User, UserRole, UserStatus
from firehouse.db.session import atomic
from firehouse.services.access.ranking import (
    Role,
    at_least,
    has_override,
    highest_role,
    is_known_role,
    order_by_rank,
)

_log = structlog.get_logger(__name__)

_DUPLICATE_MESSAGE = "Username or email already exists"


# ── Authorization helpers ─────────────────────────────────────────────── #


def require_admin(actor: User) -> None:
    if not has_override(actor.roles):
        raise ForbiddenError("Unauthorized - Admin access required")


def require_chief(actor: User) -> None:
    if not at_least(actor.roles, Role.CHIEF):
        raise ForbiddenError("Unauthorized - Chief or Admin access required")


def check_assignable(actor: User, roles: Iterable[str]) -> None:
    """Only super users hand out super_user; only admins hand out admin."""
    roles = set(roles)
    if Role.SUPER_USER in roles and Role.SUPER_USER not in actor.roles:
        raise ForbiddenError("Only Super Users can assign the Super User role")
    if Role.ADMIN in roles and not has_override(actor.roles):
        raise ForbiddenError("Only administrators can assign the Admin role")


def validate_roles(roles: Iterable[str]) -> list[str]:
    """Return the deduplicated role set, most privileged first."""
    ordered = order_by_rank(roles)
    if not ordered:
        raise ValidationError("A user must hold at least one role")
    unknown = [role for role in ordered if not is_known_role(role)]
    if unknown:
        raise ValidationError(f"Invalid role: {unknown[0]}", detail={"invalid_roles": unknown})
    return ordered


class UserStore:
    """Service for user accounts and their role sets."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    # ── Queries ──────────────────────────────────────────────────────── #

    async def find(self, user_id: int) -> User | None:
        result = await self._db.execute(
            select(User).where(User.id == user_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, user_id: int) -> User:
        user = await self.find(user_id)
        if user is None:
            raise NotFoundError("User", user_id, code=ErrorCode.USER_NOT_FOUND)
        return user

    async def find_by_username(self, username: str) -> User | None:
        result = await self._db.execute(
            select(User).where(func.lower(User.username) == username.strip().lower())
        )
        return result.scalar_one_or_none()

    async def list_users(self) -> list[User]:
        result = await self._db.execute(select(User).order_by(User.name, User.id))
        return list(result.scalars().all())

    async def list_active(self) -> list[User]:
        result = await self._db.execute(
            select(User).where(User.status == UserStatus.ACTIVE).order_by(User.name, User.id)
        )
        return list(result.scalars().all())

    async def users_by_role(self, role: str) -> list[User]:
        result = await self._db.execute(
            select(User)
            .join(UserRole, UserRole.user_id == User.id)
            .where(UserRole.role == role, User.status == UserStatus.ACTIVE)
            .order_by(User.name, User.id)
        )
        return list(result.scalars().unique().all())

    async def list_pending(self, actor: User) -> list[User]:
        require_chief(actor)
        result = await self._db.execute(
            select(User)
            .where(User.status == UserStatus.PENDING)
            .order_by(User.created_at.desc(), User.id.desc())
        )
        return list(result.scalars().all())

    async def _ensure_unique(
        self, email: str, username: str, exclude_id: int | None = None
    ) -> None:
        query = select(User.id).where(
            or_(func.lower(User.username) == username.lower(), User.email == email)
        )
        if exclude_id is not None:
            query = query.where(User.id != exclude_id)
        if (await self._db.execute(query.limit(1))).scalar_one_or_none() is not None:
            raise ConflictError(ErrorCode.USER_ALREADY_EXISTS, _DUPLICATE_MESSAGE)

    # ── Role set ─────────────────────────────────────────────────────── #

    async def _apply_roles(self, user: User, roles: list[str]) -> None:
        """Replace the role set in place and recompute the primary role."""
        wanted = set(roles)
        current = {link.role: link for link in user.role_links}
        for role, link in current.items():
            if role not in wanted:
                user.role_links.remove(link)
        for role in order_by_rank(wanted - current.keys()):
            user.role_links.append(UserRole(role=role))
        await self._db.flush()

        user.primary_role = highest_role(wanted)
        await self._db.flush()

    async def set_roles(self, user_id: int, roles: Iterable[str]) -> User:
        """Atomically replace a user's full role set."""
        ordered = validate_roles(roles)
        async with atomic(self._db):
            user = await self.get(user_id)
            await self._apply_roles(user, ordered)
        _log.info("user_roles_set", target_user_id=user_id, roles=ordered)
        return user

    # ── Registration & authentication ───────────────────────────────── #

    async def register(self, email: str, name: str, username: str, password: str) -> User:
        """Create a pending account holding only the firefighter role."""
        email = email.strip().lower()
        username = username.strip()
        try:
            async with atomic(self._db):
                await self._ensure_unique(email, username)
                user = User(
                    email=email,
                    name=name.strip(),
                    username=username,
                    password_hash=hash_password(password),
                    status=UserStatus.PENDING,
                    primary_role=Role.FIREFIGHTER.value,
                    role_links=[UserRole(role=Role.FIREFIGHTER.value)],
                )
                self._db.add(user)
                await self._db.flush()
        except IntegrityError as exc:
            raise ConflictError(ErrorCode.USER_ALREADY_EXISTS, _DUPLICATE_MESSAGE) from exc

        _log.info("user_registered", target_user_id=user.id, username=user.username)
        return user

    async def authenticate(self, username: str, password: str) -> User:
        user = await self.find_by_username(username)
        if user is None or not verify_password(password, user.password_hash):
            _log.warning("login_failed", username=username)
            raise AuthError(ErrorCode.AUTH_INVALID_CREDENTIALS, "Invalid credentials")

        if user.status != UserStatus.ACTIVE:
            raise ForbiddenError(
                "Account is pending approval or has been rejected",
                code=ErrorCode.AUTH_ACCOUNT_PENDING,
            )

        if not user.role_links:
            # Accounts imported before user_roles existed only carry primary_role.
            async with atomic(self._db):
                await self._apply_roles(user, validate_roles([user.primary_role]))
            _log.info("user_roles_repaired", target_user_id=user.id)

        return user

    async def change_password(self, user: User, old_password: str, new_password: str) -> None:
        if not verify_password(old_password, user.password_hash):
            raise AuthError(ErrorCode.AUTH_INVALID_CREDENTIALS, "Current password is incorrect")
        async with atomic(self._db):
            user.password_hash = hash_password(new_password)
            user.must_change_password = False
        _log.info("password_changed", target_user_id=user.id)

    # ── Approval workflow ───────────────────────────────────────────── #

    async def _get_pending(self, user_id: int) -> User:
        user = await self.get(user_id)
        if user.status != UserStatus.PENDING:
            raise ValidationError(
                "User is not awaiting approval",
                detail={"code": ErrorCode.USER_NOT_PENDING.value},
            )
        return user

    async def approve(self, user_id: int, assigned_role: str, actor: User) -> User:
        require_chief(actor)
        validate_roles([assigned_role])
        check_assignable(actor, [assigned_role])

        async with atomic(self._db):
            user = await self._get_pending(user_id)
            user.status = UserStatus.ACTIVE
            await self._apply_roles(user, [*user.roles, assigned_role])

        _log.info("user_approved", target_user_id=user_id, assigned_role=assigned_role)
        return user

    async def reject(self, user_id: int, actor: User) -> None:
        """Reject a registration by deleting the pending account outright."""
        require_chief(actor)
        async with atomic(self._db):
            user = await self._get_pending(user_id)
            await self._db.execute(
                delete(PasswordResetRequest).where(PasswordResetRequest.user_id == user_id)
            )
            await self._db.delete(user)
        _log.info("user_rejected", target_user_id=user_id)

    # ── Admin account management ─────────────────────────────────────── #

    async def create_user(
        self,
        actor: User,
        *,
        email: str,
        name: str,
        username: str,
        password: str,
        roles: Iterable[str],
    ) -> User:
        require_admin(actor)
        ordered = validate_roles(roles)
        check_assignable(actor, ordered)

        email = email.strip().lower()
        username = username.strip()
        try:
            async with atomic(self._db):
                await self._ensure_unique(email, username)
                user = User(
                    email=email,
                    name=name.strip(),
                    username=username,
                    password_hash=hash_password(password),
                    status=UserStatus.ACTIVE,
                    primary_role=highest_role(ordered),
                    role_links=[UserRole(role=role) for role in ordered],
                )
                self._db.add(user)
                await self._db.flush()
        except IntegrityError as exc:
            raise ConflictError(ErrorCode.USER_ALREADY_EXISTS, _DUPLICATE_MESSAGE) from exc

        _log.info("user_created", target_user_id=user.id, roles=ordered)
        return user

    async def update_user(
        self,
        actor: User,
        user_id: int,
        *,
        email: str,
        name: str,
        username: str,
        roles: Iterable[str],
    ) -> User:
        require_admin(actor)
        ordered = validate_roles(roles)
        target = await self.get(user_id)
        if Role.SUPER_USER in ordered or Role.SUPER_USER in target.roles:
            if Role.SUPER_USER not in actor.roles:
                raise ForbiddenError("Only Super Users can edit the Super User role")
        check_assignable(actor, set(ordered) - set(target.roles))

        email = email.strip().lower()
        username = username.strip()
        try:
            async with atomic(self._db):
                await self._ensure_unique(email, username, exclude_id=user_id)
                target.email = email
                target.name = name.strip()
                target.username = username
                await self._apply_roles(target, ordered)
        except IntegrityError as exc:
            raise ConflictError(ErrorCode.USER_ALREADY_EXISTS, _DUPLICATE_MESSAGE) from exc

        _log.info("user_updated", target_user_id=user_id, roles=ordered)
        return target

    async def reset_password(self, actor: User, user_id: int, new_password: str) -> None:
        require_admin(actor)
        target = await self.get(user_id)
        if Role.SUPER_USER in target.roles and Role.SUPER_USER not in actor.roles:
            raise ForbiddenError("Only Super Users can reset a Super User's password")
        async with atomic(self._db):
            target.password_hash = hash_password(new_password)
        _log.info("password_reset_by_admin", target_user_id=user_id)

    async def delete_user(self, actor: User, user_id: int) -> list[str]:
        """
        Delete an account together with everything that references it.

        Returns the on-disk paths of files whose metadata rows were removed;
        the caller discards them once the transaction has committed.
        """
        require_admin(actor)
        if user_id == actor.id:
            raise ValidationError("Cannot delete your own account")
        target = await self.get(user_id)
        if Role.SUPER_USER in target.roles or target.primary_role == Role.SUPER_USER:
            raise ForbiddenError(
                "Cannot delete Super User accounts", code=ErrorCode.USER_PROTECTED
            )

        db = self._db
        async with atomic(db):
            message_ids = select(Message.id).where(
                or_(Message.sender_id == user_id, Message.recipient_id == user_id)
            )
            bulletin_ids = select(Bulletin.id).where(Bulletin.author_id == user_id)

            orphaned = list(
                (
                    await db.execute(
                        select(Attachment.file_path).where(
                            or_(
                                Attachment.message_id.in_(message_ids),
                                Attachment.bulletin_id.in_(bulletin_ids),
                            )
                        )
                    )
                ).scalars()
            )
            orphaned += list(
                (
                    await db.execute(
                        select(LibraryFile.file_path).where(LibraryFile.uploaded_by == user_id)
                    )
                ).scalars()
            )

            await db.execute(delete(UserRole).where(UserRole.user_id == user_id))
            await db.execute(delete(BulletinRead).where(BulletinRead.user_id == user_id))
            await db.execute(delete(MessageRead).where(MessageRead.user_id == user_id))
            await db.execute(
                delete(PasswordResetRequest).where(PasswordResetRequest.user_id == user_id)
            )
            await db.execute(
                update(PasswordResetRequest)
                .where(PasswordResetRequest.resolved_by == user_id)
                .values(resolved_by=None)
            )
            await db.execute(delete(ThreadParticipant).where(ThreadParticipant.user_id == user_id))

            await db.execute(delete(MessageRead).where(MessageRead.message_id.in_(message_ids)))
            await db.execute(delete(Attachment).where(Attachment.message_id.in_(message_ids)))
            await db.execute(
                update(Message)
                .where(Message.parent_message_id.in_(message_ids))
                .values(parent_message_id=None)
            )
            await db.execute(
                delete(Message).where(
                    or_(Message.sender_id == user_id, Message.recipient_id == user_id)
                )
            )

            await db.execute(delete(BulletinRead).where(BulletinRead.bulletin_id.in_(bulletin_ids)))
            await db.execute(delete(Attachment).where(Attachment.bulletin_id.in_(bulletin_ids)))
            await db.execute(delete(Bulletin).where(Bulletin.author_id == user_id))

            await db.execute(delete(LibraryFile).where(LibraryFile.uploaded_by == user_id))
            await db.execute(delete(User).where(User.id == user_id))

        _log.info("user_deleted", target_user_id=user_id, files_orphaned=len(orphaned))
        return orphaned
