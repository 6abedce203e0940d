"""
Database models for users, their role sets and password reset requests.

A user's authoritative role set lives in ``user_roles``. The
``primary_role`` column mirrors its highest-ranked member for legacy
readers and is recomputed by the user store whenever the set changes.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from firehouse.db.base import (
    Base,
    CreatedAtMixin,
    IntegerPrimaryKeyMixin,
    TimestampMixin,
    enum_values,
)
from firehouse.services.access.ranking import Role, order_by_rank


class UserStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    # Legacy rows only; rejected registrations are deleted.
    REJECTED = "rejected"


class ResetStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class User(Base, IntegerPrimaryKeyMixin, TimestampMixin):
    """Portal account."""

    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[UserStatus] = mapped_column(
        SAEnum(UserStatus, name="user_status", native_enum=False, values_callable=enum_values),
        default=UserStatus.PENDING,
        nullable=False,
        index=True,
    )
    must_change_password: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    primary_role: Mapped[str] = mapped_column(
        String(50), default=Role.FIREFIGHTER.value, nullable=False
    )

    role_links: Mapped[list[UserRole]] = relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def roles(self) -> list[str]:
        """Role set ordered from most to least privileged."""
        return order_by_rank(link.role for link in self.role_links)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<User {self.username}>"


Index("uq_users_username_lower", func.lower(User.username), unique=True)


class UserRole(Base, IntegerPrimaryKeyMixin):
    """One member of a user's role set."""

    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(50), nullable=False)

    user: Mapped[User] = relationship("User", back_populates="role_links")

    def __repr__(self) -> str:
        return f"<UserRole {self.user_id}:{self.role}>"


class PasswordResetRequest(Base, IntegerPrimaryKeyMixin, CreatedAtMixin):
    """A user's request to have an administrator reset their password."""

    __tablename__ = "password_reset_requests"
    __table_args__ = (
        Index(
            "uq_password_reset_requests_pending_user",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[ResetStatus] = mapped_column(
        SAEnum(ResetStatus, name="reset_status", native_enum=False, values_callable=enum_values),
        default=ResetStatus.PENDING,
        nullable=False,
        index=True,
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    user: Mapped[User] = relationship("User", foreign_keys=[user_id], lazy="joined")

    def __repr__(self) -> str:
        return f"<PasswordResetRequest {self.user_id} {self.status}>"
