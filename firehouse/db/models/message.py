"""
Internal messaging models.

A message row carries a single ``recipient_id`` kept only as a legacy
placeholder (the first recipient). Who may see a thread is decided solely
by ``thread_participants``; a thread's id is the id of its first message.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from firehouse.db.base import Base, CreatedAtMixin, IntegerPrimaryKeyMixin, utcnow
from firehouse.db.models.files import Attachment
from firehouse.db.models.user import User


class Message(Base, IntegerPrimaryKeyMixin, CreatedAtMixin):
    __tablename__ = "messages"

    sender_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    recipient_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    subject: Mapped[str] = mapped_column(String(300), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    # Logical reference to the root message; no FK so threads survive root retention.
    thread_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    parent_message_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("messages.id", ondelete="SET NULL"), nullable=True
    )

    sender: Mapped[User] = relationship("User", foreign_keys=[sender_id], lazy="joined")
    attachments: Mapped[list[Attachment]] = relationship(
        "Attachment", lazy="selectin", order_by="Attachment.id", viewonly=True
    )

    def __repr__(self) -> str:
        return f"<Message {self.id} thread={self.thread_id}>"


class ThreadParticipant(Base, IntegerPrimaryKeyMixin):
    """Membership granting visibility of a thread. Mutable, independent of history."""

    __tablename__ = "thread_participants"
    __table_args__ = (
        UniqueConstraint("thread_id", "user_id", name="uq_thread_participants_thread_user"),
    )

    thread_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )


class MessageRead(Base, IntegerPrimaryKeyMixin):
    """First-view marker for a message; also backs read receipts."""

    __tablename__ = "message_reads"
    __table_args__ = (
        UniqueConstraint("user_id", "message_id", name="uq_message_reads_user_message"),
    )

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    message_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    read_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
