"""Bulletin (announcement) and bulletin read-marker models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from firehouse.db.base import Base, CreatedAtMixin, IntegerPrimaryKeyMixin, utcnow
from firehouse.db.models.files import Attachment
from firehouse.db.models.user import User


class Bulletin(Base, IntegerPrimaryKeyMixin, CreatedAtMixin):
    """Category-tagged announcement."""

    __tablename__ = "bulletins"

    title: Mapped[str] = mapped_column(String(300), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    # Free-form on purpose: the authorization engine handles unknown categories.
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    author: Mapped[User] = relationship("User", lazy="joined")
    attachments: Mapped[list[Attachment]] = relationship(
        "Attachment", lazy="selectin", order_by="Attachment.id", viewonly=True
    )

    def __repr__(self) -> str:
        return f"<Bulletin {self.id} [{self.category}]>"


class BulletinRead(Base, IntegerPrimaryKeyMixin):
    """First-view marker; drives unread badges only."""

    __tablename__ = "bulletin_reads"
    __table_args__ = (
        UniqueConstraint("user_id", "bulletin_id", name="uq_bulletin_reads_user_bulletin"),
    )

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bulletin_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("bulletins.id", ondelete="CASCADE"), nullable=False, index=True
    )
    read_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
