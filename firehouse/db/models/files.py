"""
Stored-file metadata: bulletin/message attachments and the file library.

File contents live on disk under a generated name; rows only reference them.
"""

from __future__ import annotations

from enum import StrEnum

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from firehouse.db.base import Base, CreatedAtMixin, IntegerPrimaryKeyMixin
from firehouse.db.models.user import User


class LibraryCategory(StrEnum):
    GENERAL = "general"
    TRAINING = "training"
    SOPS = "sops"
    FORMS = "forms"


class StoredFileMixin:
    filename: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    original_filename: Mapped[str] = mapped_column(String(500), nullable=False)
    file_path: Mapped[str] = mapped_column(String(1000), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(200), nullable=False)


class Attachment(Base, IntegerPrimaryKeyMixin, CreatedAtMixin, StoredFileMixin):
    """File attached to exactly one bulletin or one message."""

    __tablename__ = "attachments"
    __table_args__ = (
        CheckConstraint(
            "(bulletin_id IS NULL) <> (message_id IS NULL)",
            name="single_owner",
        ),
    )

    bulletin_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("bulletins.id", ondelete="CASCADE"), nullable=True, index=True
    )
    message_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=True, index=True
    )

    def __repr__(self) -> str:
        return f"<Attachment {self.original_filename}>"


class LibraryFile(Base, IntegerPrimaryKeyMixin, CreatedAtMixin, StoredFileMixin):
    """Shared department document (SOPs, forms, training material)."""

    __tablename__ = "library_files"

    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    uploaded_by: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    uploader: Mapped[User] = relationship("User", lazy="joined")

    def __repr__(self) -> str:
        return f"<LibraryFile {self.title} [{self.category}]>"
