"""Database model registry. Import all models here so Alembic can discover them."""

from firehouse.db.models.bulletin import Bulletin, BulletinRead
from firehouse.db.models.files import Attachment, LibraryCategory, LibraryFile
from firehouse.db.models.maintenance import MaintenanceRun
from firehouse.db.models.message import Message, MessageRead, ThreadParticipant
from firehouse.db.models.user import (
    PasswordResetRequest,
    ResetStatus,
    User,
    UserRole,
    UserStatus,
)

__all__ = [
    "Attachment",
    "Bulletin",
    "BulletinRead",
    "LibraryCategory",
    "LibraryFile",
    "MaintenanceRun",
    "Message",
    "MessageRead",
    "PasswordResetRequest",
    "ResetStatus",
    "ThreadParticipant",
    "User",
    "UserRole",
    "UserStatus",
]
