"""
Bulletin board persistence.

Category gating is delegated to the authorization engine; this store adds
the author-may-delete rule and keeps attachment rows and files in step
with their bulletin.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import structlog
from fastapi import UploadFile
from sqlalchemy import and_, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from firehouse.core.errors import ErrorCode, ForbiddenError, NotFoundError, ValidationError
from firehouse.db.base import utcnow
from firehouse.db.models.bulletin import Bulletin, BulletinRead
from firehouse.db.models.files import Attachment
from firehouse.db.models.user import User
from firehouse.db.session import atomic, insert_ignoring_conflicts
from firehouse.services.access.policy import BulletinCategory, can_delete, can_post, can_view
from firehouse.services.files.storage import FileStorage

_log = structlog.get_logger(__name__)


def _require_deletable(bulletin: Bulletin, actor: User) -> None:
    if not (can_delete(actor.roles, bulletin.category) or bulletin.author_id == actor.id):
        raise ForbiddenError("You do not have permission to delete this bulletin")


@dataclass(frozen=True)
class BulletinView:
    bulletin: Bulletin
    is_read: bool


@dataclass(frozen=True)
class BulletinSummary:
    id: int
    category: str
    created_at: datetime
    is_read: bool


class BulletinStore:
    def __init__(self, db: AsyncSession, storage: FileStorage) -> None:
        self._db = db
        self._storage = storage

    async def get(self, bulletin_id: int) -> Bulletin:
        bulletin = await self._db.get(Bulletin, bulletin_id, populate_existing=True)
        if bulletin is None:
            raise NotFoundError("Bulletin", bulletin_id, code=ErrorCode.BULLETIN_NOT_FOUND)
        return bulletin

    async def post(
        self,
        *,
        title: str,
        body: str,
        category: str,
        author: User,
        uploads: Sequence[UploadFile] = (),
    ) -> Bulletin:
        """
        Publish a bulletin with its attachments.

        Files are written before the transaction opens; if the transaction
        fails they are removed again so no file outlives a rolled-back row.
        """
        if not can_post(author.roles, category):
            raise ForbiddenError("You do not have permission to post in this category")
        if category not in {c.value for c in BulletinCategory}:
            raise ValidationError("Unknown bulletin category", detail={"category": category})

        stored = await self._storage.save_all(uploads)
        try:
            async with atomic(self._db):
                bulletin = Bulletin(
                    title=title, body=body, category=category, author_id=author.id
                )
                self._db.add(bulletin)
                await self._db.flush()
                for item in stored:
                    self._db.add(Attachment(bulletin_id=bulletin.id, **item.as_columns()))
                await self._db.flush()
        except Exception:
            self._storage.discard(item.file_path for item in stored)
            raise

        _log.info(
            "bulletin_posted",
            bulletin_id=bulletin.id,
            category=category,
            attachments=len(stored),
        )
        return bulletin

    async def remove(self, bulletin_id: int, actor: User) -> None:
        bulletin = await self.get(bulletin_id)
        _require_deletable(bulletin, actor)

        paths = [attachment.file_path for attachment in bulletin.attachments]
        async with atomic(self._db):
            await self._db.execute(
                delete(BulletinRead).where(BulletinRead.bulletin_id == bulletin_id)
            )
            await self._db.execute(delete(Attachment).where(Attachment.bulletin_id == bulletin_id))
            await self._db.execute(delete(Bulletin).where(Bulletin.id == bulletin_id))

        self._storage.discard(paths)
        _log.info("bulletin_deleted", bulletin_id=bulletin_id)

    async def list_by_category(self, category: str, viewer: User) -> list[BulletinView]:
        """Bulletins in ``category`` newest first; empty when the viewer may not see it."""
        if not can_view(viewer.roles, category):
            return []

        result = await self._db.execute(
            select(Bulletin, BulletinRead.id.is_not(None))
            .outerjoin(
                BulletinRead,
                and_(BulletinRead.bulletin_id == Bulletin.id, BulletinRead.user_id == viewer.id),
            )
            .where(Bulletin.category == category)
            .execution_options(populate_existing=True)
            .order_by(Bulletin.created_at.desc(), Bulletin.id.desc())
        )
        return [BulletinView(bulletin=row[0], is_read=bool(row[1])) for row in result.all()]

    async def list_visible(self, viewer: User) -> list[BulletinSummary]:
        result = await self._db.execute(
            select(Bulletin.id, Bulletin.category, Bulletin.created_at, BulletinRead.id)
            .outerjoin(
                BulletinRead,
                and_(BulletinRead.bulletin_id == Bulletin.id, BulletinRead.user_id == viewer.id),
            )
            .order_by(Bulletin.created_at.desc(), Bulletin.id.desc())
        )
        roles = viewer.roles
        return [
            BulletinSummary(
                id=bulletin_id,
                category=category,
                created_at=created_at,
                is_read=read_id is not None,
            )
            for bulletin_id, category, created_at, read_id in result.all()
            if can_view(roles, category)
        ]

    async def mark_read(self, user_id: int, bulletin_id: int) -> None:
        """Record a first view. Repeated calls are no-ops."""
        await self.get(bulletin_id)
        async with atomic(self._db):
            await insert_ignoring_conflicts(
                self._db,
                BulletinRead,
                [{"user_id": user_id, "bulletin_id": bulletin_id, "read_at": utcnow()}],
                conflict_columns=["user_id", "bulletin_id"],
            )
        _log.debug("bulletin_marked_read", bulletin_id=bulletin_id)

    async def _get_viewable(self, bulletin_id: int, viewer: User) -> Bulletin:
        bulletin = await self.get(bulletin_id)
        if not can_view(viewer.roles, bulletin.category):
            raise ForbiddenError("You do not have permission to view this bulletin")
        return bulletin

    async def list_attachments(self, bulletin_id: int, viewer: User) -> list[Attachment]:
        bulletin = await self._get_viewable(bulletin_id, viewer)
        return list(bulletin.attachments)

    async def _find_attachment(self, bulletin_id: int, attachment_id: int) -> Attachment:
        result = await self._db.execute(
            select(Attachment).where(
                Attachment.id == attachment_id, Attachment.bulletin_id == bulletin_id
            )
        )
        attachment = result.scalar_one_or_none()
        if attachment is None:
            raise NotFoundError("Attachment", attachment_id, code=ErrorCode.ATTACHMENT_NOT_FOUND)
        return attachment

    async def get_attachment(
        self, bulletin_id: int, attachment_id: int, viewer: User
    ) -> tuple[Attachment, Path]:
        await self._get_viewable(bulletin_id, viewer)
        attachment = await self._find_attachment(bulletin_id, attachment_id)
        return attachment, self._storage.resolve(attachment.file_path)

    async def remove_attachment(self, bulletin_id: int, attachment_id: int, actor: User) -> None:
        """Drop one attachment; allowed to whoever may delete the bulletin itself."""
        _require_deletable(await self.get(bulletin_id), actor)
        attachment = await self._find_attachment(bulletin_id, attachment_id)

        path = attachment.file_path
        async with atomic(self._db):
            await self._db.execute(delete(Attachment).where(Attachment.id == attachment_id))

        self._storage.discard([path])
        _log.info(
            "bulletin_attachment_removed", bulletin_id=bulletin_id, attachment_id=attachment_id
        )
