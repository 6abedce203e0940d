"""
Threaded internal messaging.

Each message row stores a single legacy ``recipient_id``; who can see a
thread is decided only by ``thread_participants``. A new thread takes the
id of its first message, which is assigned in two steps inside the same
transaction: insert with a null thread id, flush, then copy the row id.

Leaving a conversation removes the caller's participant row and nothing
else. A later reply re-adds only the recipients it names explicitly.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import structlog
from fastapi import UploadFile
from sqlalchemy import and_, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from firehouse.core.errors import ErrorCode, ForbiddenError, NotFoundError, ValidationError
from firehouse.db.base import utcnow
from firehouse.db.models.bulletin import BulletinRead
from firehouse.db.models.files import Attachment
from firehouse.db.models.message import Message, MessageRead, ThreadParticipant
from firehouse.db.models.user import User, UserStatus
from firehouse.db.session import atomic, insert_ignoring_conflicts
from firehouse.services.files.storage import FileStorage

_log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class InboxEntry:
    """Latest message of one thread the user participates in."""

    thread_id: int
    latest: Message
    message_count: int
    participant_names: str
    unread_count: int


@dataclass(frozen=True)
class ThreadMessage:
    message: Message
    read_by: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class ReadStatus:
    bulletins: list[int]
    messages: list[int]


class MessageStore:
    def __init__(self, db: AsyncSession, storage: FileStorage) -> None:
        self._db = db
        self._storage = storage

    # ── Participation ─────────────────────────────────────────────────── #

    async def is_participant(self, thread_id: int, user_id: int) -> bool:
        result = await self._db.execute(
            select(ThreadParticipant.id).where(
                ThreadParticipant.thread_id == thread_id,
                ThreadParticipant.user_id == user_id,
            )
        )
        return result.scalar_one_or_none() is not None

    async def _require_participant(self, thread_id: int, user_id: int) -> None:
        if not await self.is_participant(thread_id, user_id):
            raise ForbiddenError(
                "You are not a participant in this conversation",
                code=ErrorCode.THREAD_ACCESS_DENIED,
            )

    async def _thread_exists(self, thread_id: int) -> bool:
        result = await self._db.execute(
            select(Message.id).where(Message.thread_id == thread_id).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def get_message(self, message_id: int) -> Message:
        message = await self._db.get(Message, message_id, populate_existing=True)
        if message is None:
            raise NotFoundError("Message", message_id, code=ErrorCode.MESSAGE_NOT_FOUND)
        return message

    # ── Sending ──────────────────────────────────────────────────────── #

    async def _validate_recipients(
        self, sender_id: int, recipient_ids: Iterable[int]
    ) -> list[int]:
        recipients = [rid for rid in dict.fromkeys(recipient_ids) if rid != sender_id]
        if not recipients:
            raise ValidationError("At least one recipient is required")

        result = await self._db.execute(
            select(User.id).where(User.id.in_(recipients), User.status == UserStatus.ACTIVE)
        )
        found = set(result.scalars().all())
        missing = [rid for rid in recipients if rid not in found]
        if missing:
            raise ValidationError(
                "Unknown or inactive recipient", detail={"recipient_ids": missing}
            )
        return recipients

    async def send(
        self,
        sender: User,
        recipient_ids: Iterable[int],
        subject: str,
        body: str,
        *,
        thread_id: int | None = None,
        parent_message_id: int | None = None,
        uploads: Sequence[UploadFile] = (),
    ) -> Message:
        """
        Start a thread or reply to one.

        The sender and every named recipient are upserted into the thread's
        participants in the same transaction as the message and its
        attachment rows.
        """
        recipients = await self._validate_recipients(sender.id, recipient_ids)

        if thread_id is not None:
            if not await self._thread_exists(thread_id):
                raise NotFoundError("Thread", thread_id, code=ErrorCode.THREAD_NOT_FOUND)
            await self._require_participant(thread_id, sender.id)
        if parent_message_id is not None:
            parent = await self.get_message(parent_message_id)
            if thread_id is None or parent.thread_id != thread_id:
                raise ValidationError(
                    "Parent message does not belong to this thread",
                    detail={"parent_message_id": parent_message_id},
                )

        stored = await self._storage.save_all(uploads)
        try:
            async with atomic(self._db):
                message = Message(
                    sender_id=sender.id,
                    recipient_id=recipients[0],
                    subject=subject,
                    body=body,
                    thread_id=thread_id,
                    parent_message_id=parent_message_id,
                )
                self._db.add(message)
                await self._db.flush()
                if message.thread_id is None:
                    message.thread_id = message.id
                    await self._db.flush()

                await insert_ignoring_conflicts(
                    self._db,
                    ThreadParticipant,
                    [
                        {"thread_id": message.thread_id, "user_id": uid}
                        for uid in [sender.id, *recipients]
                    ],
                    conflict_columns=["thread_id", "user_id"],
                )
                for item in stored:
                    self._db.add(Attachment(message_id=message.id, **item.as_columns()))
                await self._db.flush()
        except Exception:
            self._storage.discard(item.file_path for item in stored)
            raise

        _log.info(
            "message_sent",
            message_id=message.id,
            thread_id=message.thread_id,
            recipients=len(recipients),
            attachments=len(stored),
        )
        return message

    # ── Reading ──────────────────────────────────────────────────────── #

    async def get_inbox(self, user_id: int) -> list[InboxEntry]:
        """One entry per participating thread, most recent activity first."""
        my_threads = select(ThreadParticipant.thread_id).where(
            ThreadParticipant.user_id == user_id
        )
        latest = (
            select(
                Message.thread_id.label("thread_id"),
                func.max(Message.id).label("latest_id"),
                func.count(Message.id).label("message_count"),
            )
            .where(Message.thread_id.in_(my_threads))
            .group_by(Message.thread_id)
            .subquery()
        )
        rows = (
            await self._db.execute(
                select(Message, latest.c.message_count)
                .join(latest, Message.id == latest.c.latest_id)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .execution_options(populate_existing=True)
            )
        ).all()
        if not rows:
            return []

        thread_ids = [message.thread_id for message, _ in rows]

        unread_rows = await self._db.execute(
            select(Message.thread_id, func.count(Message.id))
            .outerjoin(
                MessageRead,
                and_(MessageRead.message_id == Message.id, MessageRead.user_id == user_id),
            )
            .where(
                Message.thread_id.in_(thread_ids),
                Message.sender_id != user_id,
                MessageRead.id.is_(None),
            )
            .group_by(Message.thread_id)
        )
        unread = {thread_id: count for thread_id, count in unread_rows.all()}

        name_rows = await self._db.execute(
            select(ThreadParticipant.thread_id, User.name)
            .join(User, User.id == ThreadParticipant.user_id)
            .where(ThreadParticipant.thread_id.in_(thread_ids), User.id != user_id)
        )
        names: dict[int, list[str]] = defaultdict(list)
        for thread_id, name in name_rows.all():
            names[thread_id].append(name)

        return [
            InboxEntry(
                thread_id=message.thread_id,
                latest=message,
                message_count=count,
                participant_names=", ".join(sorted(names[message.thread_id])),
                unread_count=unread.get(message.thread_id, 0),
            )
            for message, count in rows
        ]

    async def get_sent(self, user_id: int) -> list[Message]:
        result = await self._db.execute(
            select(Message)
            .where(Message.sender_id == user_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_thread(self, thread_id: int, requester_id: int) -> list[ThreadMessage]:
        """Messages oldest first, each with read receipts from the other participants."""
        await self._require_participant(thread_id, requester_id)

        messages = list(
            (
                await self._db.execute(
                    select(Message)
                    .where(Message.thread_id == thread_id)
                    .order_by(Message.created_at, Message.id)
                    .execution_options(populate_existing=True)
                )
            ).scalars()
        )

        participants = select(ThreadParticipant.user_id).where(
            ThreadParticipant.thread_id == thread_id
        )
        receipts = await self._db.execute(
            select(MessageRead.message_id, MessageRead.user_id)
            .where(
                MessageRead.message_id.in_([m.id for m in messages]),
                MessageRead.user_id.in_(participants),
            )
            .order_by(MessageRead.read_at, MessageRead.id)
        )
        readers: dict[int, list[int]] = defaultdict(list)
        for message_id, reader_id in receipts.all():
            readers[message_id].append(reader_id)

        return [
            ThreadMessage(
                message=m,
                read_by=[uid for uid in readers[m.id] if uid != m.sender_id],
            )
            for m in messages
        ]

    async def get_participants(self, thread_id: int, requester_id: int) -> list[User]:
        await self._require_participant(thread_id, requester_id)
        result = await self._db.execute(
            select(User)
            .join(ThreadParticipant, ThreadParticipant.user_id == User.id)
            .where(ThreadParticipant.thread_id == thread_id)
            .order_by(User.name, User.id)
        )
        return list(result.scalars().all())

    # ── Mutations on existing threads ────────────────────────────────── #

    async def delete_participation(self, message_id: int, user_id: int) -> None:
        """Leave the conversation containing ``message_id``; history is kept."""
        message = await self.get_message(message_id)
        thread_id = message.thread_id or message.id
        await self._require_participant(thread_id, user_id)

        async with atomic(self._db):
            await self._db.execute(
                delete(ThreadParticipant).where(
                    ThreadParticipant.thread_id == thread_id,
                    ThreadParticipant.user_id == user_id,
                )
            )
        _log.info("thread_left", thread_id=thread_id)

    async def mark_read(self, user_id: int, message_id: int) -> None:
        await self.get_message(message_id)
        async with atomic(self._db):
            await insert_ignoring_conflicts(
                self._db,
                MessageRead,
                [{"user_id": user_id, "message_id": message_id, "read_at": utcnow()}],
                conflict_columns=["user_id", "message_id"],
            )
        _log.debug("message_marked_read", message_id=message_id)

    async def _find_attachment(self, message_id: int, attachment_id: int) -> Attachment:
        result = await self._db.execute(
            select(Attachment).where(
                Attachment.id == attachment_id, Attachment.message_id == message_id
            )
        )
        attachment = result.scalar_one_or_none()
        if attachment is None:
            raise NotFoundError("Attachment", attachment_id, code=ErrorCode.ATTACHMENT_NOT_FOUND)
        return attachment

    async def list_attachments(self, message_id: int, requester_id: int) -> list[Attachment]:
        message = await self.get_message(message_id)
        await self._require_participant(message.thread_id or message.id, requester_id)
        return list(message.attachments)

    async def get_attachment(
        self, message_id: int, attachment_id: int, requester_id: int
    ) -> tuple[Attachment, Path]:
        message = await self.get_message(message_id)
        await self._require_participant(message.thread_id or message.id, requester_id)
        attachment = await self._find_attachment(message_id, attachment_id)
        return attachment, self._storage.resolve(attachment.file_path)

    async def remove_attachment(self, message_id: int, attachment_id: int, actor_id: int) -> None:
        """Only the sender of the message may drop one of its attachments."""
        message = await self.get_message(message_id)
        if message.sender_id != actor_id:
            raise ForbiddenError("Only the sender can remove attachments from a message")
        attachment = await self._find_attachment(message_id, attachment_id)

        path = attachment.file_path
        async with atomic(self._db):
            await self._db.execute(delete(Attachment).where(Attachment.id == attachment_id))

        self._storage.discard([path])
        _log.info(
            "message_attachment_removed", message_id=message_id, attachment_id=attachment_id
        )

    async def read_status(self, user_id: int) -> ReadStatus:
        """Ids of every bulletin and message the user has opened."""
        bulletins = await self._db.execute(
            select(BulletinRead.bulletin_id)
            .where(BulletinRead.user_id == user_id)
            .order_by(BulletinRead.bulletin_id)
        )
        messages = await self._db.execute(
            select(MessageRead.message_id)
            .where(MessageRead.user_id == user_id)
            .order_by(MessageRead.message_id)
        )
        return ReadStatus(
            bulletins=list(bulletins.scalars().all()),
            messages=list(messages.scalars().all()),
        )
