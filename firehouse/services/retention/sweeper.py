"""
Periodic retention sweep.

Removes bulletins and messages past their retention window together with
their attachments and read markers, then drops participant rows and read
markers that no longer point at anything. The last run is persisted in
``maintenance_runs`` so restarts do not trigger an immediate re-run, and
the clock is injected so tests can move time.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from firehouse.config.settings import Settings
from firehouse.db.base import as_utc, utcnow
from firehouse.db.models.bulletin import Bulletin, BulletinRead
from firehouse.db.models.files import Attachment
from firehouse.db.models.maintenance import MaintenanceRun
from firehouse.db.models.message import Message, MessageRead, ThreadParticipant
from firehouse.db.session import atomic
from firehouse.services.files.storage import FileStorage

_log = structlog.get_logger(__name__)

Clock = Callable[[], datetime]

JOB_NAME = "retention"


@dataclass(frozen=True)
class SweepResult:
    bulletins_deleted: int
    messages_deleted: int
    participants_deleted: int
    files_discarded: int


class RetentionSweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        storage: FileStorage,
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings
        self._storage = storage
        self._clock = clock

    async def run_if_due(self) -> SweepResult | None:
        """Sweep unless the last recorded run is within the configured interval."""
        now = self._clock()
        async with self._session_factory() as db:
            result = await db.execute(
                select(MaintenanceRun).where(MaintenanceRun.job_name == JOB_NAME)
            )
            last_run = result.scalar_one_or_none()
            interval = timedelta(hours=self._settings.retention_interval_hours)
            if last_run is not None and now - as_utc(last_run.last_run_at) < interval:
                _log.debug("retention_sweep_not_due", last_run_at=str(last_run.last_run_at))
                return None
            return await self.sweep(db, now, last_run)

    async def sweep(
        self, db: AsyncSession, now: datetime, last_run: MaintenanceRun | None = None
    ) -> SweepResult:
        bulletin_cutoff = now - timedelta(days=self._settings.bulletin_retention_days)
        message_cutoff = now - timedelta(days=self._settings.message_retention_days)

        old_bulletins = select(Bulletin.id).where(Bulletin.created_at < bulletin_cutoff)
        old_messages = select(Message.id).where(Message.created_at < message_cutoff)
        no_sync = {"synchronize_session": False}

        async with atomic(db):
            paths = list(
                (
                    await db.execute(
                        select(Attachment.file_path).where(
                            or_(
                                Attachment.bulletin_id.in_(old_bulletins),
                                Attachment.message_id.in_(old_messages),
                            )
                        )
                    )
                ).scalars()
            )

            await db.execute(
                delete(BulletinRead).where(BulletinRead.bulletin_id.in_(old_bulletins)),
                execution_options=no_sync,
            )
            await db.execute(
                delete(Attachment).where(Attachment.bulletin_id.in_(old_bulletins)),
                execution_options=no_sync,
            )
            bulletins = await db.execute(
                delete(Bulletin).where(Bulletin.created_at < bulletin_cutoff),
                execution_options=no_sync,
            )

            await db.execute(
                update(Message)
                .where(Message.parent_message_id.in_(old_messages))
                .values(parent_message_id=None),
                execution_options=no_sync,
            )
            await db.execute(
                delete(MessageRead).where(MessageRead.message_id.in_(old_messages)),
                execution_options=no_sync,
            )
            await db.execute(
                delete(Attachment).where(Attachment.message_id.in_(old_messages)),
                execution_options=no_sync,
            )
            messages = await db.execute(
                delete(Message).where(Message.created_at < message_cutoff),
                execution_options=no_sync,
            )

            live_threads = select(Message.thread_id).where(Message.thread_id.is_not(None))
            participants = await db.execute(
                delete(ThreadParticipant).where(ThreadParticipant.thread_id.not_in(live_threads)),
                execution_options=no_sync,
            )
            await db.execute(
                delete(MessageRead).where(MessageRead.message_id.not_in(select(Message.id))),
                execution_options=no_sync,
            )
            await db.execute(
                delete(BulletinRead).where(BulletinRead.bulletin_id.not_in(select(Bulletin.id))),
                execution_options=no_sync,
            )

            if last_run is None:
                db.add(MaintenanceRun(job_name=JOB_NAME, last_run_at=now))
            else:
                last_run.last_run_at = now

        self._storage.discard(paths)
        outcome = SweepResult(
            bulletins_deleted=bulletins.rowcount or 0,
            messages_deleted=messages.rowcount or 0,
            participants_deleted=participants.rowcount or 0,
            files_discarded=len(paths),
        )
        _log.info(
            "retention_sweep_completed",
            bulletins_deleted=outcome.bulletins_deleted,
            messages_deleted=outcome.messages_deleted,
            participants_deleted=outcome.participants_deleted,
            files_discarded=outcome.files_discarded,
        )
        return outcome

    async def run_forever(self) -> None:
        """Background loop started by the application; cancelled on shutdown."""
        delay = self._settings.retention_check_interval_hours * 3600
        while True:
            try:
                await self.run_if_due()
            except Exception as exc:
                _log.error("retention_sweep_failed", error=str(exc), exc_info=True)
            await asyncio.sleep(delay)
