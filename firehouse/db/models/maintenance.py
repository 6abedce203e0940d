"""Persisted last-run bookkeeping for periodic maintenance jobs."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from firehouse.db.base import Base, IntegerPrimaryKeyMixin


class MaintenanceRun(Base, IntegerPrimaryKeyMixin):
    __tablename__ = "maintenance_runs"

    job_name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    last_run_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<MaintenanceRun {self.job_name} @ {self.last_run_at}>"
