"""
Module: reservation_kernel.models.job_lease
Responsibility: Lease rows backing the table-based job mutex, used where the
    database has no session-level advisory lock (SQLite, tests).

Invariants enforced:
    - ``name`` is unique: at most one lease row per lock name.  A lease is
      held while ``holder`` is set and ``expires_at`` is in the future.
    - Lease timestamps are naive UTC; unlike the business tables they never
      become calendar dates.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from reservation_kernel.db.base import Base


class JobLeaseModel(Base):
    __tablename__ = "job_leases"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    holder: Mapped[str | None] = mapped_column(String(100), nullable=True)
    acquired_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)

    def __repr__(self) -> str:
        return f"<JobLease {self.name} holder={self.holder} expires={self.expires_at}>"
