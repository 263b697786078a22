"""
MaintenanceStep protocol and supporting types.

Contract:
    A step selects the rows it may act on (``prepare_items``) and handles one
    of them at a time (``execute_item``).  The job commits each item on its
    own, so one failing row never undoes the others.  Steps must be idempotent: running the whole job twice with
    the same clock produces no additional writes.

Non-goals:
    - Steps do NOT manage transactions or retries; the job owns both.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session

from reservation_kernel.domain.policy import LifecyclePolicy
from reservation_kernel.services.notification_service import BestEffortNotifier
from reservation_kernel.services.reservation_service import ReservationService
from reservation_kernel.services.user_directory import UserDirectory


class ItemStatus(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class StepItem:
    """One row a step will look at."""

    key: str
    equipment_id: UUID | None = None
    reservation_id: UUID | None = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StepContext:
    """Session-bound collaborators for one step run."""

    session: Session
    today: date
    now: datetime
    policy: LifecyclePolicy
    reservations: ReservationService
    notifier: BestEffortNotifier
    directory: UserDirectory


@dataclass(frozen=True)
class StepResult:
    name: str
    applied: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.applied + self.skipped + self.failed

    def to_dict(self) -> dict[str, int]:
        return {"applied": self.applied, "skipped": self.skipped, "failed": self.failed}


@runtime_checkable
class MaintenanceStep(Protocol):
    @property
    def name(self) -> str: ...

    def prepare_items(self, ctx: StepContext) -> tuple[StepItem, ...]:
        """Select eligible rows; read-only."""
        ...

    def execute_item(self, item: StepItem, ctx: StepContext) -> ItemStatus:
        """Handle one row; the job commits or rolls back after it."""
        ...
