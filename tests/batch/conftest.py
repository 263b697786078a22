"""
Fixtures for maintenance job tests.

The job opens its own sessions, so data prepared through the shared test
session must be committed first (``commit``) and results must be read back
through a fresh session (``reader``).
"""

from typing import Callable, Sequence

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from reservation_batch.job import MaintenanceJob
from reservation_batch.locks import LeaseMutex
from reservation_batch.steps import (
    AutoExpiryStep,
    CatalogSyncStep,
    MaintenanceStep,
    ReservationDeadlineReminderStep,
    SeparationWarningStep,
)
from reservation_kernel.db.retry import RetryPolicy
from reservation_kernel.domain.lifecycle import EquipmentState
from reservation_kernel.models.equipment import EquipmentModel
from reservation_kernel.models.notification import NotificationModel
from reservation_kernel.services.reservation_service import ReservationService


@pytest.fixture
def commit(session) -> Callable[[], None]:
    return session.commit


@pytest.fixture
def lease_mutex(session_factory, clock) -> LeaseMutex:
    return LeaseMutex(session_factory, ttl_seconds=900, holder="test-runner", clock=clock)


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_job(session_factory, lease_mutex, policy, clock, sleeps):
    def _make(
        steps: Sequence[MaintenanceStep] | None = None,
        mutex=None,
        max_attempts: int = 3,
    ) -> MaintenanceJob:
        return MaintenanceJob(
            session_factory,
            mutex or lease_mutex,
            steps if steps is not None else (
                SeparationWarningStep(),
                AutoExpiryStep(),
                ReservationDeadlineReminderStep(),
                CatalogSyncStep(),
            ),
            policy=policy,
            clock=clock,
            retry_policy=RetryPolicy(max_attempts=max_attempts, base_delay_seconds=0.25),
            sleep=sleeps.append,
        )

    return _make


class Reader:
    """Read-only view over a fresh session per call."""

    def __init__(self, session_factory, policy, clock) -> None:
        self._session_factory = session_factory
        self._policy = policy
        self._clock = clock

    def _open(self) -> Session:
        return self._session_factory()

    def state(self, equipment_id) -> EquipmentState:
        with self._open() as s:
            return EquipmentState(s.get(EquipmentModel, equipment_id).state)

    def equipment(self, equipment_id):
        with self._open() as s:
            return ReservationService(s, policy=self._policy, clock=self._clock).get_equipment(
                equipment_id,
            )

    def reservation(self, reservation_id):
        with self._open() as s:
            return ReservationService(s, policy=self._policy, clock=self._clock).get_reservation(
                reservation_id,
            )

    def notifications(self, kind: str | None = None) -> list[NotificationModel]:
        with self._open() as s:
            query = select(NotificationModel).order_by(NotificationModel.created_at)
            if kind is not None:
                query = query.where(NotificationModel.kind == kind)
            return list(s.execute(query).scalars().all())


@pytest.fixture
def reader(session_factory, policy, clock) -> Reader:
    return Reader(session_factory, policy, clock)
