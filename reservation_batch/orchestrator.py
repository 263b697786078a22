"""
MaintenanceOrchestrator -- DI container for the maintenance system.

Contract:
    Wires the job mutex, the ordered step list, the retry policy and the
    lifecycle policy from a ``ReservationConfig``, and hands out the job,
    the scheduler and the trigger handler.  Single place where batch
    dependencies are composed.

Invariants enforced:
    - Clock injection: the job, its steps and the lease mutex share one
      Clock.
    - The kernel never imports this package; the orchestrator lives here.

Non-goals:
    - Does NOT start the scheduler automatically; the caller decides.
"""

from __future__ import annotations

from typing import Callable, Sequence

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from reservation_batch.job import MaintenanceJob
from reservation_batch.locks import JobMutex, build_job_mutex
from reservation_batch.scheduler import MaintenanceScheduler
from reservation_batch.steps.auto_expiry import AutoExpiryStep
from reservation_batch.steps.base import MaintenanceStep
from reservation_batch.steps.catalog_sync import CatalogSyncStep
from reservation_batch.steps.reservation_reminder import ReservationDeadlineReminderStep
from reservation_batch.steps.separation_warning import SeparationWarningStep
from reservation_batch.trigger import TriggerResponse, handle_maintenance_trigger
from reservation_config.bridges import (
    build_dedup_rule,
    build_lifecycle_policy,
    build_retry_policy,
)
from reservation_config.schema import ReservationConfig
from reservation_kernel.domain.clock import Clock, SystemClock
from reservation_kernel.logging_config import get_logger

logger = get_logger("batch.orchestrator")


def default_steps(config: ReservationConfig) -> tuple[MaintenanceStep, ...]:
    """The maintenance steps in run order."""
    rules = config.rules
    notifications = config.notifications
    steps: list[MaintenanceStep] = [
        SeparationWarningStep(
            warning_business_days=rules.separation_warning_business_days,
            dedup_rule=build_dedup_rule(notifications.separation_deadline_warning),
        ),
        AutoExpiryStep(dedup_rule=build_dedup_rule(notifications.reservation_expired)),
        ReservationDeadlineReminderStep(
            warning_business_days=rules.reservation_warning_business_days,
            dedup_rule=build_dedup_rule(notifications.reservation_deadline_warning),
        ),
    ]
    if config.maintenance.catalog_sync_enabled:
        steps.append(CatalogSyncStep())
    return tuple(steps)


class MaintenanceOrchestrator:
    def __init__(
        self,
        config: ReservationConfig,
        session_factory: Callable[[], Session],
        mutex: JobMutex,
        steps: Sequence[MaintenanceStep],
        clock: Clock | None = None,
    ) -> None:
        self._config = config
        self._session_factory = session_factory
        self._mutex = mutex
        self._steps = tuple(steps)
        self._clock = clock or SystemClock()
        self._job: MaintenanceJob | None = None

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_config(
        cls,
        config: ReservationConfig,
        engine: Engine,
        clock: Clock | None = None,
        session_factory: Callable[[], Session] | None = None,
        mutex: JobMutex | None = None,
        steps: Sequence[MaintenanceStep] | None = None,
    ) -> MaintenanceOrchestrator:
        """Create a fully wired orchestrator.

        Args:
            config: Active configuration.
            engine: Engine the job's sessions and the mutex bind to.
            clock: Optional clock for deterministic testing.
            session_factory: Optional factory; defaults to a sessionmaker
                bound to ``engine``.
            mutex: Optional mutex override; defaults to ``build_job_mutex``.
            steps: Optional step list; defaults to ``default_steps(config)``.
        """
        effective_clock = clock or SystemClock()
        factory = session_factory or sessionmaker(bind=engine, expire_on_commit=False)
        return cls(
            config=config,
            session_factory=factory,
            mutex=mutex or build_job_mutex(
                engine,
                session_factory=factory,
                ttl_seconds=config.maintenance.lease_ttl_seconds,
                clock=effective_clock,
            ),
            steps=steps if steps is not None else default_steps(config),
            clock=effective_clock,
        )

    # -------------------------------------------------------------------------
    # Components
    # -------------------------------------------------------------------------

    @property
    def job(self) -> MaintenanceJob:
        if self._job is None:
            self._job = MaintenanceJob(
                self._session_factory,
                self._mutex,
                self._steps,
                policy=build_lifecycle_policy(self._config),
                clock=self._clock,
                retry_policy=build_retry_policy(self._config),
                lock_name=self._config.maintenance.mutex_name,
            )
        return self._job

    def create_scheduler(self, tick_interval_seconds: float | None = None) -> MaintenanceScheduler:
        return MaintenanceScheduler(
            self.job,
            tick_interval_seconds=(
                tick_interval_seconds
                if tick_interval_seconds is not None
                else self._config.maintenance.tick_interval_seconds
            ),
        )

    def handle_trigger(
        self,
        authorization: str | None,
        correlation_id: str | None = None,
    ) -> TriggerResponse:
        return handle_maintenance_trigger(
            self.job,
            authorization=authorization,
            cron_secret=self._config.cron_secret,
            environment=self._config.environment,
            correlation_id=correlation_id,
            clock=self._clock,
        )

    @property
    def config(self) -> ReservationConfig:
        return self._config
