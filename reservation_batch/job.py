"""
MaintenanceJob -- leader-elected daily maintenance run.

Contract:
    ``run()`` acquires the named job mutex without blocking.  If another
    instance holds it the call returns ``executed=False`` having written
    nothing; this is the normal outcome of overlapping triggers.  Otherwise
    every step runs in order and the mutex is released in ``finally``,
    whatever happened.  The mutex is renewed before every step and every
    item; once it is lost the run stops with ``MaintenanceLockError``.

Transactions:
    Each step runs in its own session.  Each row commits on its own: a
    ``ReservationKernelError`` on one row rolls back that row only and is
    counted as failed.  No write transaction is open while the mutex is
    renewed.  Transient database errors retry the
    whole step (steps are idempotent); anything else propagates after the
    mutex is released.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Sequence
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from reservation_batch.locks import JobMutex
from reservation_batch.steps.base import (
    ItemStatus,
    MaintenanceStep,
    StepContext,
    StepResult,
)
from reservation_kernel.db.retry import RetryPolicy, call_with_retry
from reservation_kernel.domain.clock import Clock, SystemClock
from reservation_kernel.domain.policy import LifecyclePolicy
from reservation_kernel.exceptions import MaintenanceLockError, ReservationKernelError
from reservation_kernel.logging_config import LogContext, get_logger
from reservation_kernel.services.change_log_service import ChangeLogService
from reservation_kernel.services.notification_service import (
    BestEffortNotifier,
    DatabaseNotificationDispatcher,
)
from reservation_kernel.services.reservation_service import ReservationService
from reservation_kernel.services.user_directory import SqlUserDirectory

logger = get_logger("batch.maintenance")

DEFAULT_LOCK_NAME = "equipment_maintenance"


@dataclass(frozen=True)
class MaintenanceResult:
    executed: bool
    run_id: UUID | None = None
    steps: tuple[StepResult, ...] = ()
    duration_ms: int = 0

    def step(self, name: str) -> StepResult | None:
        return next((s for s in self.steps if s.name == name), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "executed": self.executed,
            "run_id": str(self.run_id) if self.run_id else None,
            "duration_ms": self.duration_ms,
            "steps": {s.name: s.to_dict() for s in self.steps},
        }


class MaintenanceJob:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        mutex: JobMutex,
        steps: Sequence[MaintenanceStep],
        *,
        policy: LifecyclePolicy | None = None,
        clock: Clock | None = None,
        retry_policy: RetryPolicy | None = None,
        lock_name: str = DEFAULT_LOCK_NAME,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session_factory = session_factory
        self._mutex = mutex
        self._steps = tuple(steps)
        self._policy = policy or LifecyclePolicy()
        self._clock = clock or SystemClock()
        self._retry = retry_policy or RetryPolicy()
        self._lock_name = lock_name
        self._sleep = sleep

    @property
    def step_names(self) -> tuple[str, ...]:
        return tuple(step.name for step in self._steps)

    def run(self, correlation_id: str | None = None) -> MaintenanceResult:
        run_id = uuid4()
        started = time.monotonic()
        with LogContext.bind(correlation_id=correlation_id or str(run_id), job_run_id=run_id):
            acquired = call_with_retry(
                lambda: self._mutex.try_acquire(self._lock_name),
                self._retry,
                operation="maintenance_mutex_acquire",
                sleep=self._sleep,
            )
            if not acquired:
                logger.info("maintenance_skipped_lock_held", extra={"lock_name": self._lock_name})
                return MaintenanceResult(executed=False, run_id=run_id)

            logger.info(
                "maintenance_started",
                extra={"lock_name": self._lock_name, "steps": list(self.step_names)},
            )
            try:
                results = tuple(self._run_step(step) for step in self._steps)
            finally:
                self._release()

            duration_ms = int((time.monotonic() - started) * 1000)
            logger.info(
                "maintenance_completed",
                extra={
                    "duration_ms": duration_ms,
                    "steps": {r.name: r.to_dict() for r in results},
                },
            )
            return MaintenanceResult(
                executed=True, run_id=run_id, steps=results, duration_ms=duration_ms,
            )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _release(self) -> None:
        try:
            self._mutex.release(self._lock_name)
        except MaintenanceLockError as exc:
            logger.warning(
                "maintenance_lock_lost_before_release",
                extra={"lock_name": self._lock_name, "error": str(exc)},
            )

    def _keep_alive(self) -> None:
        held = call_with_retry(
            lambda: self._mutex.renew(self._lock_name),
            self._retry,
            operation="maintenance_mutex_renew",
            sleep=self._sleep,
        )
        if not held:
            logger.error("maintenance_lock_lost", extra={"lock_name": self._lock_name})
            raise MaintenanceLockError(self._lock_name, "lost during run")

    def _run_step(self, step: MaintenanceStep) -> StepResult:
        self._keep_alive()
        return call_with_retry(
            lambda: self._run_step_once(step),
            self._retry,
            operation=f"maintenance_step:{step.name}",
            sleep=self._sleep,
        )

    def _run_step_once(self, step: MaintenanceStep) -> StepResult:
        session = self._session_factory()
        try:
            ctx = self._build_context(session)
            items = step.prepare_items(ctx)
            session.commit()
            counts = {status: 0 for status in ItemStatus}
            for item in items:
                self._keep_alive()
                try:
                    status = step.execute_item(item, ctx)
                    session.commit()
                except ReservationKernelError as exc:
                    session.rollback()
                    status = ItemStatus.FAILED
                    logger.warning(
                        "maintenance_item_failed",
                        extra={
                            "step": step.name,
                            "item_key": item.key,
                            "error_code": exc.code,
                            "error": str(exc),
                        },
                    )
                counts[status] += 1
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        result = StepResult(
            name=step.name,
            applied=counts[ItemStatus.APPLIED],
            skipped=counts[ItemStatus.SKIPPED],
            failed=counts[ItemStatus.FAILED],
        )
        logger.info("maintenance_step_completed", extra={"step": step.name, **result.to_dict()})
        return result

    def _build_context(self, session: Session) -> StepContext:
        directory = SqlUserDirectory(session, self._policy.oversight_roles)
        tz = self._policy.timezone
        notifier = BestEffortNotifier(
            DatabaseNotificationDispatcher(session, self._clock, timezone=tz),
            session=session,
            clock=self._clock,
            timezone=tz,
        )
        reservations = ReservationService(
            session,
            policy=self._policy,
            clock=self._clock,
            notifier=notifier,
            directory=directory,
            change_log=ChangeLogService(session, self._clock, timezone=tz),
        )
        return StepContext(
            session=session,
            today=self._clock.today(tz),
            now=self._clock.local_now(tz),
            policy=self._policy,
            reservations=reservations,
            notifier=notifier,
            directory=directory,
        )
