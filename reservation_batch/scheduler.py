"""
MaintenanceScheduler -- in-process polling scheduler.

Contract:
    Runs ``MaintenanceJob.run()`` every ``tick_interval_seconds`` on a
    background thread, for deployments without an external cron.  Several
    processes may run a scheduler at once; the job mutex makes sure only
    one of them does the work on each tick.

Invariants enforced:
    - A failing tick is logged and the loop keeps going.
    - ``stop()`` sets the stop event and joins; a run in progress finishes
      first.
"""

from __future__ import annotations

import threading

from reservation_batch.job import MaintenanceJob, MaintenanceResult
from reservation_kernel.logging_config import get_logger

logger = get_logger("batch.scheduler")


class MaintenanceScheduler:
    def __init__(self, job: MaintenanceJob, tick_interval_seconds: float = 3600.0):
        if tick_interval_seconds <= 0:
            raise ValueError("tick_interval_seconds must be positive")
        self._job = job
        self._tick_interval = tick_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_result: MaintenanceResult | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> MaintenanceResult | None:
        """Run the job once (public for testing); None if the run failed."""
        try:
            result = self._job.run()
        except Exception:
            logger.exception("scheduler_tick_failed")
            return None
        self._last_result = result
        return result

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="maintenance-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until ``stop()`` is called; True if it was."""
        return self._stop_event.wait(timeout=timeout)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def last_result(self) -> MaintenanceResult | None:
        return self._last_result

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._tick_interval)
