"""
Tests for MaintenanceScheduler.

Validates tick() behaviour, failure containment and the start/stop
lifecycle of the background thread.
"""

import threading

import pytest

from reservation_batch.job import MaintenanceResult
from reservation_batch.scheduler import MaintenanceScheduler


class RecordingJob:
    """Counts runs and signals after each one."""

    def __init__(self, fail: bool = False):
        self.calls = 0
        self.fail = fail
        self.ran = threading.Event()

    def run(self, correlation_id=None):
        self.calls += 1
        self.ran.set()
        if self.fail:
            raise RuntimeError("database unreachable")
        return MaintenanceResult(executed=True)


class TestTick:
    def test_tick_runs_job(self):
        job = RecordingJob()
        scheduler = MaintenanceScheduler(job, tick_interval_seconds=60)

        result = scheduler.tick()

        assert result.executed
        assert job.calls == 1
        assert scheduler.last_result is result

    def test_failed_tick_returns_none(self, captured_logs):
        scheduler = MaintenanceScheduler(RecordingJob(fail=True), tick_interval_seconds=60)

        assert scheduler.tick() is None
        assert scheduler.last_result is None
        failure = next(r for r in captured_logs() if r["message"] == "scheduler_tick_failed")
        assert failure["exc_type"] == "RuntimeError"

    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            MaintenanceScheduler(RecordingJob(), tick_interval_seconds=0)


class TestLifecycle:
    def test_start_runs_immediately_and_stop_joins(self):
        job = RecordingJob()
        scheduler = MaintenanceScheduler(job, tick_interval_seconds=3600)

        scheduler.start()
        try:
            assert job.ran.wait(timeout=5)
            assert scheduler.is_running
        finally:
            scheduler.stop(timeout=5)

        assert not scheduler.is_running
        assert job.calls == 1

    def test_start_is_idempotent(self):
        job = RecordingJob()
        scheduler = MaintenanceScheduler(job, tick_interval_seconds=3600)
        scheduler.start()
        try:
            job.ran.wait(timeout=5)
            scheduler.start()
            assert job.calls == 1
        finally:
            scheduler.stop(timeout=5)

    def test_loop_survives_failing_ticks(self):
        job = RecordingJob(fail=True)
        scheduler = MaintenanceScheduler(job, tick_interval_seconds=0.01)
        scheduler.start()
        try:
            for _ in range(3):
                assert job.ran.wait(timeout=5)
                job.ran.clear()
            assert scheduler.is_running
        finally:
            scheduler.stop(timeout=5)
        assert job.calls >= 3

    def test_wait_returns_after_stop(self):
        scheduler = MaintenanceScheduler(RecordingJob(), tick_interval_seconds=3600)
        assert not scheduler.wait(timeout=0.01)
        scheduler.stop()
        assert scheduler.wait(timeout=0.01)
