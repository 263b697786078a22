"""
reservation_batch -- leader-elected maintenance for equipment reservations.

The daily job (deadline warnings, auto-expiry, reminders, catalog sync), the
mutex providers that elect its leader, an in-process scheduler and the cron
trigger handler.  Built on ``reservation_kernel``; the kernel never imports
this package.
"""

from reservation_batch.job import MaintenanceJob, MaintenanceResult
from reservation_batch.locks import (
    JobMutex,
    LeaseMutex,
    PostgresAdvisoryMutex,
    build_job_mutex,
)
from reservation_batch.orchestrator import MaintenanceOrchestrator, default_steps
from reservation_batch.scheduler import MaintenanceScheduler
from reservation_batch.trigger import TriggerResponse, handle_maintenance_trigger

__all__ = [
    "JobMutex",
    "LeaseMutex",
    "MaintenanceJob",
    "MaintenanceOrchestrator",
    "MaintenanceResult",
    "MaintenanceScheduler",
    "PostgresAdvisoryMutex",
    "TriggerResponse",
    "build_job_mutex",
    "default_steps",
    "handle_maintenance_trigger",
]
