"""Maintenance steps, in the order the job runs them."""

from reservation_batch.steps.auto_expiry import AutoExpiryStep
from reservation_batch.steps.base import (
    ItemStatus,
    MaintenanceStep,
    StepContext,
    StepItem,
    StepResult,
)
from reservation_batch.steps.catalog_sync import CatalogSyncStep
from reservation_batch.steps.reservation_reminder import ReservationDeadlineReminderStep
from reservation_batch.steps.separation_warning import SeparationWarningStep

__all__ = [
    "AutoExpiryStep",
    "CatalogSyncStep",
    "ItemStatus",
    "MaintenanceStep",
    "ReservationDeadlineReminderStep",
    "SeparationWarningStep",
    "StepContext",
    "StepItem",
    "StepResult",
]
