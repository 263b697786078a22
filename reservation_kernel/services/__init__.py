"""
Kernel services.

Stateful operations over the ORM models.  Services receive a session and
never commit; the caller owns the transaction boundary.
"""

from reservation_kernel.services.change_log_service import ChangeLogService
from reservation_kernel.services.notification_service import (
    ActionRef,
    BestEffortNotifier,
    DatabaseNotificationDispatcher,
    DedupKey,
    DedupRule,
    NotificationDispatcher,
    NotificationKind,
)
from reservation_kernel.services.queue_promotion import QueuePromotionService
from reservation_kernel.services.reservation_service import ReservationService
from reservation_kernel.services.user_directory import SqlUserDirectory, UserDirectory

__all__ = [
    "ActionRef",
    "BestEffortNotifier",
    "ChangeLogService",
    "DatabaseNotificationDispatcher",
    "DedupKey",
    "DedupRule",
    "NotificationDispatcher",
    "NotificationKind",
    "QueuePromotionService",
    "ReservationService",
    "SqlUserDirectory",
    "UserDirectory",
]
