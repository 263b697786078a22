"""ORM models for the reservation kernel."""

from reservation_kernel.models.catalog import MIRRORED_FIELDS, PurchaseRecordModel
from reservation_kernel.models.change_log import ChangeLogModel
from reservation_kernel.models.equipment import EquipmentModel
from reservation_kernel.models.job_lease import JobLeaseModel
from reservation_kernel.models.notification import NotificationModel
from reservation_kernel.models.reservation import ReservationModel
from reservation_kernel.models.user import UserProfileModel

__all__ = [
    "MIRRORED_FIELDS",
    "PurchaseRecordModel",
    "ChangeLogModel",
    "EquipmentModel",
    "JobLeaseModel",
    "NotificationModel",
    "ReservationModel",
    "UserProfileModel",
]
