"""
Separation deadline warning.

For every Separated unit with a future deadline and an Approved reservation,
warn the requester and oversight exactly when today is N business days
before the deadline (N=10 by default).  Each (reservation, recipient) pair
is warned once; the dedup rule comes from configuration.
"""

from __future__ import annotations

from sqlalchemy import select

from reservation_batch.steps.base import ItemStatus, StepContext, StepItem
from reservation_kernel.domain.lifecycle import EquipmentState, ReservationStatus
from reservation_kernel.models.equipment import EquipmentModel
from reservation_kernel.models.reservation import ReservationModel
from reservation_kernel.services.notification_service import (
    ActionRef,
    DedupRule,
    NotificationKind,
)
from reservation_kernel.services.queue_promotion import describe_equipment


class SeparationWarningStep:
    name = "separation_warning"

    def __init__(
        self,
        warning_business_days: int = 10,
        dedup_rule: DedupRule | None = None,
    ) -> None:
        self._days = warning_business_days
        self._dedup_rule = dedup_rule or DedupRule()

    def prepare_items(self, ctx: StepContext) -> tuple[StepItem, ...]:
        rows = ctx.session.execute(
            select(
                EquipmentModel.id,
                EquipmentModel.deadline_date,
                ReservationModel.id.label("reservation_id"),
            )
            .join(ReservationModel, ReservationModel.equipment_id == EquipmentModel.id)
            .where(
                EquipmentModel.state == EquipmentState.SEPARATED.value,
                EquipmentModel.deadline_date > ctx.today,
                ReservationModel.status == ReservationStatus.APPROVED.value,
            )
            .order_by(EquipmentModel.deadline_date, EquipmentModel.id)
        ).all()
        calendar = ctx.policy.calendar
        return tuple(
            StepItem(
                key=f"{row.id}:{row.reservation_id}",
                equipment_id=row.id,
                reservation_id=row.reservation_id,
            )
            for row in rows
            if calendar.subtract_business_days(row.deadline_date, self._days) == ctx.today
        )

    def execute_item(self, item: StepItem, ctx: StepContext) -> ItemStatus:
        equipment = ctx.session.get(EquipmentModel, item.equipment_id)
        reservation = ctx.session.get(ReservationModel, item.reservation_id)
        if (
            equipment is None
            or reservation is None
            or equipment.state != EquipmentState.SEPARATED.value
            or reservation.status != ReservationStatus.APPROVED.value
        ):
            return ItemStatus.SKIPPED

        sent = ctx.notifier.notify_once(
            [reservation.requester_id, *ctx.directory.oversight_user_ids()],
            rule=self._dedup_rule,
            kind=NotificationKind.SEPARATION_DEADLINE_WARNING,
            title="Separation deadline approaching",
            message=(
                f"The separation of equipment ({describe_equipment(equipment)}) "
                f"expires on {equipment.deadline_date.isoformat()}: "
                f"{self._days} business days left."
            ),
            reference_id=reservation.id,
            metadata={
                "equipment_id": str(equipment.id),
                "deadline_date": equipment.deadline_date.isoformat(),
                "business_days_left": self._days,
            },
            action_ref=ActionRef.for_equipment(equipment.id),
            priority="high",
        )
        return ItemStatus.APPLIED if sent else ItemStatus.SKIPPED
