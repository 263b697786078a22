"""
Checklist deadline reminder for Reserved units.

Fires when today is N business days (2 by default) before the deadline of a
Reserved unit that still has a Pending lead.  De-duplicated on message text
within a short lookback window, so a reminder can repeat if the deadline is
moved and the same condition comes round again.
"""

from __future__ import annotations

from sqlalchemy import select

from reservation_batch.steps.base import ItemStatus, StepContext, StepItem
from reservation_kernel.domain.lifecycle import EquipmentState, ReservationStatus
from reservation_kernel.models.equipment import EquipmentModel
from reservation_kernel.models.reservation import ReservationModel
from reservation_kernel.services.notification_service import (
    ActionRef,
    DedupKey,
    DedupRule,
    NotificationKind,
)
from reservation_kernel.services.queue_promotion import describe_equipment


class ReservationDeadlineReminderStep:
    name = "reservation_deadline_reminder"

    def __init__(
        self,
        warning_business_days: int = 2,
        dedup_rule: DedupRule | None = None,
    ) -> None:
        self._days = warning_business_days
        self._dedup_rule = dedup_rule or DedupRule(key=DedupKey.MESSAGE, lookback_days=3)

    def prepare_items(self, ctx: StepContext) -> tuple[StepItem, ...]:
        rows = ctx.session.execute(
            select(EquipmentModel.id, EquipmentModel.deadline_date)
            .where(
                EquipmentModel.state == EquipmentState.RESERVED.value,
                EquipmentModel.deadline_date >= ctx.today,
            )
            .order_by(EquipmentModel.deadline_date, EquipmentModel.id)
        ).all()
        calendar = ctx.policy.calendar
        return tuple(
            StepItem(key=str(row.id), equipment_id=row.id)
            for row in rows
            if calendar.subtract_business_days(row.deadline_date, self._days) == ctx.today
        )

    def execute_item(self, item: StepItem, ctx: StepContext) -> ItemStatus:
        equipment = ctx.session.get(EquipmentModel, item.equipment_id)
        if equipment is None or equipment.state != EquipmentState.RESERVED.value:
            return ItemStatus.SKIPPED
        lead = ctx.session.execute(
            select(ReservationModel)
            .where(
                ReservationModel.equipment_id == equipment.id,
                ReservationModel.status == ReservationStatus.PENDING.value,
            )
            .order_by(ReservationModel.created_at, ReservationModel.id)
            .limit(1)
        ).scalar_one_or_none()
        if lead is None:
            return ItemStatus.SKIPPED

        sent = ctx.notifier.notify_once(
            [lead.requester_id, *ctx.directory.oversight_user_ids()],
            rule=self._dedup_rule,
            kind=NotificationKind.RESERVATION_DEADLINE_WARNING,
            title="Reservation deadline approaching",
            message=(
                f"The reservation of equipment ({describe_equipment(equipment)}) "
                f"expires on {equipment.deadline_date.isoformat()}. "
                "Complete the checklist to avoid automatic release."
            ),
            reference_id=lead.id,
            metadata={
                "equipment_id": str(equipment.id),
                "deadline_date": equipment.deadline_date.isoformat(),
                "business_days_left": self._days,
            },
            action_ref=ActionRef.for_equipment(equipment.id),
            priority="high",
        )
        return ItemStatus.APPLIED if sent else ItemStatus.SKIPPED
