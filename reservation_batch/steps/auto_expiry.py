"""
Auto-expiry of Reserved units whose checklist deadline has passed.

The decision and the write happen in ``ReservationService.expire_overdue``
under the equipment row lock; this step only finds candidates.
"""

from __future__ import annotations

from sqlalchemy import select

from reservation_batch.steps.base import ItemStatus, StepContext, StepItem
from reservation_kernel.domain.lifecycle import EquipmentState
from reservation_kernel.models.equipment import EquipmentModel
from reservation_kernel.services.notification_service import DedupRule


class AutoExpiryStep:
    name = "auto_expiry"

    def __init__(self, dedup_rule: DedupRule | None = None) -> None:
        self._dedup_rule = dedup_rule or DedupRule()

    def prepare_items(self, ctx: StepContext) -> tuple[StepItem, ...]:
        ids = ctx.session.execute(
            select(EquipmentModel.id)
            .where(
                EquipmentModel.state == EquipmentState.RESERVED.value,
                EquipmentModel.deadline_date < ctx.today,
            )
            .order_by(EquipmentModel.deadline_date, EquipmentModel.id)
        ).scalars().all()
        return tuple(StepItem(key=str(equipment_id), equipment_id=equipment_id) for equipment_id in ids)

    def execute_item(self, item: StepItem, ctx: StepContext) -> ItemStatus:
        outcome = ctx.reservations.expire_overdue(item.equipment_id, self._dedup_rule)
        return ItemStatus.SKIPPED if outcome is None else ItemStatus.APPLIED
