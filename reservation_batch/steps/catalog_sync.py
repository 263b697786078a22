"""
Catalog reconciliation.

Mirrors shipment, movement and spec columns from ``purchase_records`` into
``equipments``, creating a Free equipment row for any record without one.
Only changed columns are written, so a re-run on unchanged data is a no-op.
"""

from __future__ import annotations

from sqlalchemy import select

from reservation_batch.steps.base import ItemStatus, StepContext, StepItem
from reservation_kernel.db.base import SYSTEM_ACTOR_ID
from reservation_kernel.domain.lifecycle import EquipmentState
from reservation_kernel.logging_config import get_logger
from reservation_kernel.models.catalog import PurchaseRecordModel
from reservation_kernel.models.equipment import EquipmentModel

logger = get_logger("batch.catalog_sync")


class CatalogSyncStep:
    name = "catalog_sync"

    def prepare_items(self, ctx: StepContext) -> tuple[StepItem, ...]:
        ids = ctx.session.execute(
            select(PurchaseRecordModel.id).order_by(PurchaseRecordModel.id)
        ).scalars().all()
        return tuple(StepItem(key=str(record_id), payload={"purchase_record_id": record_id}) for record_id in ids)

    def execute_item(self, item: StepItem, ctx: StepContext) -> ItemStatus:
        record = ctx.session.get(PurchaseRecordModel, item.payload["purchase_record_id"])
        if record is None:
            return ItemStatus.SKIPPED
        values = record.mirrored_values()

        equipment = ctx.session.execute(
            select(EquipmentModel).where(EquipmentModel.purchase_record_id == record.id)
        ).scalar_one_or_none()
        if equipment is None:
            ctx.session.add(EquipmentModel(
                state=EquipmentState.FREE.value,
                purchase_record_id=record.id,
                created_by_id=SYSTEM_ACTOR_ID,
                catalog_synced_at=ctx.now,
                **values,
            ))
            ctx.session.flush()
            logger.info("catalog_equipment_created", extra={"purchase_record_id": str(record.id)})
            return ItemStatus.APPLIED

        changed = {name: value for name, value in values.items() if getattr(equipment, name) != value}
        if not changed:
            return ItemStatus.SKIPPED
        for name, value in changed.items():
            setattr(equipment, name, value)
        equipment.catalog_synced_at = ctx.now
        equipment.updated_by_id = SYSTEM_ACTOR_ID
        ctx.session.flush()
        logger.info(
            "catalog_equipment_updated",
            extra={
                "equipment_id": str(equipment.id),
                "purchase_record_id": str(record.id),
                "fields": sorted(changed),
            },
        )
        return ItemStatus.APPLIED
