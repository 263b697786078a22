"""
Module: reservation_kernel.models.catalog
Responsibility: Upstream purchase/import records that the maintenance job
    mirrors into equipment rows.  Owned by the purchasing side; this kernel
    only reads them.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from reservation_kernel.db.base import TrackedBase

# Columns copied verbatim onto EquipmentModel by catalog reconciliation
MIRRORED_FIELDS: tuple[str, ...] = (
    "mq",
    "supplier_name",
    "model",
    "serial",
    "shipment_departure_date",
    "shipment_arrival_date",
    "port_of_destination",
    "nationalization_date",
    "current_movement",
    "current_movement_date",
    "year",
    "hours",
    "machine_type",
    "arm_type",
    "track_width",
    "cabin_type",
    "wet_line",
    "blade",
)


class PurchaseRecordModel(TrackedBase):
    __tablename__ = "purchase_records"

    __table_args__ = (Index("ix_purchase_records_updated_at", "updated_at"),)

    mq: Mapped[str | None] = mapped_column(String(50), nullable=True)
    supplier_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    model: Mapped[str | None] = mapped_column(String(255), nullable=True)
    serial: Mapped[str | None] = mapped_column(String(255), nullable=True)
    shipment_departure_date: Mapped[date | None] = mapped_column(nullable=True)
    shipment_arrival_date: Mapped[date | None] = mapped_column(nullable=True)
    port_of_destination: Mapped[str | None] = mapped_column(String(255), nullable=True)
    nationalization_date: Mapped[date | None] = mapped_column(nullable=True)
    current_movement: Mapped[str | None] = mapped_column(String(255), nullable=True)
    current_movement_date: Mapped[date | None] = mapped_column(nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    machine_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    arm_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    track_width: Mapped[str | None] = mapped_column(String(50), nullable=True)
    cabin_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    wet_line: Mapped[str | None] = mapped_column(String(50), nullable=True)
    blade: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<PurchaseRecord {self.id} mq={self.mq} serial={self.serial}>"

    def mirrored_values(self) -> dict[str, object]:
        return {name: getattr(self, name) for name in MIRRORED_FIELDS}
