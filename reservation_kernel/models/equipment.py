"""
Module: reservation_kernel.models.equipment
Responsibility: ORM persistence for equipment units and their availability
    state.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - DB check constraint limits ``state`` to the lifecycle states.
    - ``purchase_record_id`` is unique: one equipment row per upstream
      purchase record (catalog reconciliation upserts on it).
    - client/advisor/deadline_date are only written by the workflow
      services and the maintenance job.

Failure modes:
    - IntegrityError on a second equipment row for the same purchase record.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reservation_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from reservation_kernel.domain.dtos import Equipment
    from reservation_kernel.models.reservation import ReservationModel


class EquipmentModel(TrackedBase):
    """Persistent equipment unit.

    Catalog columns (movement, shipment, specs) are mirrored from the
    purchase records by the reconciliation step and are otherwise read-only
    to this kernel.
    """

    __tablename__ = "equipments"

    __table_args__ = (
        CheckConstraint(
            "state IN ('free', 'pre_reserved', 'reserved', 'separated', 'delivered')",
            name="ck_equipments_valid_state",
        ),
        Index("ix_equipments_state_deadline", "state", "deadline_date"),
    )

    state: Mapped[str] = mapped_column(String(20), nullable=False, default="free")
    client: Mapped[str | None] = mapped_column(String(255), nullable=True)
    advisor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    deadline_date: Mapped[date | None] = mapped_column(nullable=True)
    deadline_modified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    commercial_observations: Mapped[str | None] = mapped_column(Text, nullable=True)
    real_sale_price: Mapped[Decimal | None] = mapped_column(
        Numeric(18, 2), nullable=True,
    )

    # Catalog mirror
    purchase_record_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True, unique=True,
    )
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
    catalog_synced_at: Mapped[datetime | None] = mapped_column(nullable=True)

    reservations: Mapped[list["ReservationModel"]] = relationship(
        "ReservationModel",
        back_populates="equipment",
        order_by="ReservationModel.created_at",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Equipment {self.id} serial={self.serial} state={self.state}>"

    def to_dto(self) -> Equipment:
        from reservation_kernel.domain.dtos import Equipment as EquipmentDTO
        from reservation_kernel.domain.lifecycle import EquipmentState

        return EquipmentDTO(
            id=self.id,
            state=EquipmentState(self.state),
            serial=self.serial,
            model=self.model,
            mq=self.mq,
            client=self.client,
            advisor=self.advisor,
            deadline_date=self.deadline_date,
            deadline_modified=bool(self.deadline_modified),
            commercial_observations=self.commercial_observations,
            real_sale_price=self.real_sale_price,
            purchase_record_id=self.purchase_record_id,
        )
