"""
Module: reservation_kernel.models.reservation
Responsibility: ORM persistence for reservation requests on equipment.

Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - DB check constraint limits ``status`` to pending/approved/rejected.
    - At most one approved reservation per equipment (partial unique index).
    - ``created_at`` comes from the injected clock, never the server; it is
      the FIFO ordering key for queue promotion.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reservation_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from reservation_kernel.domain.dtos import Reservation
    from reservation_kernel.models.equipment import EquipmentModel


class ReservationModel(Base):
    """Persistent reservation request.

    Contract:
        Pending rows have every terminal field null.  Approved rows have
        approved_at/approved_by; rejected rows have rejected_at and
        rejection_reason (rejected_by is null for system rejections).
    """

    __tablename__ = "equipment_reservations"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_equipment_reservations_valid_status",
        ),
        Index(
            "ix_equipment_reservations_one_approved",
            "equipment_id",
            unique=True,
            postgresql_where=text("status = 'approved'"),
            sqlite_where=text("status = 'approved'"),
        ),
        Index(
            "ix_equipment_reservations_queue",
            "equipment_id", "status", "created_at",
        ),
        Index("ix_equipment_reservations_requester", "requester_id", "status"),
    )

    equipment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("equipments.id", ondelete="CASCADE"),
        nullable=False,
    )
    requester_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    deposit_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ten_percent_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    documents_signed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    first_checklist_date: Mapped[datetime | None] = mapped_column(
        DateTime(), nullable=True,
    )

    approved_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    rejected_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    snapshot_client: Mapped[str | None] = mapped_column(String(255), nullable=True)
    snapshot_advisor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    snapshot_deadline: Mapped[date | None] = mapped_column(nullable=True)

    comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)

    equipment: Mapped["EquipmentModel"] = relationship(
        "EquipmentModel", back_populates="reservations",
    )

    def __repr__(self) -> str:
        return (
            f"<Reservation {self.id} equipment={self.equipment_id} "
            f"status={self.status}>"
        )

    def snapshot_from(self, equipment: EquipmentModel) -> None:
        """Copy the live holder fields of ``equipment`` onto this row."""
        self.snapshot_client = equipment.client
        self.snapshot_advisor = equipment.advisor
        self.snapshot_deadline = equipment.deadline_date

    def to_dto(self) -> Reservation:
        from reservation_kernel.domain.dtos import ChecklistState
        from reservation_kernel.domain.dtos import Reservation as ReservationDTO
        from reservation_kernel.domain.lifecycle import ReservationStatus

        return ReservationDTO(
            id=self.id,
            equipment_id=self.equipment_id,
            requester_id=self.requester_id,
            status=ReservationStatus(self.status),
            checklist=ChecklistState(
                deposit_confirmed=bool(self.deposit_confirmed),
                ten_percent_paid=bool(self.ten_percent_paid),
                documents_signed=bool(self.documents_signed),
            ),
            created_at=self.created_at,
            first_checklist_date=self.first_checklist_date,
            approved_at=self.approved_at,
            approved_by=self.approved_by,
            rejected_at=self.rejected_at,
            rejected_by=self.rejected_by,
            rejection_reason=self.rejection_reason,
            snapshot_client=self.snapshot_client,
            snapshot_advisor=self.snapshot_advisor,
            snapshot_deadline=self.snapshot_deadline,
            comments=self.comments,
        )
