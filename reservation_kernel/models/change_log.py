"""
Module: reservation_kernel.models.change_log
Responsibility: Append-only field-level audit trail for equipment edits.

Architecture position: Kernel > Models.  May import from db/ and exceptions.

Invariants enforced:
    - Rows are immutable once written: ORM ``before_update`` and
      ``before_delete`` listeners raise ImmutabilityViolationError.
    - ``changed_by`` is null only for system-initiated changes
      (maintenance job releases).
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, Index, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from reservation_kernel.db.base import Base, UUIDString
from reservation_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from reservation_kernel.domain.dtos import ChangeLogEntry


class ChangeLogModel(Base):
    """One before/after pair for one field of one record. Append-only."""

    __tablename__ = "change_logs"

    __table_args__ = (
        Index("ix_change_logs_record", "table_name", "record_id", "changed_at"),
    )

    table_name: Mapped[str] = mapped_column(String(100), nullable=False)
    record_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    field_name: Mapped[str] = mapped_column(String(100), nullable=False)
    field_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    change_reason: Mapped[str] = mapped_column(Text, nullable=False)
    changed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ChangeLog {self.table_name}.{self.field_name} "
            f"record={self.record_id}>"
        )

    def to_dto(self) -> ChangeLogEntry:
        from reservation_kernel.domain.dtos import ChangeLogEntry as ChangeLogDTO

        return ChangeLogDTO(
            id=self.id,
            table_name=self.table_name,
            record_id=self.record_id,
            field_name=self.field_name,
            old_value=self.old_value,
            new_value=self.new_value,
            change_reason=self.change_reason,
            changed_by=self.changed_by,
            changed_at=self.changed_at,
        )


@event.listens_for(ChangeLogModel, "before_update")
def prevent_change_log_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="ChangeLog",
        entity_id=str(target.id),
        reason="Change log entries are append-only -- cannot modify",
    )


@event.listens_for(ChangeLogModel, "before_delete")
def prevent_change_log_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="ChangeLog",
        entity_id=str(target.id),
        reason="Change log entries are append-only -- cannot delete",
    )
