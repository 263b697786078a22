"""
reservation_kernel.services.change_log_service -- Field-level audit trail.

Appends one ChangeLogModel row per changed field.  Never commits; the row
joins the caller's transaction so it is written if and only if the state
change it describes is.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from reservation_kernel.domain.clock import DEFAULT_TIMEZONE, Clock, SystemClock
from reservation_kernel.domain.dtos import ChangeLogEntry, format_audit_value
from reservation_kernel.logging_config import get_logger
from reservation_kernel.models.change_log import ChangeLogModel

logger = get_logger("services.change_log")

EQUIPMENT_TABLE = "equipments"

FIELD_LABELS: dict[str, str] = {
    "client": "Client",
    "advisor": "Advisor",
    "deadline_date": "Deadline",
    "commercial_observations": "Commercial observations",
    "real_sale_price": "Real sale price",
    "state": "State",
}


class ChangeLogService:
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        *,
        timezone: str = DEFAULT_TIMEZONE,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._timezone = timezone

    def record(
        self,
        *,
        record_id: UUID,
        field_name: str,
        old_value: Any,
        new_value: Any,
        reason: str,
        changed_by: UUID | None,
        table_name: str = EQUIPMENT_TABLE,
    ) -> ChangeLogModel | None:
        """Append one entry; returns None when the value did not change."""
        old_text = format_audit_value(old_value)
        new_text = format_audit_value(new_value)
        if old_text == new_text:
            return None
        entry = ChangeLogModel(
            table_name=table_name,
            record_id=record_id,
            field_name=field_name,
            field_label=FIELD_LABELS.get(field_name, field_name),
            old_value=old_text,
            new_value=new_text,
            change_reason=reason,
            changed_by=changed_by,
            changed_at=self._clock.local_now(self._timezone),
        )
        self._session.add(entry)
        logger.debug(
            "change_logged",
            extra={
                "table_name": table_name,
                "record_id": str(record_id),
                "field_name": field_name,
                "system": changed_by is None,
            },
        )
        return entry

    def record_many(
        self,
        *,
        record_id: UUID,
        before: dict[str, Any],
        after: dict[str, Any],
        reason: str,
        changed_by: UUID | None,
        table_name: str = EQUIPMENT_TABLE,
    ) -> list[ChangeLogModel]:
        written = []
        for name, old in before.items():
            entry = self.record(
                record_id=record_id,
                field_name=name,
                old_value=old,
                new_value=after.get(name),
                reason=reason,
                changed_by=changed_by,
                table_name=table_name,
            )
            if entry is not None:
                written.append(entry)
        return written

    def history(
        self, record_id: UUID, table_name: str = EQUIPMENT_TABLE,
    ) -> list[ChangeLogEntry]:
        rows = self._session.execute(
            select(ChangeLogModel)
            .where(
                ChangeLogModel.table_name == table_name,
                ChangeLogModel.record_id == record_id,
            )
            .order_by(ChangeLogModel.changed_at, ChangeLogModel.field_name)
        ).scalars().all()
        return [row.to_dto() for row in rows]
