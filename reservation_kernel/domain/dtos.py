"""
Domain DTOs (``reservation_kernel.domain.dtos``).

Frozen value objects passed between services and callers.  ORM models
convert to these with ``to_dto()``; nothing here touches the database.

Field edits on Equipment are a closed set of typed updates
(``SetClient``, ``SetAdvisor``, ``SetDeadline``,
``SetCommercialObservations``, ``SetRealSalePrice``).  Each variant owns its
validator and names the column it writes, so there is no path from a
free-form field-name string to a column.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Union
from uuid import UUID

from reservation_kernel.domain.lifecycle import (
    ChecklistItem,
    EquipmentState,
    ReservationStatus,
)
from reservation_kernel.exceptions import InvalidFieldUpdateError


# =========================================================================
# Actor
# =========================================================================


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as handed to the kernel by the outer layer."""

    actor_id: UUID
    role: str
    display_name: str | None = None


# =========================================================================
# Checklist
# =========================================================================


@dataclass(frozen=True)
class ChecklistState:
    deposit_confirmed: bool = False
    ten_percent_paid: bool = False
    documents_signed: bool = False

    @property
    def checked_count(self) -> int:
        return sum(
            (self.deposit_confirmed, self.ten_percent_paid, self.documents_signed)
        )

    @property
    def is_complete(self) -> bool:
        return self.checked_count == 3

    @property
    def missing_items(self) -> tuple[str, ...]:
        return tuple(
            item.value
            for item in ChecklistItem
            if not getattr(self, item.value)
        )

    def apply(self, update: ChecklistUpdate) -> ChecklistState:
        return ChecklistState(
            deposit_confirmed=_pick(update.deposit_confirmed, self.deposit_confirmed),
            ten_percent_paid=_pick(update.ten_percent_paid, self.ten_percent_paid),
            documents_signed=_pick(update.documents_signed, self.documents_signed),
        )


def _pick(new: bool | None, old: bool) -> bool:
    return old if new is None else new


@dataclass(frozen=True)
class ChecklistUpdate:
    """Partial checklist edit; ``None`` leaves a flag untouched.

    ``client`` optionally records the buyer's name at the same time, which
    is how a promoted requester fills in the client left blank by the
    queue promotion.
    """

    deposit_confirmed: bool | None = None
    ten_percent_paid: bool | None = None
    documents_signed: bool | None = None
    client: str | None = None


# =========================================================================
# Entities
# =========================================================================


@dataclass(frozen=True)
class Equipment:
    id: UUID
    state: EquipmentState
    serial: str | None = None
    model: str | None = None
    mq: str | None = None
    client: str | None = None
    advisor: str | None = None
    deadline_date: date | None = None
    deadline_modified: bool = False
    commercial_observations: str | None = None
    real_sale_price: Decimal | None = None
    purchase_record_id: UUID | None = None


@dataclass(frozen=True)
class Reservation:
    id: UUID
    equipment_id: UUID
    requester_id: UUID
    status: ReservationStatus
    checklist: ChecklistState
    created_at: datetime
    first_checklist_date: datetime | None = None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    rejected_at: datetime | None = None
    rejected_by: UUID | None = None
    rejection_reason: str | None = None
    snapshot_client: str | None = None
    snapshot_advisor: str | None = None
    snapshot_deadline: date | None = None
    comments: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status in (ReservationStatus.PENDING, ReservationStatus.APPROVED)


@dataclass(frozen=True)
class ChangeLogEntry:
    id: UUID
    table_name: str
    record_id: UUID
    field_name: str
    old_value: str | None
    new_value: str | None
    change_reason: str
    changed_by: UUID | None
    changed_at: datetime


@dataclass(frozen=True)
class ReservationTimelineEntry:
    """One row of the reservation history view of a unit."""

    reservation: Reservation
    requester_name: str | None
    is_lead: bool = False


# =========================================================================
# Operation outcomes
# =========================================================================


@dataclass(frozen=True)
class PromotionOutcome:
    """Result of running queue promotion on a unit.

    ``promoted_reservation_id`` is None when the unit was released.
    """

    equipment_id: UUID
    new_state: EquipmentState
    promoted_reservation_id: UUID | None = None
    cleared_fields: tuple[str, ...] = ()

    @property
    def released(self) -> bool:
        return self.promoted_reservation_id is None


@dataclass(frozen=True)
class RejectionOutcome:
    reservation: Reservation
    equipment: Equipment
    promotion: PromotionOutcome | None = None


@dataclass(frozen=True)
class ApprovalOutcome:
    reservation: Reservation
    equipment: Equipment
    auto_rejected_ids: tuple[UUID, ...] = ()


# =========================================================================
# Typed equipment field updates
# =========================================================================

_MAX_TEXT = 255
_MAX_OBSERVATIONS = 4000


def _clean_text(field_name: str, value: str | None, max_len: int) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidFieldUpdateError(field_name, "must be text")
    stripped = value.strip()
    if not stripped:
        raise InvalidFieldUpdateError(field_name, "must not be blank; use None to clear")
    if len(stripped) > max_len:
        raise InvalidFieldUpdateError(field_name, f"longer than {max_len} characters")
    return stripped


@dataclass(frozen=True)
class SetClient:
    value: str | None
    field_name: str = field(default="client", init=False)
    locked_when_delivered: bool = field(default=True, init=False)

    def validated(self) -> str | None:
        return _clean_text(self.field_name, self.value, _MAX_TEXT)


@dataclass(frozen=True)
class SetAdvisor:
    value: str | None
    field_name: str = field(default="advisor", init=False)
    locked_when_delivered: bool = field(default=True, init=False)

    def validated(self) -> str | None:
        return _clean_text(self.field_name, self.value, _MAX_TEXT)


@dataclass(frozen=True)
class SetDeadline:
    value: date | None
    field_name: str = field(default="deadline_date", init=False)
    locked_when_delivered: bool = field(default=True, init=False)

    def validated(self) -> date | None:
        if self.value is not None and (
            not isinstance(self.value, date) or isinstance(self.value, datetime)
        ):
            raise InvalidFieldUpdateError(self.field_name, "must be a date")
        return self.value


@dataclass(frozen=True)
class SetCommercialObservations:
    value: str | None
    field_name: str = field(default="commercial_observations", init=False)
    locked_when_delivered: bool = field(default=False, init=False)

    def validated(self) -> str | None:
        return _clean_text(self.field_name, self.value, _MAX_OBSERVATIONS)


@dataclass(frozen=True)
class SetRealSalePrice:
    value: Decimal | None
    field_name: str = field(default="real_sale_price", init=False)
    locked_when_delivered: bool = field(default=False, init=False)

    def validated(self) -> Decimal | None:
        if self.value is None:
            return None
        try:
            amount = Decimal(str(self.value))
        except ArithmeticError:
            raise InvalidFieldUpdateError(self.field_name, "must be a number") from None
        if not amount.is_finite() or amount < 0:
            raise InvalidFieldUpdateError(self.field_name, "must be a non-negative amount")
        return amount.quantize(Decimal("0.01"))


EquipmentFieldUpdate = Union[
    SetClient,
    SetAdvisor,
    SetDeadline,
    SetCommercialObservations,
    SetRealSalePrice,
]

# Fields whose edits are mirrored to the change log
AUDITED_FIELDS: frozenset[str] = frozenset({"client", "advisor", "deadline_date"})


def format_audit_value(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, date):
        return value.isoformat()
    return str(value)
