"""
Pure domain layer.

Value objects, the lifecycle transition table, guard evaluation and the
business-day calendar.  No dependencies on the ORM, the database or I/O
(``SystemClock`` is the single sanctioned time boundary).
"""

from reservation_kernel.domain.calendar import (
    DEFAULT_HOLIDAYS,
    BusinessCalendar,
    add_business_days,
    subtract_business_days,
)
from reservation_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from reservation_kernel.domain.dtos import (
    Actor,
    ApprovalOutcome,
    ChangeLogEntry,
    ChecklistState,
    ChecklistUpdate,
    Equipment,
    EquipmentFieldUpdate,
    PromotionOutcome,
    RejectionOutcome,
    Reservation,
    ReservationTimelineEntry,
    SetAdvisor,
    SetClient,
    SetCommercialObservations,
    SetDeadline,
    SetRealSalePrice,
)
from reservation_kernel.domain.guards import GuardContext, GuardOutcome, enforce_guards
from reservation_kernel.domain.lifecycle import (
    EQUIPMENT_TRANSITIONS,
    EquipmentEvent,
    EquipmentState,
    ReservationStatus,
    Transition,
    find_transition,
)

__all__ = [
    "DEFAULT_HOLIDAYS",
    "BusinessCalendar",
    "add_business_days",
    "subtract_business_days",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Actor",
    "ApprovalOutcome",
    "ChangeLogEntry",
    "ChecklistState",
    "ChecklistUpdate",
    "Equipment",
    "EquipmentFieldUpdate",
    "PromotionOutcome",
    "RejectionOutcome",
    "Reservation",
    "ReservationTimelineEntry",
    "SetAdvisor",
    "SetClient",
    "SetCommercialObservations",
    "SetDeadline",
    "SetRealSalePrice",
    "GuardContext",
    "GuardOutcome",
    "enforce_guards",
    "EQUIPMENT_TRANSITIONS",
    "EquipmentEvent",
    "EquipmentState",
    "ReservationStatus",
    "Transition",
    "find_transition",
]
