"""
Equipment lifecycle state machine (``reservation_kernel.domain.lifecycle``).

Responsibility
--------------
Pure value objects describing where an equipment unit can go next.  The
transition table is the single authority on (state, event) -> state; the
services look a transition up, evaluate its guards, then apply its effect.
A pair that is not in the table is a programming or request error and
raises ``InvalidEquipmentTransitionError``.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  No imports from ``db/``,
``models/`` or ``services/``.

Invariants enforced
-------------------
* Each (from_state, event) pair maps to at most one transition.
* ``DELIVERED`` has a single outgoing edge (manual revert).
* Reservation status only moves PENDING -> APPROVED/REJECTED and
  APPROVED -> REJECTED; REJECTED is terminal.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from reservation_kernel.exceptions import InvalidEquipmentTransitionError


class EquipmentState(str, Enum):
    FREE = "free"
    PRE_RESERVED = "pre_reserved"
    RESERVED = "reserved"
    SEPARATED = "separated"
    DELIVERED = "delivered"


# States in which client/advisor/deadline may be non-null
HOLDING_STATES: frozenset[EquipmentState] = frozenset({
    EquipmentState.PRE_RESERVED,
    EquipmentState.RESERVED,
    EquipmentState.SEPARATED,
})


class EquipmentEvent(str, Enum):
    REQUEST_RESERVATION = "request_reservation"
    START_CHECKLIST = "start_checklist"
    APPROVE = "approve"
    EXPIRE_DEADLINE = "expire_deadline"
    RELEASE = "release"
    PROMOTE_QUEUE = "promote_queue"
    DELIVER = "deliver"
    REVERT_DELIVERY = "revert_delivery"


class TransitionEffect(str, Enum):
    """What the service must do to the equipment row after the state change."""

    ASSIGN_REQUESTER = "assign_requester"
    START_CHECKLIST_DEADLINE = "start_checklist_deadline"
    START_SEPARATION_DEADLINE = "start_separation_deadline"
    CLEAR_HOLDER = "clear_holder"
    ASSIGN_NEXT_IN_QUEUE = "assign_next_in_queue"
    FREEZE_HOLDER = "freeze_holder"


class ReservationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


RESERVATION_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset({
        ReservationStatus.APPROVED,
        ReservationStatus.REJECTED,
    }),
    ReservationStatus.APPROVED: frozenset({ReservationStatus.REJECTED}),
    ReservationStatus.REJECTED: frozenset(),
}

ACTIVE_RESERVATION_STATUSES: frozenset[ReservationStatus] = frozenset({
    ReservationStatus.PENDING,
    ReservationStatus.APPROVED,
})


class ChecklistItem(str, Enum):
    DEPOSIT_CONFIRMED = "deposit_confirmed"
    TEN_PERCENT_PAID = "ten_percent_paid"
    DOCUMENTS_SIGNED = "documents_signed"


@dataclass(frozen=True)
class Guard:
    """A named precondition; evaluated by ``domain.guards``."""

    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    from_state: EquipmentState
    event: EquipmentEvent
    to_state: EquipmentState
    guards: tuple[Guard, ...] = ()
    effect: TransitionEffect | None = None


# =========================================================================
# Guards
# =========================================================================

REQUESTER_HAS_NO_ACTIVE_RESERVATION = Guard(
    "requester_has_no_active_reservation",
    "The requester holds no Pending/Approved reservation on this unit",
)
UNIT_HAS_NO_ACTIVE_RESERVATION = Guard(
    "unit_has_no_active_reservation",
    "No Pending/Approved reservation exists on this unit",
)
CHECKLIST_STARTED = Guard(
    "checklist_started",
    "At least one checklist item is confirmed",
)
CHECKLIST_COMPLETE = Guard(
    "checklist_complete",
    "All three checklist items are confirmed",
)
APPROVAL_WINDOW_OPEN = Guard(
    "approval_window_open",
    "No more than the approval window has elapsed since the first checklist item",
)
DEADLINE_PASSED = Guard(
    "deadline_passed",
    "The equipment deadline is strictly before today",
)
QUEUE_NOT_EMPTY = Guard(
    "queue_not_empty",
    "At least one Pending reservation is waiting on this unit",
)


# =========================================================================
# Transition table
# =========================================================================

_S = EquipmentState
_E = EquipmentEvent
_FX = TransitionEffect

EQUIPMENT_TRANSITIONS: tuple[Transition, ...] = (
    Transition(
        _S.FREE, _E.REQUEST_RESERVATION, _S.PRE_RESERVED,
        guards=(REQUESTER_HAS_NO_ACTIVE_RESERVATION, UNIT_HAS_NO_ACTIVE_RESERVATION),
        effect=_FX.ASSIGN_REQUESTER,
    ),
    Transition(
        _S.PRE_RESERVED, _E.START_CHECKLIST, _S.RESERVED,
        guards=(CHECKLIST_STARTED,),
        effect=_FX.START_CHECKLIST_DEADLINE,
    ),
    Transition(
        _S.RESERVED, _E.APPROVE, _S.SEPARATED,
        guards=(CHECKLIST_COMPLETE, APPROVAL_WINDOW_OPEN),
        effect=_FX.START_SEPARATION_DEADLINE,
    ),
    Transition(
        _S.RESERVED, _E.EXPIRE_DEADLINE, _S.FREE,
        guards=(DEADLINE_PASSED,),
        effect=_FX.CLEAR_HOLDER,
    ),
    Transition(_S.PRE_RESERVED, _E.RELEASE, _S.FREE, effect=_FX.CLEAR_HOLDER),
    Transition(_S.RESERVED, _E.RELEASE, _S.FREE, effect=_FX.CLEAR_HOLDER),
    Transition(_S.SEPARATED, _E.RELEASE, _S.FREE, effect=_FX.CLEAR_HOLDER),
    Transition(
        _S.PRE_RESERVED, _E.PROMOTE_QUEUE, _S.RESERVED,
        guards=(QUEUE_NOT_EMPTY,), effect=_FX.ASSIGN_NEXT_IN_QUEUE,
    ),
    Transition(
        _S.RESERVED, _E.PROMOTE_QUEUE, _S.RESERVED,
        guards=(QUEUE_NOT_EMPTY,), effect=_FX.ASSIGN_NEXT_IN_QUEUE,
    ),
    Transition(
        _S.SEPARATED, _E.PROMOTE_QUEUE, _S.RESERVED,
        guards=(QUEUE_NOT_EMPTY,), effect=_FX.ASSIGN_NEXT_IN_QUEUE,
    ),
    Transition(_S.SEPARATED, _E.DELIVER, _S.DELIVERED, effect=_FX.FREEZE_HOLDER),
    Transition(_S.DELIVERED, _E.REVERT_DELIVERY, _S.FREE, effect=_FX.CLEAR_HOLDER),
)

_TRANSITION_INDEX: dict[tuple[EquipmentState, EquipmentEvent], Transition] = {
    (t.from_state, t.event): t for t in EQUIPMENT_TRANSITIONS
}

if len(_TRANSITION_INDEX) != len(EQUIPMENT_TRANSITIONS):
    raise RuntimeError("duplicate (state, event) pair in EQUIPMENT_TRANSITIONS")


def find_transition(
    state: EquipmentState | str, event: EquipmentEvent | str,
) -> Transition:
    """Return the single transition for (state, event).

    Raises:
        InvalidEquipmentTransitionError: the pair is not in the table.
    """
    key = (EquipmentState(state), EquipmentEvent(event))
    transition = _TRANSITION_INDEX.get(key)
    if transition is None:
        raise InvalidEquipmentTransitionError(key[0].value, key[1].value)
    return transition


def is_allowed(state: EquipmentState | str, event: EquipmentEvent | str) -> bool:
    return (EquipmentState(state), EquipmentEvent(event)) in _TRANSITION_INDEX


def events_from(state: EquipmentState | str) -> tuple[EquipmentEvent, ...]:
    current = EquipmentState(state)
    return tuple(t.event for t in EQUIPMENT_TRANSITIONS if t.from_state is current)


def can_change_reservation_status(
    current: ReservationStatus | str, target: ReservationStatus | str,
) -> bool:
    return ReservationStatus(target) in RESERVATION_TRANSITIONS[ReservationStatus(current)]
