"""
Typed Exception Hierarchy for the Reservation Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ReservationKernelError:

    ReservationKernelError (base)
    |
    +-- NotFoundError
    |   +-- EquipmentNotFoundError
    |   +-- ReservationNotFoundError
    |
    +-- GuardViolationError
    |   +-- EquipmentNotAvailableError
    |   +-- DuplicateReservationError
    |   +-- ChecklistNotStartedError
    |   +-- ChecklistIncompleteError
    |   +-- ApprovalWindowExpiredError
    |   +-- DeadlineNotPassedError
    |   +-- EmptyQueueError
    |   +-- EquipmentDeliveredError
    |   +-- ReservationAlreadyResolvedError
    |   +-- ReservationNotLeadError
    |   +-- InvalidFieldUpdateError
    |
    +-- InvalidEquipmentTransitionError
    |
    +-- UnauthorizedActorError
    |
    +-- ConcurrencyError
    |   +-- MaintenanceLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                          | When Raised
--------------|-------------------------------|---------------------------------------
Not found     | EQUIPMENT_NOT_FOUND           | Equipment id doesn't exist
              | RESERVATION_NOT_FOUND         | Reservation id doesn't exist
--------------|-------------------------------|---------------------------------------
Guard         | EQUIPMENT_NOT_AVAILABLE       | Request on a unit that is not Free
              | DUPLICATE_RESERVATION         | Requester or unit already has an
              |                               | active reservation
              | CHECKLIST_NOT_STARTED         | Promotion to Reserved with no flag set
              | CHECKLIST_INCOMPLETE          | Approve with missing checklist items
              | APPROVAL_WINDOW_EXPIRED       | Approve > N days after first check
              | DEADLINE_NOT_PASSED           | Expiry attempted before the deadline
              | EMPTY_QUEUE                   | Promotion with no Pending requests
              | EQUIPMENT_DELIVERED           | Edit of a Delivered unit
              | RESERVATION_ALREADY_RESOLVED  | Mutation of an Approved/Rejected row
              | RESERVATION_NOT_LEAD          | Checklist edit by a queued request
              | INVALID_FIELD_UPDATE          | Field value fails its validator
--------------|-------------------------------|---------------------------------------
State machine | INVALID_EQUIPMENT_TRANSITION  | (state, event) pair not in the table
--------------|-------------------------------|---------------------------------------
Access        | UNAUTHORIZED_ACTOR            | Actor role lacks the required role
--------------|-------------------------------|---------------------------------------
Concurrency   | MAINTENANCE_LOCK_ERROR        | Mutex provider failed (not "busy")
--------------|-------------------------------|---------------------------------------
Immutability  | IMMUTABILITY_VIOLATION        | Update/delete of a change-log row

===============================================================================
HANDLING PATTERNS
===============================================================================

Guard violations are expected outcomes of actor requests.  Callers map
``GuardViolationError`` (and its subclasses) to a rejected operation and
show ``str(exc)``; the structured attributes are there for API payloads:

    try:
        service.approve_reservation(reservation_id, actor)
    except ChecklistIncompleteError as e:
        return {"error": e.code, "missing": list(e.missing_items)}
    except GuardViolationError as e:
        return {"error": e.code, "message": str(e)}

Persistence failures (``sqlalchemy.exc.OperationalError`` and friends) are
not wrapped; they propagate to the caller unchanged.
"""


class ReservationKernelError(Exception):
    """
    Base exception for all reservation kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "RESERVATION_KERNEL_ERROR"


# Lookup failures


class NotFoundError(ReservationKernelError):
    """Base exception for missing rows."""

    code: str = "NOT_FOUND"


class EquipmentNotFoundError(NotFoundError):
    """Equipment with given ID was not found."""

    code: str = "EQUIPMENT_NOT_FOUND"

    def __init__(self, equipment_id: str):
        self.equipment_id = equipment_id
        super().__init__(f"Equipment not found: {equipment_id}")


class ReservationNotFoundError(NotFoundError):
    """Reservation with given ID was not found."""

    code: str = "RESERVATION_NOT_FOUND"

    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(f"Reservation not found: {reservation_id}")


# Guard violations


class GuardViolationError(ReservationKernelError):
    """Base exception for domain preconditions that did not hold."""

    code: str = "GUARD_VIOLATION"


class EquipmentNotAvailableError(GuardViolationError):
    """A reservation was requested on a unit that is not Free."""

    code: str = "EQUIPMENT_NOT_AVAILABLE"

    def __init__(self, equipment_id: str, state: str):
        self.equipment_id = equipment_id
        self.state = state
        super().__init__(
            f"Equipment {equipment_id} is not available for reservation "
            f"(current state: {state})"
        )


class DuplicateReservationError(GuardViolationError):
    """The requester or the unit already has an active reservation."""

    code: str = "DUPLICATE_RESERVATION"

    def __init__(self, equipment_id: str, requester_id: str, reason: str):
        self.equipment_id = equipment_id
        self.requester_id = requester_id
        self.reason = reason
        super().__init__(
            f"Cannot reserve equipment {equipment_id}: {reason}"
        )


class ChecklistNotStartedError(GuardViolationError):
    """No checklist flag is set yet."""

    code: str = "CHECKLIST_NOT_STARTED"

    def __init__(self, reservation_id: str):
        self.reservation_id = reservation_id
        super().__init__(
            f"Reservation {reservation_id} has no checklist item confirmed"
        )


class ChecklistIncompleteError(GuardViolationError):
    """Approval attempted while checklist items are still missing."""

    code: str = "CHECKLIST_INCOMPLETE"

    def __init__(self, reservation_id: str, missing_items: tuple[str, ...]):
        self.reservation_id = reservation_id
        self.missing_items = tuple(missing_items)
        super().__init__(
            f"Reservation {reservation_id} cannot be approved, missing "
            f"checklist items: {', '.join(self.missing_items)}"
        )


class ApprovalWindowExpiredError(GuardViolationError):
    """Too many calendar days passed since the first checklist item."""

    code: str = "APPROVAL_WINDOW_EXPIRED"

    def __init__(self, reservation_id: str, days_elapsed: int, window_days: int):
        self.reservation_id = reservation_id
        self.days_elapsed = days_elapsed
        self.window_days = window_days
        super().__init__(
            f"Reservation {reservation_id} approval window expired: "
            f"{days_elapsed} days since first checklist item "
            f"(limit {window_days})"
        )


class DeadlineNotPassedError(GuardViolationError):
    """Automatic expiry attempted before the deadline passed."""

    code: str = "DEADLINE_NOT_PASSED"

    def __init__(self, equipment_id: str, deadline_date: str | None):
        self.equipment_id = equipment_id
        self.deadline_date = deadline_date
        super().__init__(
            f"Equipment {equipment_id} deadline has not passed "
            f"(deadline: {deadline_date})"
        )


class EmptyQueueError(GuardViolationError):
    """Queue promotion attempted with no Pending reservation waiting."""

    code: str = "EMPTY_QUEUE"

    def __init__(self, equipment_id: str):
        self.equipment_id = equipment_id
        super().__init__(
            f"Equipment {equipment_id} has no pending reservation to promote"
        )


class EquipmentDeliveredError(GuardViolationError):
    """Client, advisor or deadline edit on a Delivered unit."""

    code: str = "EQUIPMENT_DELIVERED"

    def __init__(self, equipment_id: str, field_name: str):
        self.equipment_id = equipment_id
        self.field_name = field_name
        super().__init__(
            f"Equipment {equipment_id} is delivered; {field_name} cannot be "
            "modified until the delivery is reverted"
        )


class ReservationAlreadyResolvedError(GuardViolationError):
    """Mutation of a reservation that is no longer in the expected status."""

    code: str = "RESERVATION_ALREADY_RESOLVED"

    def __init__(self, reservation_id: str, status: str):
        self.reservation_id = reservation_id
        self.status = status
        super().__init__(
            f"Reservation {reservation_id} is already {status}"
        )


class ReservationNotLeadError(GuardViolationError):
    """A queued reservation tried to drive the unit."""

    code: str = "RESERVATION_NOT_LEAD"

    def __init__(self, reservation_id: str, lead_reservation_id: str | None):
        self.reservation_id = reservation_id
        self.lead_reservation_id = lead_reservation_id
        super().__init__(
            f"Reservation {reservation_id} is queued behind "
            f"{lead_reservation_id} and cannot update the checklist yet"
        )


class InvalidFieldUpdateError(GuardViolationError):
    """A typed field update failed its validator."""

    code: str = "INVALID_FIELD_UPDATE"

    def __init__(self, field_name: str, reason: str):
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Invalid value for {field_name}: {reason}")


# State machine


class InvalidEquipmentTransitionError(ReservationKernelError):
    """The (state, event) pair has no entry in the transition table."""

    code: str = "INVALID_EQUIPMENT_TRANSITION"

    def __init__(self, state: str, event: str):
        self.state = state
        self.event = event
        super().__init__(
            f"Event '{event}' is not allowed for equipment in state '{state}'"
        )


# Access


class UnauthorizedActorError(ReservationKernelError):
    """Actor role lacks the role required by the operation."""

    code: str = "UNAUTHORIZED_ACTOR"

    def __init__(self, actor_id: str, role: str, operation: str):
        self.actor_id = actor_id
        self.role = role
        self.operation = operation
        super().__init__(
            f"Actor {actor_id} with role '{role}' may not {operation}"
        )


# Concurrency


class ConcurrencyError(ReservationKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class MaintenanceLockError(ConcurrencyError):
    """The mutex provider failed while acquiring or releasing a lock."""

    code: str = "MAINTENANCE_LOCK_ERROR"

    def __init__(self, lock_name: str, reason: str):
        self.lock_name = lock_name
        self.reason = reason
        super().__init__(f"Lock '{lock_name}' failed: {reason}")


# Immutability


class ImmutabilityError(ReservationKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
