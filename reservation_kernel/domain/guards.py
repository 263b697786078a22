"""
Guard evaluation (``reservation_kernel.domain.guards``).

Pure evaluators for the guards named in ``domain.lifecycle``.  The service
gathers the facts once under its row locks (counts, dates, checklist) into a
``GuardContext``; ``enforce_guards`` then checks every guard of a transition
and raises the matching ``GuardViolationError`` subclass for the first one
that fails, so no mutation happens after a failed guard.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Callable
from uuid import UUID

from reservation_kernel.domain.dtos import ChecklistState
from reservation_kernel.domain.lifecycle import (
    APPROVAL_WINDOW_OPEN,
    CHECKLIST_COMPLETE,
    CHECKLIST_STARTED,
    DEADLINE_PASSED,
    QUEUE_NOT_EMPTY,
    REQUESTER_HAS_NO_ACTIVE_RESERVATION,
    UNIT_HAS_NO_ACTIVE_RESERVATION,
    Guard,
    Transition,
)
from reservation_kernel.exceptions import (
    ApprovalWindowExpiredError,
    ChecklistIncompleteError,
    ChecklistNotStartedError,
    DeadlineNotPassedError,
    DuplicateReservationError,
    EmptyQueueError,
    GuardViolationError,
)


@dataclass(frozen=True)
class GuardContext:
    """Facts a guard may look at; all gathered inside the locking transaction."""

    today: date
    equipment_id: UUID
    reservation_id: UUID | None = None
    requester_id: UUID | None = None
    requester_active_count: int = 0
    unit_active_count: int = 0
    checklist: ChecklistState = field(default_factory=ChecklistState)
    first_checklist_date: date | None = None
    approval_window_days: int = 7
    deadline_date: date | None = None
    queue_length: int = 0


@dataclass(frozen=True)
class GuardOutcome:
    guard: Guard
    passed: bool
    reason: str = ""


def _requester_free(ctx: GuardContext) -> GuardOutcome:
    ok = ctx.requester_active_count == 0
    return GuardOutcome(
        REQUESTER_HAS_NO_ACTIVE_RESERVATION, ok,
        "" if ok else "requester already has an active reservation on this unit",
    )


def _unit_free(ctx: GuardContext) -> GuardOutcome:
    ok = ctx.unit_active_count == 0
    return GuardOutcome(
        UNIT_HAS_NO_ACTIVE_RESERVATION, ok,
        "" if ok else "unit already has a pending or approved reservation",
    )


def _checklist_started(ctx: GuardContext) -> GuardOutcome:
    ok = ctx.checklist.checked_count >= 1
    return GuardOutcome(CHECKLIST_STARTED, ok, "" if ok else "no checklist item confirmed")


def _checklist_complete(ctx: GuardContext) -> GuardOutcome:
    missing = ctx.checklist.missing_items
    return GuardOutcome(
        CHECKLIST_COMPLETE, not missing,
        "" if not missing else "missing: " + ", ".join(missing),
    )


def days_since_first_check(ctx: GuardContext) -> int | None:
    if ctx.first_checklist_date is None:
        return None
    return (ctx.today - ctx.first_checklist_date).days


def _window_open(ctx: GuardContext) -> GuardOutcome:
    elapsed = days_since_first_check(ctx)
    ok = elapsed is not None and elapsed <= ctx.approval_window_days
    return GuardOutcome(
        APPROVAL_WINDOW_OPEN, ok,
        "" if ok else f"{elapsed} days elapsed, limit {ctx.approval_window_days}",
    )


def _deadline_passed(ctx: GuardContext) -> GuardOutcome:
    ok = ctx.deadline_date is not None and ctx.deadline_date < ctx.today
    return GuardOutcome(DEADLINE_PASSED, ok, "" if ok else "deadline not passed")


def _queue_not_empty(ctx: GuardContext) -> GuardOutcome:
    ok = ctx.queue_length > 0
    return GuardOutcome(QUEUE_NOT_EMPTY, ok, "" if ok else "no pending reservation queued")


_EVALUATORS: dict[str, Callable[[GuardContext], GuardOutcome]] = {
    REQUESTER_HAS_NO_ACTIVE_RESERVATION.name: _requester_free,
    UNIT_HAS_NO_ACTIVE_RESERVATION.name: _unit_free,
    CHECKLIST_STARTED.name: _checklist_started,
    CHECKLIST_COMPLETE.name: _checklist_complete,
    APPROVAL_WINDOW_OPEN.name: _window_open,
    DEADLINE_PASSED.name: _deadline_passed,
    QUEUE_NOT_EMPTY.name: _queue_not_empty,
}


def evaluate_guard(guard: Guard, ctx: GuardContext) -> GuardOutcome:
    try:
        evaluator = _EVALUATORS[guard.name]
    except KeyError:
        raise KeyError(f"No evaluator registered for guard '{guard.name}'") from None
    return evaluator(ctx)


def _violation(outcome: GuardOutcome, ctx: GuardContext) -> GuardViolationError:
    name = outcome.guard.name
    equipment_id = str(ctx.equipment_id)
    reservation_id = str(ctx.reservation_id)
    if name in (REQUESTER_HAS_NO_ACTIVE_RESERVATION.name, UNIT_HAS_NO_ACTIVE_RESERVATION.name):
        return DuplicateReservationError(equipment_id, str(ctx.requester_id), outcome.reason)
    if name == CHECKLIST_STARTED.name:
        return ChecklistNotStartedError(reservation_id)
    if name == CHECKLIST_COMPLETE.name:
        return ChecklistIncompleteError(reservation_id, ctx.checklist.missing_items)
    if name == APPROVAL_WINDOW_OPEN.name:
        elapsed = days_since_first_check(ctx)
        return ApprovalWindowExpiredError(
            reservation_id,
            -1 if elapsed is None else elapsed,
            ctx.approval_window_days,
        )
    if name == DEADLINE_PASSED.name:
        deadline = ctx.deadline_date.isoformat() if ctx.deadline_date else None
        return DeadlineNotPassedError(equipment_id, deadline)
    if name == QUEUE_NOT_EMPTY.name:
        return EmptyQueueError(equipment_id)
    return GuardViolationError(f"Guard '{name}' failed: {outcome.reason}")


def enforce_guards(transition: Transition, ctx: GuardContext) -> None:
    """Raise the typed violation for the first failing guard of ``transition``."""
    for guard in transition.guards:
        outcome = evaluate_guard(guard, ctx)
        if not outcome.passed:
            raise _violation(outcome, ctx)
