"""
reservation_kernel.services.reservation_service -- Reservation workflow.

Responsibility:
    Every actor-driven operation on an equipment unit: request, queue,
    checklist update, approve, reject, field edit, delivery and revert,
    plus the automatic expiry used by the maintenance job.  Each operation
    looks its transition up in ``domain.lifecycle``, evaluates the guards
    with facts read under lock, then applies the effect.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Row locking: the equipment row and all of its Pending/Approved
      reservation rows are read with SELECT ... FOR UPDATE before any guard
      is evaluated, so two concurrent approvals on one unit serialize.
    - Guards are checked before the first mutation; a guard failure leaves
      the session untouched.
    - At most one Approved reservation per unit (approve auto-rejects every
      other Pending sibling; DB partial unique index backs it up).
    - Holder fields (client/advisor/deadline) are null while Free.
    - Notifications are best-effort and never roll back the state change.

Failure modes:
    - EquipmentNotFoundError / ReservationNotFoundError.
    - GuardViolationError subclasses (see exceptions module).
    - InvalidEquipmentTransitionError for a (state, event) pair outside the
      transition table.
    - UnauthorizedActorError when a non-oversight actor approves, rejects,
      delivers or reverts.

Transactions:
    This service never commits.  Callers wrap each operation in
    ``session_scope()`` (or their own transaction) and retry on
    concurrency conflicts if they want to.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Sequence
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from reservation_kernel.domain.clock import Clock, SystemClock
from reservation_kernel.domain.dtos import (
    Actor,
    ApprovalOutcome,
    ChecklistUpdate,
    Equipment,
    EquipmentFieldUpdate,
    PromotionOutcome,
    RejectionOutcome,
    Reservation,
    ReservationTimelineEntry,
    SetClient,
    SetDeadline,
)
from reservation_kernel.domain.guards import GuardContext, enforce_guards, evaluate_guard
from reservation_kernel.domain.lifecycle import (
    ACTIVE_RESERVATION_STATUSES,
    REQUESTER_HAS_NO_ACTIVE_RESERVATION,
    EquipmentEvent,
    EquipmentState,
    ReservationStatus,
    find_transition,
)
from reservation_kernel.domain.policy import (
    SYSTEM_REASON_ANOTHER_APPROVED,
    SYSTEM_REASON_DEADLINE_EXPIRED,
    SYSTEM_REASON_DELIVERY_REVERTED,
    LifecyclePolicy,
)
from reservation_kernel.exceptions import (
    DuplicateReservationError,
    EquipmentDeliveredError,
    EquipmentNotAvailableError,
    EquipmentNotFoundError,
    InvalidEquipmentTransitionError,
    InvalidFieldUpdateError,
    ReservationAlreadyResolvedError,
    ReservationNotFoundError,
    ReservationNotLeadError,
    UnauthorizedActorError,
)
from reservation_kernel.logging_config import LogContext, get_logger
from reservation_kernel.models.equipment import EquipmentModel
from reservation_kernel.models.reservation import ReservationModel
from reservation_kernel.models.user import UserProfileModel
from reservation_kernel.services.change_log_service import ChangeLogService
from reservation_kernel.services.notification_service import (
    ActionRef,
    BestEffortNotifier,
    DatabaseNotificationDispatcher,
    DedupRule,
    NotificationKind,
)
from reservation_kernel.services.queue_promotion import (
    QueuePromotionService,
    describe_equipment,
    lock_pending_queue,
)
from reservation_kernel.services.user_directory import SqlUserDirectory, UserDirectory

logger = get_logger("services.reservation")


class ReservationService:
    """Checklist / approval / rejection workflow over equipment units."""

    def __init__(
        self,
        session: Session,
        policy: LifecyclePolicy | None = None,
        clock: Clock | None = None,
        notifier: BestEffortNotifier | None = None,
        directory: UserDirectory | None = None,
        change_log: ChangeLogService | None = None,
    ) -> None:
        self._session = session
        self._policy = policy or LifecyclePolicy()
        self._clock = clock or SystemClock()
        self._notifier = notifier or BestEffortNotifier(
            DatabaseNotificationDispatcher(
                session, self._clock, timezone=self._policy.timezone,
            ),
            session=session,
            clock=self._clock,
            timezone=self._policy.timezone,
        )
        self._directory = directory or SqlUserDirectory(
            session, self._policy.oversight_roles,
        )
        self._change_log = change_log or ChangeLogService(
            session, self._clock, timezone=self._policy.timezone,
        )
        self._promoter = QueuePromotionService(
            session=session,
            policy=self._policy,
            change_log=self._change_log,
            notifier=self._notifier,
            directory=self._directory,
            clock=self._clock,
        )

    # -------------------------------------------------------------------------
    # Request / queue
    # -------------------------------------------------------------------------

    def request_reservation(
        self,
        equipment_id: UUID,
        actor: Actor,
        client: str,
        advisor: str | None = None,
        comments: str | None = None,
    ) -> Reservation:
        """Reserve a Free unit: Free -> PreReserved, new Pending reservation."""
        equipment = self._lock_equipment(equipment_id)
        if equipment.state != EquipmentState.FREE.value:
            raise EquipmentNotAvailableError(str(equipment_id), equipment.state)

        active = self._lock_active_reservations(equipment_id)
        transition = find_transition(equipment.state, EquipmentEvent.REQUEST_RESERVATION)
        enforce_guards(
            transition,
            GuardContext(
                today=self._today(),
                equipment_id=equipment_id,
                requester_id=actor.actor_id,
                requester_active_count=sum(
                    1 for r in active if r.requester_id == actor.actor_id
                ),
                unit_active_count=len(active),
            ),
        )

        clean_client = SetClient(client).validated()
        if clean_client is None:
            raise InvalidFieldUpdateError("client", "is required to request a reservation")
        clean_advisor = (
            _clean(advisor)
            or actor.display_name
            or self._directory.display_name(actor.actor_id)
        )

        now = self._now()
        reservation = ReservationModel(
            equipment_id=equipment_id,
            requester_id=actor.actor_id,
            status=ReservationStatus.PENDING.value,
            comments=_clean(comments),
            created_at=now,
        )
        before = self._holder_values(equipment)
        equipment.state = transition.to_state.value
        equipment.client = clean_client
        equipment.advisor = clean_advisor
        equipment.deadline_date = None
        equipment.deadline_modified = False
        equipment.updated_by_id = actor.actor_id
        reservation.snapshot_from(equipment)
        self._session.add(reservation)

        self._change_log.record_many(
            record_id=equipment_id,
            before=before,
            after=self._holder_values(equipment),
            reason="reservation requested",
            changed_by=actor.actor_id,
        )
        self._session.flush()

        with LogContext.bind(
            actor_id=actor.actor_id,
            equipment_id=equipment_id,
            reservation_id=reservation.id,
        ):
            logger.info("reservation_requested", extra={"state": equipment.state})

        self._notifier.notify(
            self._directory.oversight_user_ids(),
            kind=NotificationKind.RESERVATION_REQUESTED,
            title="New equipment reservation request",
            message=(
                "A new reservation request was received for equipment "
                f"({describe_equipment(equipment)})"
            ),
            reference_id=reservation.id,
            metadata={
                "equipment_id": str(equipment_id),
                "requester_id": str(actor.actor_id),
                "client": clean_client,
            },
            action_ref=ActionRef.for_equipment(equipment_id),
        )
        return reservation.to_dto()

    def queue_reservation(
        self,
        equipment_id: UUID,
        actor: Actor,
        comments: str | None = None,
    ) -> Reservation:
        """Wait behind the lead Pending reservation of a held unit.

        The unit is not changed; the new reservation is promoted by FIFO
        order if the lead is rejected or expires.
        """
        equipment = self._lock_equipment(equipment_id)
        if equipment.state not in (
            EquipmentState.PRE_RESERVED.value,
            EquipmentState.RESERVED.value,
        ):
            raise EquipmentNotAvailableError(str(equipment_id), equipment.state)

        active = self._lock_active_reservations(equipment_id)
        pending = [r for r in active if r.status == ReservationStatus.PENDING.value]
        if not pending:
            raise EquipmentNotAvailableError(str(equipment_id), equipment.state)
        # Only the per-requester guard applies; the unit is already held
        outcome = evaluate_guard(
            REQUESTER_HAS_NO_ACTIVE_RESERVATION,
            GuardContext(
                today=self._today(),
                equipment_id=equipment_id,
                requester_id=actor.actor_id,
                requester_active_count=sum(
                    1 for r in active if r.requester_id == actor.actor_id
                ),
            ),
        )
        if not outcome.passed:
            raise DuplicateReservationError(
                str(equipment_id), str(actor.actor_id), outcome.reason,
            )

        reservation = ReservationModel(
            equipment_id=equipment_id,
            requester_id=actor.actor_id,
            status=ReservationStatus.PENDING.value,
            comments=_clean(comments),
            created_at=self._now(),
        )
        self._session.add(reservation)
        self._session.flush()

        logger.info(
            "reservation_queued",
            extra={
                "equipment_id": str(equipment_id),
                "reservation_id": str(reservation.id),
                "queue_position": len(pending) + 1,
            },
        )
        self._notifier.notify(
            self._directory.oversight_user_ids(),
            kind=NotificationKind.RESERVATION_REQUESTED,
            title="Reservation request queued",
            message=(
                f"A reservation request for equipment ({describe_equipment(equipment)}) "
                f"was queued in position {len(pending) + 1}"
            ),
            reference_id=reservation.id,
            metadata={"equipment_id": str(equipment_id), "queued": True},
            action_ref=ActionRef.for_equipment(equipment_id),
        )
        return reservation.to_dto()

    # -------------------------------------------------------------------------
    # Checklist
    # -------------------------------------------------------------------------

    def update_checklist(
        self,
        reservation_id: UUID,
        actor: Actor,
        update: ChecklistUpdate,
    ) -> Reservation:
        """Toggle checklist flags; the first confirmed item starts the deadline."""
        reservation, equipment, active = self._lock_for_reservation(reservation_id)
        self._require_status(reservation, ReservationStatus.PENDING)
        if actor.actor_id != reservation.requester_id and not self._policy.is_oversight(actor):
            raise UnauthorizedActorError(
                str(actor.actor_id), actor.role, "update another requester's checklist",
            )
        self._require_lead(reservation, active)
        if equipment.state not in (
            EquipmentState.PRE_RESERVED.value,
            EquipmentState.RESERVED.value,
        ):
            raise InvalidEquipmentTransitionError(
                equipment.state, EquipmentEvent.START_CHECKLIST.value,
            )

        new_client = SetClient(update.client).validated() if update.client is not None else None
        current = reservation.to_dto().checklist
        checklist = current.apply(update)
        now = self._now()
        today = self._today()

        transition = None
        if equipment.state == EquipmentState.PRE_RESERVED.value and checklist.checked_count >= 1:
            transition = find_transition(equipment.state, EquipmentEvent.START_CHECKLIST)
            enforce_guards(
                transition,
                GuardContext(
                    today=today,
                    equipment_id=equipment.id,
                    reservation_id=reservation.id,
                    checklist=checklist,
                ),
            )

        reservation.deposit_confirmed = checklist.deposit_confirmed
        reservation.ten_percent_paid = checklist.ten_percent_paid
        reservation.documents_signed = checklist.documents_signed
        if reservation.first_checklist_date is None and checklist.checked_count >= 1:
            reservation.first_checklist_date = now
        reservation.updated_at = now

        before = self._holder_values(equipment)
        if new_client is not None:
            equipment.client = new_client
        if transition is not None:
            equipment.state = transition.to_state.value
            equipment.deadline_date = self._policy.calendar.add_business_days(
                today, self._policy.checklist_deadline_business_days,
            )
            equipment.deadline_modified = False
        equipment.updated_by_id = actor.actor_id
        reservation.snapshot_from(equipment)

        self._change_log.record_many(
            record_id=equipment.id,
            before=before,
            after=self._holder_values(equipment),
            reason="checklist updated",
            changed_by=actor.actor_id,
        )
        self._session.flush()

        logger.info(
            "checklist_updated",
            extra={
                "equipment_id": str(equipment.id),
                "reservation_id": str(reservation.id),
                "checked_count": checklist.checked_count,
                "state": equipment.state,
                "transitioned": transition is not None,
            },
        )
        return reservation.to_dto()

    # -------------------------------------------------------------------------
    # Approve / reject
    # -------------------------------------------------------------------------

    def approve_reservation(self, reservation_id: UUID, actor: Actor) -> ApprovalOutcome:
        """Reserved -> Separated; every other Pending sibling is auto-rejected."""
        self._require_oversight(actor, "approve reservations")
        reservation, equipment, active = self._lock_for_reservation(reservation_id)
        self._require_status(reservation, ReservationStatus.PENDING)
        self._require_lead(reservation, active)

        transition = find_transition(equipment.state, EquipmentEvent.APPROVE)
        today = self._today()
        enforce_guards(
            transition,
            GuardContext(
                today=today,
                equipment_id=equipment.id,
                reservation_id=reservation.id,
                checklist=reservation.to_dto().checklist,
                first_checklist_date=self._local_date(reservation.first_checklist_date),
                approval_window_days=self._policy.approval_window_days,
            ),
        )

        now = self._now()
        before = self._holder_values(equipment)
        equipment.state = transition.to_state.value
        equipment.deadline_date = self._policy.calendar.add_business_days(
            today, self._policy.separation_deadline_business_days,
        )
        equipment.deadline_modified = False
        equipment.updated_by_id = actor.actor_id

        reservation.status = ReservationStatus.APPROVED.value
        reservation.approved_at = now
        reservation.approved_by = actor.actor_id
        reservation.updated_at = now
        reservation.snapshot_from(equipment)

        losers = [
            r for r in active
            if r.id != reservation.id and r.status == ReservationStatus.PENDING.value
        ]
        for loser in losers:
            loser.snapshot_from(equipment)
            self._mark_rejected(loser, now, actor.actor_id, SYSTEM_REASON_ANOTHER_APPROVED)

        self._change_log.record_many(
            record_id=equipment.id,
            before=before,
            after=self._holder_values(equipment),
            reason="reservation approved",
            changed_by=actor.actor_id,
        )
        self._session.flush()

        logger.info(
            "reservation_approved",
            extra={
                "equipment_id": str(equipment.id),
                "reservation_id": str(reservation.id),
                "actor_id": str(actor.actor_id),
                "deadline_date": equipment.deadline_date,
                "auto_rejected": len(losers),
            },
        )

        description = describe_equipment(equipment)
        action = ActionRef.for_equipment(equipment.id)
        self._notifier.notify(
            [reservation.requester_id, *self._directory.oversight_user_ids()],
            kind=NotificationKind.RESERVATION_APPROVED,
            title="Reservation approved",
            message=(
                f"The reservation of equipment ({description}) was approved. "
                f"Separation deadline: {equipment.deadline_date.isoformat()}."
            ),
            reference_id=reservation.id,
            metadata={"equipment_id": str(equipment.id)},
            action_ref=action,
        )
        for loser in losers:
            self._notifier.notify(
                [loser.requester_id],
                kind=NotificationKind.RESERVATION_AUTO_REJECTED,
                title="Reservation request rejected",
                message=(
                    f"Your reservation request for equipment ({description}) was "
                    f"rejected: {SYSTEM_REASON_ANOTHER_APPROVED}."
                ),
                reference_id=loser.id,
                metadata={"equipment_id": str(equipment.id)},
                action_ref=action,
            )

        return ApprovalOutcome(
            reservation=reservation.to_dto(),
            equipment=equipment.to_dto(),
            auto_rejected_ids=tuple(loser.id for loser in losers),
        )

    def reject_reservation(
        self,
        reservation_id: UUID,
        actor: Actor,
        reason: str,
    ) -> RejectionOutcome:
        """Reject a Pending or Approved reservation and run queue promotion.

        Promotion only runs when the rejected reservation was driving the
        unit (the lead Pending or the Approved one); rejecting a queued
        request only removes it from the queue.
        """
        self._require_oversight(actor, "reject reservations")
        clean_reason = _clean(reason)
        if clean_reason is None:
            raise InvalidFieldUpdateError("rejection_reason", "is required")

        reservation, equipment, active = self._lock_for_reservation(reservation_id)
        if reservation.status not in {s.value for s in ACTIVE_RESERVATION_STATUSES}:
            raise ReservationAlreadyResolvedError(str(reservation.id), reservation.status)
        if equipment.state == EquipmentState.DELIVERED.value:
            raise EquipmentDeliveredError(str(equipment.id), "reservation")

        pending = [r for r in active if r.status == ReservationStatus.PENDING.value]
        was_driving = (
            reservation.status == ReservationStatus.APPROVED.value
            or (pending and pending[0].id == reservation.id)
        )

        reservation.snapshot_from(equipment)
        self._mark_rejected(reservation, self._now(), actor.actor_id, clean_reason)
        self._session.flush()

        promotion: PromotionOutcome | None = None
        if was_driving:
            promotion = self._promoter.promote_or_release(
                equipment,
                reason=f"reservation rejected: {clean_reason}",
                changed_by=actor.actor_id,
            )
        self._session.flush()

        logger.info(
            "reservation_rejected",
            extra={
                "equipment_id": str(equipment.id),
                "reservation_id": str(reservation.id),
                "actor_id": str(actor.actor_id),
                "was_driving": bool(was_driving),
                "promoted_reservation_id": (
                    str(promotion.promoted_reservation_id)
                    if promotion and promotion.promoted_reservation_id else None
                ),
                "state": equipment.state,
            },
        )

        self._notifier.notify(
            [reservation.requester_id, *self._directory.oversight_user_ids()],
            kind=NotificationKind.RESERVATION_REJECTED,
            title="Reservation rejected",
            message=(
                f"The reservation of equipment ({describe_equipment(equipment)}) "
                f"was rejected: {clean_reason}"
            ),
            reference_id=reservation.id,
            metadata={
                "equipment_id": str(equipment.id),
                "released": bool(promotion and promotion.released),
            },
            action_ref=ActionRef.for_equipment(equipment.id),
        )
        return RejectionOutcome(
            reservation=reservation.to_dto(),
            equipment=equipment.to_dto(),
            promotion=promotion,
        )

    # -------------------------------------------------------------------------
    # Automatic expiry (maintenance job)
    # -------------------------------------------------------------------------

    def expire_overdue(
        self,
        equipment_id: UUID,
        dedup_rule: DedupRule | None = None,
    ) -> PromotionOutcome | None:
        """Reject the lead of a Reserved unit whose deadline passed.

        Returns None when there is nothing to do (state changed, deadline
        moved, or no Pending reservation), so re-running is harmless.
        """
        equipment = self._lock_equipment(equipment_id)
        today = self._today()
        if (
            equipment.state != EquipmentState.RESERVED.value
            or equipment.deadline_date is None
            or not equipment.deadline_date < today
        ):
            return None
        queue = lock_pending_queue(self._session, equipment_id)
        if not queue:
            return None

        lead = queue[0]
        lead.snapshot_from(equipment)
        self._mark_rejected(lead, self._now(), None, SYSTEM_REASON_DEADLINE_EXPIRED)
        self._session.flush()

        expired_deadline = equipment.deadline_date
        if len(queue) > 1:
            outcome = self._promoter.promote_or_release(
                equipment, reason=SYSTEM_REASON_DEADLINE_EXPIRED, changed_by=None,
            )
        else:
            outcome = self._promoter.release(
                equipment,
                event=EquipmentEvent.EXPIRE_DEADLINE,
                reason=SYSTEM_REASON_DEADLINE_EXPIRED,
                changed_by=None,
            )
        self._session.flush()

        logger.info(
            "reservation_expired",
            extra={
                "equipment_id": str(equipment_id),
                "reservation_id": str(lead.id),
                "deadline_date": expired_deadline,
                "released": outcome.released,
            },
        )

        message = (
            f"The reservation of equipment ({describe_equipment(equipment)}) expired "
            f"on {expired_deadline.isoformat()} without approval and was released."
        )
        self._notifier.notify_once(
            [lead.requester_id, *self._directory.oversight_user_ids()],
            rule=dedup_rule or DedupRule(),
            kind=NotificationKind.RESERVATION_EXPIRED,
            title="Reservation expired",
            message=message,
            reference_id=lead.id,
            metadata={"equipment_id": str(equipment_id), "system": True},
            action_ref=ActionRef.for_equipment(equipment_id),
            priority="high",
        )
        return outcome

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    def mark_delivered(self, equipment_id: UUID, actor: Actor) -> Equipment:
        """Separated -> Delivered; holder fields are frozen until reverted."""
        self._require_oversight(actor, "mark equipment delivered")
        equipment = self._lock_equipment(equipment_id)
        transition = find_transition(equipment.state, EquipmentEvent.DELIVER)
        equipment.state = transition.to_state.value
        equipment.updated_by_id = actor.actor_id
        self._change_log.record(
            record_id=equipment_id,
            field_name="state",
            old_value=transition.from_state.value,
            new_value=transition.to_state.value,
            reason="equipment delivered",
            changed_by=actor.actor_id,
        )
        self._session.flush()
        logger.info("equipment_delivered", extra={"equipment_id": str(equipment_id)})

        approved = [
            r for r in self._lock_active_reservations(equipment_id)
            if r.status == ReservationStatus.APPROVED.value
        ]
        self._notifier.notify(
            [r.requester_id for r in approved] + self._directory.oversight_user_ids(),
            kind=NotificationKind.EQUIPMENT_DELIVERED,
            title="Equipment delivered",
            message=f"Equipment ({describe_equipment(equipment)}) was delivered.",
            reference_id=approved[0].id if approved else None,
            metadata={"equipment_id": str(equipment_id)},
            action_ref=ActionRef.for_equipment(equipment_id),
        )
        return equipment.to_dto()

    def revert_delivery(self, equipment_id: UUID, actor: Actor, reason: str) -> Equipment:
        """Delivered -> Free; the Approved reservation becomes Rejected."""
        self._require_oversight(actor, "revert deliveries")
        clean_reason = _clean(reason)
        if clean_reason is None:
            raise InvalidFieldUpdateError("reason", "is required")
        equipment = self._lock_equipment(equipment_id)
        find_transition(equipment.state, EquipmentEvent.REVERT_DELIVERY)

        now = self._now()
        for reservation in self._lock_active_reservations(equipment_id):
            reservation.snapshot_from(equipment)
            self._mark_rejected(reservation, now, actor.actor_id, SYSTEM_REASON_DELIVERY_REVERTED)
        self._session.flush()

        self._promoter.release(
            equipment,
            event=EquipmentEvent.REVERT_DELIVERY,
            reason=f"{SYSTEM_REASON_DELIVERY_REVERTED}: {clean_reason}",
            changed_by=actor.actor_id,
        )
        self._session.flush()
        logger.info(
            "delivery_reverted",
            extra={"equipment_id": str(equipment_id), "actor_id": str(actor.actor_id)},
        )
        return equipment.to_dto()

    # -------------------------------------------------------------------------
    # Field edits
    # -------------------------------------------------------------------------

    def update_equipment(
        self,
        equipment_id: UUID,
        actor: Actor,
        updates: Sequence[EquipmentFieldUpdate],
        reason: str | None = None,
    ) -> Equipment:
        """Apply typed field edits; all are validated before any is written."""
        equipment = self._lock_equipment(equipment_id)
        state = EquipmentState(equipment.state)

        planned: list[tuple[EquipmentFieldUpdate, object]] = []
        for update in updates:
            value = update.validated()
            if state is EquipmentState.DELIVERED and update.locked_when_delivered:
                raise EquipmentDeliveredError(str(equipment_id), update.field_name)
            if (
                update.locked_when_delivered
                and state is EquipmentState.FREE
                and value is not None
            ):
                raise InvalidFieldUpdateError(
                    update.field_name, "cannot be set while the equipment is free",
                )
            planned.append((update, value))

        before = {u.field_name: getattr(equipment, u.field_name) for u, _ in planned}
        for update, value in planned:
            setattr(equipment, update.field_name, value)
            if (
                isinstance(update, SetDeadline)
                and state in (EquipmentState.RESERVED, EquipmentState.SEPARATED)
                and before[update.field_name] != value
            ):
                equipment.deadline_modified = True
        equipment.updated_by_id = actor.actor_id

        written = self._change_log.record_many(
            record_id=equipment_id,
            before=before,
            after={u.field_name: getattr(equipment, u.field_name) for u, _ in planned},
            reason=_clean(reason) or "manual edit",
            changed_by=actor.actor_id,
        )
        self._session.flush()
        logger.info(
            "equipment_updated",
            extra={
                "equipment_id": str(equipment_id),
                "fields": [e.field_name for e in written],
                "deadline_modified": bool(equipment.deadline_modified),
            },
        )
        return equipment.to_dto()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_equipment(self, equipment_id: UUID) -> Equipment:
        equipment = self._session.get(EquipmentModel, equipment_id)
        if equipment is None:
            raise EquipmentNotFoundError(str(equipment_id))
        return equipment.to_dto()

    def get_reservation(self, reservation_id: UUID) -> Reservation:
        reservation = self._session.get(ReservationModel, reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(str(reservation_id))
        return reservation.to_dto()

    def list_reservations(self, equipment_id: UUID) -> list[ReservationTimelineEntry]:
        """Reservation history of a unit, newest first, with requester names."""
        if self._session.get(EquipmentModel, equipment_id) is None:
            raise EquipmentNotFoundError(str(equipment_id))
        rows = self._session.execute(
            select(ReservationModel, UserProfileModel.full_name)
            .outerjoin(UserProfileModel, UserProfileModel.id == ReservationModel.requester_id)
            .where(ReservationModel.equipment_id == equipment_id)
            .order_by(ReservationModel.created_at.desc(), ReservationModel.id.desc())
        ).all()
        pending = [
            r for r, _ in rows if r.status == ReservationStatus.PENDING.value
        ]
        lead_id = min(pending, key=lambda r: (r.created_at, str(r.id))).id if pending else None
        return [
            ReservationTimelineEntry(
                reservation=r.to_dto(),
                requester_name=name,
                is_lead=r.id == lead_id,
            )
            for r, name in rows
        ]

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _today(self) -> date:
        return self._clock.today(self._policy.timezone)

    def _now(self) -> datetime:
        return self._clock.local_now(self._policy.timezone)

    def _local_date(self, value: datetime | None) -> date | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(ZoneInfo(self._policy.timezone)).date()

    def _lock_equipment(self, equipment_id: UUID) -> EquipmentModel:
        equipment = self._session.execute(
            select(EquipmentModel)
            .where(EquipmentModel.id == equipment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if equipment is None:
            raise EquipmentNotFoundError(str(equipment_id))
        return equipment

    def _lock_active_reservations(self, equipment_id: UUID) -> list[ReservationModel]:
        return list(
            self._session.execute(
                select(ReservationModel)
                .where(
                    ReservationModel.equipment_id == equipment_id,
                    ReservationModel.status.in_(
                        [s.value for s in ACTIVE_RESERVATION_STATUSES]
                    ),
                )
                .order_by(ReservationModel.created_at, ReservationModel.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars().all()
        )

    def _lock_for_reservation(
        self, reservation_id: UUID,
    ) -> tuple[ReservationModel, EquipmentModel, list[ReservationModel]]:
        equipment_id = self._session.execute(
            select(ReservationModel.equipment_id).where(ReservationModel.id == reservation_id)
        ).scalar_one_or_none()
        if equipment_id is None:
            raise ReservationNotFoundError(str(reservation_id))
        # Equipment first, then reservations: one lock order for every operation
        equipment = self._lock_equipment(equipment_id)
        active = self._lock_active_reservations(equipment_id)
        reservation = next((r for r in active if r.id == reservation_id), None)
        if reservation is None:
            reservation = self._session.get(ReservationModel, reservation_id)
        return reservation, equipment, active

    def _require_oversight(self, actor: Actor, operation: str) -> None:
        if not self._policy.is_oversight(actor):
            raise UnauthorizedActorError(str(actor.actor_id), actor.role, operation)

    @staticmethod
    def _require_status(reservation: ReservationModel, status: ReservationStatus) -> None:
        if reservation.status != status.value:
            raise ReservationAlreadyResolvedError(str(reservation.id), reservation.status)

    @staticmethod
    def _require_lead(reservation: ReservationModel, active: list[ReservationModel]) -> None:
        pending = [r for r in active if r.status == ReservationStatus.PENDING.value]
        if pending and pending[0].id != reservation.id:
            raise ReservationNotLeadError(str(reservation.id), str(pending[0].id))

    @staticmethod
    def _holder_values(equipment: EquipmentModel) -> dict[str, object]:
        return {
            "client": equipment.client,
            "advisor": equipment.advisor,
            "deadline_date": equipment.deadline_date,
        }

    @staticmethod
    def _mark_rejected(
        reservation: ReservationModel,
        now: datetime,
        rejected_by: UUID | None,
        reason: str,
    ) -> None:
        reservation.status = ReservationStatus.REJECTED.value
        reservation.rejected_at = now
        reservation.rejected_by = rejected_by
        reservation.rejection_reason = reason
        reservation.updated_at = now


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
