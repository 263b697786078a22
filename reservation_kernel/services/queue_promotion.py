"""
reservation_kernel.services.queue_promotion -- FIFO promotion and release.

Responsibility:
    Decides what happens to a unit once the reservation driving it is gone:
    hand it to the oldest waiting Pending reservation, or release it to
    Free.  Also owns the "clear holder" effect shared by every path that
    returns a unit to Free (release, auto-expiry, delivery revert).

Invariants enforced:
    - Strict FIFO: waiting reservations are ordered by ``created_at``
      ascending (id breaks ties); no priority weighting.
    - Releasing writes one change-log row per previously non-null
      client/advisor/deadline field.
    - Callers hold the equipment row lock (SELECT ... FOR UPDATE); this
      service re-locks the Pending rows it reads.

Failure modes:
    - InvalidEquipmentTransitionError if the unit's state has no RELEASE /
      PROMOTE_QUEUE edge (e.g. Free, Delivered).
    - EmptyQueueError / DeadlineNotPassedError from guard evaluation.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from reservation_kernel.domain.clock import Clock, SystemClock
from reservation_kernel.domain.dtos import AUDITED_FIELDS, PromotionOutcome
from reservation_kernel.domain.guards import GuardContext, enforce_guards
from reservation_kernel.domain.lifecycle import (
    EquipmentEvent,
    EquipmentState,
    ReservationStatus,
    find_transition,
)
from reservation_kernel.domain.policy import LifecyclePolicy
from reservation_kernel.logging_config import get_logger
from reservation_kernel.models.equipment import EquipmentModel
from reservation_kernel.models.reservation import ReservationModel
from reservation_kernel.services.change_log_service import ChangeLogService
from reservation_kernel.services.notification_service import (
    ActionRef,
    BestEffortNotifier,
    NotificationKind,
)
from reservation_kernel.services.user_directory import UserDirectory

logger = get_logger("services.queue_promotion")

_HOLDER_FIELDS = tuple(sorted(AUDITED_FIELDS))


def lock_pending_queue(session: Session, equipment_id: UUID) -> list[ReservationModel]:
    """Pending reservations of a unit, oldest first, locked for update."""
    return list(
        session.execute(
            select(ReservationModel)
            .where(
                ReservationModel.equipment_id == equipment_id,
                ReservationModel.status == ReservationStatus.PENDING.value,
            )
            .order_by(ReservationModel.created_at, ReservationModel.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
    )


def describe_equipment(equipment: EquipmentModel) -> str:
    return f"serial {equipment.serial or 'N/A'} - model {equipment.model or 'N/A'}"


class QueuePromotionService:
    def __init__(
        self,
        session: Session,
        policy: LifecyclePolicy,
        change_log: ChangeLogService,
        notifier: BestEffortNotifier,
        directory: UserDirectory,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._policy = policy
        self._change_log = change_log
        self._notifier = notifier
        self._directory = directory
        self._clock = clock or SystemClock()

    def promote_or_release(
        self,
        equipment: EquipmentModel,
        *,
        reason: str,
        changed_by: UUID | None,
    ) -> PromotionOutcome:
        """Promote the oldest Pending reservation, or release the unit."""
        queue = lock_pending_queue(self._session, equipment.id)
        if not queue:
            return self.release(
                equipment,
                event=EquipmentEvent.RELEASE,
                reason=reason,
                changed_by=changed_by,
            )
        return self._promote(equipment, queue, reason=reason, changed_by=changed_by)

    def release(
        self,
        equipment: EquipmentModel,
        *,
        event: EquipmentEvent,
        reason: str,
        changed_by: UUID | None,
    ) -> PromotionOutcome:
        """Apply a transition whose effect clears the holder fields."""
        transition = find_transition(equipment.state, event)
        enforce_guards(
            transition,
            GuardContext(
                today=self._clock.today(self._policy.timezone),
                equipment_id=equipment.id,
                deadline_date=equipment.deadline_date,
            ),
        )
        before = {name: getattr(equipment, name) for name in _HOLDER_FIELDS}
        from_state = equipment.state

        equipment.state = transition.to_state.value
        equipment.client = None
        equipment.advisor = None
        equipment.deadline_date = None
        equipment.deadline_modified = False
        equipment.updated_by_id = changed_by

        self._change_log.record_many(
            record_id=equipment.id,
            before={k: v for k, v in before.items() if v is not None},
            after={},
            reason=reason,
            changed_by=changed_by,
        )
        cleared = tuple(k for k, v in before.items() if v is not None)
        logger.info(
            "equipment_released",
            extra={
                "equipment_id": str(equipment.id),
                "from_state": from_state,
                "event": event.value,
                "cleared_fields": list(cleared),
                "system": changed_by is None,
            },
        )
        return PromotionOutcome(
            equipment_id=equipment.id,
            new_state=EquipmentState(equipment.state),
            cleared_fields=cleared,
        )

    def _promote(
        self,
        equipment: EquipmentModel,
        queue: list[ReservationModel],
        *,
        reason: str,
        changed_by: UUID | None,
    ) -> PromotionOutcome:
        transition = find_transition(equipment.state, EquipmentEvent.PROMOTE_QUEUE)
        today = self._clock.today(self._policy.timezone)
        enforce_guards(
            transition,
            GuardContext(today=today, equipment_id=equipment.id, queue_length=len(queue)),
        )
        lead = queue[0]
        before = {name: getattr(equipment, name) for name in _HOLDER_FIELDS}

        equipment.state = transition.to_state.value
        # Client identity belongs to the new requester; filled at their next checklist step
        equipment.client = None
        equipment.advisor = self._directory.display_name(lead.requester_id)
        equipment.deadline_date = self._policy.calendar.add_business_days(
            today, self._policy.checklist_deadline_business_days,
        )
        equipment.deadline_modified = False
        equipment.updated_by_id = changed_by
        lead.snapshot_from(equipment)
        lead.updated_at = self._clock.local_now(self._policy.timezone)

        self._change_log.record_many(
            record_id=equipment.id,
            before=before,
            after={name: getattr(equipment, name) for name in _HOLDER_FIELDS},
            reason=f"queue promotion: {reason}",
            changed_by=changed_by,
        )
        self._session.flush()

        logger.info(
            "queue_promoted",
            extra={
                "equipment_id": str(equipment.id),
                "reservation_id": str(lead.id),
                "queue_length": len(queue),
                "deadline_date": equipment.deadline_date,
            },
        )

        description = describe_equipment(equipment)
        action = ActionRef.for_equipment(equipment.id)
        self._notifier.notify(
            [lead.requester_id],
            kind=NotificationKind.QUEUE_PROMOTED,
            title="Your reservation request is now first in line",
            message=(
                f"Your request for equipment ({description}) is now first in line. "
                f"Complete the checklist before {equipment.deadline_date.isoformat()}."
            ),
            reference_id=lead.id,
            metadata={"equipment_id": str(equipment.id)},
            action_ref=action,
        )
        self._notifier.notify(
            self._directory.oversight_user_ids(),
            kind=NotificationKind.QUEUE_PROMOTED,
            title="Reservation queue advanced",
            message=(
                f"Equipment ({description}) was assigned to the next request in line "
                f"({equipment.advisor or lead.requester_id})."
            ),
            reference_id=lead.id,
            metadata={"equipment_id": str(equipment.id)},
            action_ref=action,
        )
        return PromotionOutcome(
            equipment_id=equipment.id,
            new_state=EquipmentState(equipment.state),
            promoted_reservation_id=lead.id,
        )
