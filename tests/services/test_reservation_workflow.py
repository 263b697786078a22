"""
Reservation workflow: request, checklist, approve, reject.

Covers the end-to-end scenarios (Free -> PreReserved -> Reserved ->
Separated), every guard on the way, and the rule that a failed guard leaves
nothing written.
"""

from datetime import date, datetime, timezone
from uuid import uuid4

import pytest

from reservation_kernel.domain.dtos import ChecklistUpdate
from reservation_kernel.domain.lifecycle import EquipmentState, ReservationStatus
from reservation_kernel.exceptions import (
    ApprovalWindowExpiredError,
    ChecklistIncompleteError,
    DuplicateReservationError,
    EquipmentNotAvailableError,
    EquipmentNotFoundError,
    InvalidEquipmentTransitionError,
    InvalidFieldUpdateError,
    ReservationAlreadyResolvedError,
    ReservationNotFoundError,
    UnauthorizedActorError,
)
from reservation_kernel.services.notification_service import NotificationKind

CHECKLIST_DEADLINE = date(2025, 3, 11)


class TestRequestReservation:
    def test_free_unit_becomes_pre_reserved(self, service, equipment, requester_a):
        reservation = service.request_reservation(
            equipment.id, requester_a, client="  Constructora Andina ", comments="urgent",
        )

        unit = service.get_equipment(equipment.id)
        assert unit.state is EquipmentState.PRE_RESERVED
        assert unit.client == "Constructora Andina"
        assert unit.advisor == "Andres Advisor"
        assert unit.deadline_date is None
        assert reservation.status is ReservationStatus.PENDING
        assert reservation.requester_id == requester_a.actor_id
        assert reservation.snapshot_client == "Constructora Andina"
        assert reservation.comments == "urgent"

    def test_explicit_advisor_wins(self, service, equipment, requester_a):
        service.request_reservation(
            equipment.id, requester_a, client="Agro Llanos", advisor="Carlos Field",
        )
        assert service.get_equipment(equipment.id).advisor == "Carlos Field"

    def test_oversight_is_notified(self, service, equipment, requester_a, manager, notifications):
        reservation = service.request_reservation(equipment.id, requester_a, client="Agro Llanos")

        sent = notifications(kind=NotificationKind.RESERVATION_REQUESTED.value)
        assert [n.user_id for n in sent] == [manager.actor_id]
        assert sent[0].reference_id == reservation.id
        assert sent[0].action_url == f"/equipments/{equipment.id}"

    def test_non_free_unit_rejected(self, service, make_reservation, requester_b):
        unit, _ = make_reservation("pre_reserved")
        with pytest.raises(EquipmentNotAvailableError) as exc_info:
            service.request_reservation(unit.id, requester_b, client="Other")
        assert exc_info.value.state == "pre_reserved"

    def test_client_required(self, service, equipment, requester_a):
        with pytest.raises(InvalidFieldUpdateError):
            service.request_reservation(equipment.id, requester_a, client="   ")
        assert service.get_equipment(equipment.id).state is EquipmentState.FREE

    def test_unknown_equipment(self, service, requester_a):
        with pytest.raises(EquipmentNotFoundError):
            service.request_reservation(uuid4(), requester_a, client="X")

    def test_request_is_logged(self, service, equipment, requester_a, captured_logs):
        reservation = service.request_reservation(equipment.id, requester_a, client="X")
        record = next(r for r in captured_logs() if r["message"] == "reservation_requested")
        assert record["reservation_id"] == str(reservation.id)
        assert record["actor_id"] == str(requester_a.actor_id)


class TestChecklist:
    def test_first_item_starts_checklist_deadline(
        self, service, make_reservation, requester_a, clock,
    ):
        unit, reservation = make_reservation("pre_reserved")

        updated = service.update_checklist(
            reservation.id, requester_a, ChecklistUpdate(deposit_confirmed=True),
        )

        equipment = service.get_equipment(unit.id)
        assert equipment.state is EquipmentState.RESERVED
        assert equipment.deadline_date == CHECKLIST_DEADLINE
        assert updated.first_checklist_date == clock.now()
        assert updated.snapshot_deadline == CHECKLIST_DEADLINE

    def test_any_single_item_is_enough(self, service, make_reservation, requester_a):
        unit, reservation = make_reservation("pre_reserved")
        service.update_checklist(reservation.id, requester_a, ChecklistUpdate(documents_signed=True))
        assert service.get_equipment(unit.id).state is EquipmentState.RESERVED

    def test_no_item_keeps_pre_reserved(self, service, make_reservation, requester_a):
        unit, reservation = make_reservation("pre_reserved")
        updated = service.update_checklist(
            reservation.id, requester_a, ChecklistUpdate(deposit_confirmed=False),
        )
        assert service.get_equipment(unit.id).state is EquipmentState.PRE_RESERVED
        assert updated.first_checklist_date is None

    def test_reserved_unit_keeps_its_deadline(self, service, make_reservation, requester_a, clock):
        unit, reservation = make_reservation("reserved")
        first_check = service.get_reservation(reservation.id).first_checklist_date
        clock.advance_days(2)

        updated = service.update_checklist(
            reservation.id, requester_a, ChecklistUpdate(ten_percent_paid=True),
        )

        assert service.get_equipment(unit.id).deadline_date == CHECKLIST_DEADLINE
        assert updated.first_checklist_date == first_check
        assert updated.checklist.checked_count == 2

    def test_client_can_be_recorded_with_checklist(self, service, make_reservation, requester_a):
        unit, reservation = make_reservation("reserved")
        service.update_checklist(
            reservation.id, requester_a, ChecklistUpdate(client="Minera del Sur"),
        )
        assert service.get_equipment(unit.id).client == "Minera del Sur"

    def test_other_requester_cannot_edit(self, service, make_reservation, requester_b):
        _, reservation = make_reservation("pre_reserved")
        with pytest.raises(UnauthorizedActorError):
            service.update_checklist(
                reservation.id, requester_b, ChecklistUpdate(deposit_confirmed=True),
            )

    def test_oversight_can_edit(self, service, make_reservation, manager):
        unit, reservation = make_reservation("pre_reserved")
        service.update_checklist(reservation.id, manager, ChecklistUpdate(deposit_confirmed=True))
        assert service.get_equipment(unit.id).state is EquipmentState.RESERVED

    def test_resolved_reservation_cannot_change(self, service, make_reservation, requester_a, manager):
        _, reservation = make_reservation("reserved")
        service.reject_reservation(reservation.id, manager, "client withdrew")
        with pytest.raises(ReservationAlreadyResolvedError):
            service.update_checklist(
                reservation.id, requester_a, ChecklistUpdate(documents_signed=True),
            )

    def test_unknown_reservation(self, service, requester_a):
        with pytest.raises(ReservationNotFoundError):
            service.update_checklist(uuid4(), requester_a, ChecklistUpdate(deposit_confirmed=True))


class TestApprove:
    def test_full_lifecycle_to_separated(self, service, make_reservation, requester_a, manager, policy):
        unit, reservation = make_reservation("reserved")
        service.update_checklist(
            reservation.id,
            requester_a,
            ChecklistUpdate(ten_percent_paid=True, documents_signed=True),
        )

        outcome = service.approve_reservation(reservation.id, manager)

        expected = policy.calendar.add_business_days(date(2025, 3, 3), 59)
        assert outcome.equipment.state is EquipmentState.SEPARATED
        assert outcome.equipment.deadline_date == expected
        assert outcome.reservation.status is ReservationStatus.APPROVED
        assert outcome.reservation.approved_by == manager.actor_id
        assert outcome.reservation.snapshot_deadline == expected
        assert outcome.auto_rejected_ids == ()

    def test_requires_oversight(self, service, make_reservation, requester_a):
        _, reservation = make_reservation("reserved")
        with pytest.raises(UnauthorizedActorError):
            service.approve_reservation(reservation.id, requester_a)

    def test_incomplete_checklist_changes_nothing(self, service, make_reservation, manager):
        unit, reservation = make_reservation("reserved")

        with pytest.raises(ChecklistIncompleteError) as exc_info:
            service.approve_reservation(reservation.id, manager)

        assert exc_info.value.missing_items == ("ten_percent_paid", "documents_signed")
        assert service.get_equipment(unit.id).state is EquipmentState.RESERVED
        assert service.get_equipment(unit.id).deadline_date == CHECKLIST_DEADLINE
        assert service.get_reservation(reservation.id).status is ReservationStatus.PENDING

    def test_window_closes_after_seven_calendar_days(
        self, service, make_reservation, requester_a, manager, clock,
    ):
        unit, reservation = make_reservation("reserved")
        service.update_checklist(
            reservation.id, requester_a,
            ChecklistUpdate(ten_percent_paid=True, documents_signed=True),
        )
        clock.advance_days(8)

        with pytest.raises(ApprovalWindowExpiredError) as exc_info:
            service.approve_reservation(reservation.id, manager)

        assert exc_info.value.days_elapsed == 8
        assert service.get_reservation(reservation.id).status is ReservationStatus.PENDING

    def test_window_still_open_on_day_seven(
        self, service, make_reservation, requester_a, manager, clock,
    ):
        _, reservation = make_reservation("reserved")
        service.update_checklist(
            reservation.id, requester_a,
            ChecklistUpdate(ten_percent_paid=True, documents_signed=True),
        )
        clock.advance_days(7)
        outcome = service.approve_reservation(reservation.id, manager)
        assert outcome.reservation.status is ReservationStatus.APPROVED

    def test_window_counts_local_days_with_utc_clock(
        self, service, session, make_reservation, requester_a, manager, clock,
    ):
        # 01:00 UTC on the 4th is 20:00 on the 3rd in Bogota
        clock.set_time(datetime(2025, 3, 4, 1, 0, tzinfo=timezone.utc))
        _, reservation = make_reservation("reserved")
        service.update_checklist(
            reservation.id, requester_a,
            ChecklistUpdate(ten_percent_paid=True, documents_signed=True),
        )
        session.commit()
        assert service.get_reservation(reservation.id).first_checklist_date == datetime(
            2025, 3, 3, 20, 0,
        )

        clock.set_time(datetime(2025, 3, 11, 16, 0, tzinfo=timezone.utc))

        with pytest.raises(ApprovalWindowExpiredError) as exc_info:
            service.approve_reservation(reservation.id, manager)
        assert exc_info.value.days_elapsed == 8

    def test_day_seven_open_with_utc_clock(
        self, service, session, make_reservation, requester_a, manager, clock,
    ):
        clock.set_time(datetime(2025, 3, 4, 1, 0, tzinfo=timezone.utc))
        _, reservation = make_reservation("reserved")
        service.update_checklist(
            reservation.id, requester_a,
            ChecklistUpdate(ten_percent_paid=True, documents_signed=True),
        )
        session.commit()
        # 04:00 UTC on the 11th is still the 10th locally
        clock.set_time(datetime(2025, 3, 11, 4, 0, tzinfo=timezone.utc))

        outcome = service.approve_reservation(reservation.id, manager)

        assert outcome.reservation.status is ReservationStatus.APPROVED

    def test_pre_reserved_unit_cannot_be_approved(self, service, make_reservation, manager):
        _, reservation = make_reservation("pre_reserved")
        with pytest.raises(InvalidEquipmentTransitionError):
            service.approve_reservation(reservation.id, manager)

    def test_approval_auto_rejects_queued_siblings(
        self, service, make_reservation, make_user, requester_a, requester_b,
        manager, clock, notifications,
    ):
        requester_c = make_user("Camilo Advisor")
        unit, lead = make_reservation("reserved")
        clock.advance(60)
        second = service.queue_reservation(unit.id, requester_b)
        clock.advance(60)
        third = service.queue_reservation(unit.id, requester_c)
        service.update_checklist(
            lead.id, requester_a, ChecklistUpdate(ten_percent_paid=True, documents_signed=True),
        )

        outcome = service.approve_reservation(lead.id, manager)

        assert set(outcome.auto_rejected_ids) == {second.id, third.id}
        for loser_id in (second.id, third.id):
            loser = service.get_reservation(loser_id)
            assert loser.status is ReservationStatus.REJECTED
            assert loser.rejection_reason == "another request approved"
            assert loser.snapshot_client == "Constructora Andina"
        timeline = service.list_reservations(unit.id)
        approved = [e for e in timeline if e.reservation.status is ReservationStatus.APPROVED]
        assert [e.reservation.id for e in approved] == [lead.id]

        auto = notifications(kind=NotificationKind.RESERVATION_AUTO_REJECTED.value)
        assert {n.user_id for n in auto} == {requester_b.actor_id, requester_c.actor_id}
        approved_notes = notifications(kind=NotificationKind.RESERVATION_APPROVED.value)
        assert {n.user_id for n in approved_notes} == {requester_a.actor_id, manager.actor_id}


class TestReject:
    def test_reject_without_queue_releases_unit(
        self, service, make_reservation, manager, notifications, requester_a,
    ):
        unit, reservation = make_reservation("reserved")

        outcome = service.reject_reservation(reservation.id, manager, "  client withdrew ")

        equipment = service.get_equipment(unit.id)
        assert equipment.state is EquipmentState.FREE
        assert (equipment.client, equipment.advisor, equipment.deadline_date) == (None, None, None)
        assert equipment.deadline_modified is False
        assert outcome.promotion.released
        assert set(outcome.promotion.cleared_fields) == {"client", "advisor", "deadline_date"}

        rejected = service.get_reservation(reservation.id)
        assert rejected.status is ReservationStatus.REJECTED
        assert rejected.rejection_reason == "client withdrew"
        assert rejected.rejected_by == manager.actor_id
        assert rejected.snapshot_client == "Constructora Andina"
        assert rejected.snapshot_deadline == CHECKLIST_DEADLINE

        sent = notifications(kind=NotificationKind.RESERVATION_REJECTED.value)
        assert {n.user_id for n in sent} == {requester_a.actor_id, manager.actor_id}

    def test_reject_approved_reservation_releases_separated_unit(
        self, service, make_reservation, manager,
    ):
        unit, reservation = make_reservation("separated")
        outcome = service.reject_reservation(reservation.id, manager, "financing fell through")
        assert outcome.equipment.state is EquipmentState.FREE
        assert outcome.reservation.status is ReservationStatus.REJECTED

    def test_requires_reason(self, service, make_reservation, manager):
        _, reservation = make_reservation("reserved")
        with pytest.raises(InvalidFieldUpdateError):
            service.reject_reservation(reservation.id, manager, "  ")

    def test_requires_oversight(self, service, make_reservation, requester_a):
        _, reservation = make_reservation("reserved")
        with pytest.raises(UnauthorizedActorError):
            service.reject_reservation(reservation.id, requester_a, "changed my mind")

    def test_already_rejected(self, service, make_reservation, manager):
        _, reservation = make_reservation("reserved")
        service.reject_reservation(reservation.id, manager, "first")
        with pytest.raises(ReservationAlreadyResolvedError) as exc_info:
            service.reject_reservation(reservation.id, manager, "second")
        assert exc_info.value.status == "rejected"


class TestQueueReservation:
    def test_queue_leaves_unit_untouched(self, service, make_reservation, requester_b, clock):
        unit, lead = make_reservation("pre_reserved")
        clock.advance(60)

        queued = service.queue_reservation(unit.id, requester_b, comments="next in line")

        equipment = service.get_equipment(unit.id)
        assert equipment.state is EquipmentState.PRE_RESERVED
        assert equipment.client == "Constructora Andina"
        assert queued.status is ReservationStatus.PENDING
        assert queued.snapshot_client is None

    def test_requester_cannot_queue_twice(self, service, make_reservation, requester_a):
        unit, _ = make_reservation("pre_reserved")
        with pytest.raises(DuplicateReservationError):
            service.queue_reservation(unit.id, requester_a)

    def test_free_unit_cannot_be_queued(self, service, equipment, requester_b):
        with pytest.raises(EquipmentNotAvailableError):
            service.queue_reservation(equipment.id, requester_b)

    def test_separated_unit_cannot_be_queued(self, service, make_reservation, requester_b):
        unit, _ = make_reservation("separated")
        with pytest.raises(EquipmentNotAvailableError):
            service.queue_reservation(unit.id, requester_b)


class TestTimeline:
    def test_newest_first_with_names_and_lead(
        self, service, make_reservation, requester_b, clock,
    ):
        unit, lead = make_reservation("pre_reserved")
        clock.advance(60)
        queued = service.queue_reservation(unit.id, requester_b)

        timeline = service.list_reservations(unit.id)

        assert [e.reservation.id for e in timeline] == [queued.id, lead.id]
        assert [e.requester_name for e in timeline] == ["Beatriz Advisor", "Andres Advisor"]
        assert [e.is_lead for e in timeline] == [False, True]

    def test_unknown_equipment(self, service):
        with pytest.raises(EquipmentNotFoundError):
            service.list_reservations(uuid4())

