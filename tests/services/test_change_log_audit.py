"""
Change-log audit trail and persistence guarantees.

Tests:
- Change-log rows are append-only at the ORM layer
- Releasing a unit logs one row per previously non-null holder field
- The database refuses a second Approved reservation on one unit
- session_scope commits or rolls back as a unit
- call_with_retry retries only transient failures
"""

from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from reservation_kernel.db.engine import session_scope
from reservation_kernel.db.retry import RetryPolicy, call_with_retry, is_transient
from reservation_kernel.exceptions import (
    EquipmentNotFoundError,
    ImmutabilityViolationError,
)
from reservation_kernel.models.change_log import ChangeLogModel
from reservation_kernel.models.equipment import EquipmentModel
from reservation_kernel.models.reservation import ReservationModel
from reservation_kernel.services.change_log_service import ChangeLogService


@pytest.fixture
def change_log(session, clock):
    return ChangeLogService(session, clock)


class TestChangeLogImmutability:
    def test_update_rejected(self, session, change_log, equipment):
        entry = change_log.record(
            record_id=equipment.id, field_name="client", old_value=None,
            new_value="Agro Llanos", reason="manual edit", changed_by=None,
        )
        session.flush()

        entry.new_value = "tampered"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_rejected(self, session, change_log, equipment):
        entry = change_log.record(
            record_id=equipment.id, field_name="client", old_value=None,
            new_value="Agro Llanos", reason="manual edit", changed_by=None,
        )
        session.flush()

        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestChangeLogService:
    def test_unchanged_value_writes_nothing(self, change_log, equipment):
        assert change_log.record(
            record_id=equipment.id, field_name="advisor", old_value="A",
            new_value="A", reason="noop", changed_by=None,
        ) is None

    def test_record_many_only_writes_differences(self, session, change_log, equipment):
        written = change_log.record_many(
            record_id=equipment.id,
            before={"client": "A", "advisor": "B", "deadline_date": None},
            after={"client": "A", "advisor": "C"},
            reason="manual edit",
            changed_by=None,
        )
        session.flush()
        assert [e.field_name for e in written] == ["advisor"]
        assert [e.field_name for e in change_log.history(equipment.id)] == ["advisor"]

    def test_dates_stored_as_iso_text(self, session, change_log, equipment):
        change_log.record(
            record_id=equipment.id, field_name="deadline_date", old_value=None,
            new_value=date(2025, 3, 11), reason="checklist updated",
            changed_by=None,
        )
        session.flush()
        row = session.get(ChangeLogModel, change_log.history(equipment.id)[0].id)
        assert row.new_value == "2025-03-11"
        assert row.changed_by is None

    def test_reject_history_is_complete(self, service, make_reservation, manager, change_log, clock):
        unit, reservation = make_reservation("reserved")
        clock.advance(60)
        service.reject_reservation(reservation.id, manager, "client withdrew")

        released = [
            e for e in change_log.history(unit.id)
            if e.change_reason == "reservation rejected: client withdrew"
        ]
        assert {e.field_name: e.old_value for e in released} == {
            "client": "Constructora Andina",
            "advisor": "Andres Advisor",
            "deadline_date": "2025-03-11",
        }
        assert all(e.new_value is None for e in released)
        assert all(e.changed_by == manager.actor_id for e in released)


class TestOneApprovedPerUnit:
    def test_second_approved_row_violates_index(self, session, equipment, requester_a, requester_b, clock):
        for requester in (requester_a, requester_b):
            session.add(ReservationModel(
                equipment_id=equipment.id,
                requester_id=requester.actor_id,
                status="approved",
                created_at=clock.tick(),
            ))
        with pytest.raises(IntegrityError):
            session.flush()


class TestSessionScope:
    def test_commits_on_success(self, session_factory, make_equipment, session):
        unit_id = make_equipment().id
        session.commit()

        with session_scope(session_factory) as scoped:
            scoped.get(EquipmentModel, unit_id).commercial_observations = "committed"

        with session_scope(session_factory) as check:
            assert check.get(EquipmentModel, unit_id).commercial_observations == "committed"

    def test_rolls_back_on_error(self, session_factory, make_equipment, session):
        unit_id = make_equipment().id
        session.commit()

        with pytest.raises(EquipmentNotFoundError):
            with session_scope(session_factory) as scoped:
                scoped.get(EquipmentModel, unit_id).commercial_observations = "lost"
                scoped.flush()
                raise EquipmentNotFoundError("missing")

        with session_scope(session_factory) as check:
            assert check.get(EquipmentModel, unit_id).commercial_observations is None


class TestCallWithRetry:
    @staticmethod
    def _operational():
        return OperationalError("SELECT 1", {}, Exception("server closed the connection"))

    def test_transient_error_is_retried(self):
        attempts = []
        delays = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise self._operational()
            return "ok"

        result = call_with_retry(
            flaky, RetryPolicy(max_attempts=3, base_delay_seconds=0.5), sleep=delays.append,
        )

        assert result == "ok"
        assert delays == [0.5, 1.0]

    def test_gives_up_after_max_attempts(self):
        def down():
            raise self._operational()

        with pytest.raises(OperationalError):
            call_with_retry(down, RetryPolicy(max_attempts=2), sleep=lambda _: None)

    def test_integrity_error_is_not_retried(self):
        calls = []

        def conflict():
            calls.append(1)
            raise IntegrityError("INSERT", {}, Exception("duplicate key"))

        with pytest.raises(IntegrityError):
            call_with_retry(conflict, sleep=lambda _: None)
        assert len(calls) == 1
        assert not is_transient(IntegrityError("INSERT", {}, Exception("dup")))

    def test_delay_is_capped(self):
        policy = RetryPolicy(base_delay_seconds=1.0, max_delay_seconds=3.0)
        assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 3.0, 3.0]

    def test_invalid_policy(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
