"""
Tests for domain value objects: checklist state, typed field updates,
lifecycle policy and the clock.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from reservation_kernel.domain.clock import DeterministicClock
from reservation_kernel.domain.dtos import (
    Actor,
    ChecklistState,
    ChecklistUpdate,
    Reservation,
    SetAdvisor,
    SetClient,
    SetCommercialObservations,
    SetDeadline,
    SetRealSalePrice,
    format_audit_value,
)
from reservation_kernel.domain.lifecycle import ReservationStatus
from reservation_kernel.domain.policy import LifecyclePolicy
from reservation_kernel.exceptions import InvalidFieldUpdateError


class TestChecklistState:
    def test_counts_and_missing(self):
        state = ChecklistState(deposit_confirmed=True, documents_signed=True)
        assert state.checked_count == 2
        assert not state.is_complete
        assert state.missing_items == ("ten_percent_paid",)

    def test_apply_leaves_unset_flags(self):
        state = ChecklistState(deposit_confirmed=True)
        updated = state.apply(ChecklistUpdate(ten_percent_paid=True))
        assert updated == ChecklistState(True, True, False)

    def test_apply_can_uncheck(self):
        updated = ChecklistState(True, True, True).apply(ChecklistUpdate(documents_signed=False))
        assert updated.missing_items == ("documents_signed",)


class TestTypedUpdates:
    def test_client_is_stripped(self):
        assert SetClient("  Constructora Andina  ").validated() == "Constructora Andina"

    def test_blank_text_rejected(self):
        with pytest.raises(InvalidFieldUpdateError) as exc_info:
            SetAdvisor("   ").validated()
        assert exc_info.value.field_name == "advisor"

    def test_none_clears(self):
        assert SetClient(None).validated() is None

    def test_overlong_text_rejected(self):
        with pytest.raises(InvalidFieldUpdateError):
            SetClient("x" * 256).validated()

    def test_observations_allow_long_text(self):
        assert len(SetCommercialObservations("y" * 2000).validated()) == 2000

    def test_deadline_must_be_a_date(self):
        assert SetDeadline(date(2025, 4, 1)).validated() == date(2025, 4, 1)
        with pytest.raises(InvalidFieldUpdateError):
            SetDeadline(datetime(2025, 4, 1, 9, 0)).validated()
        with pytest.raises(InvalidFieldUpdateError):
            SetDeadline("2025-04-01").validated()

    def test_price_is_quantized(self):
        assert SetRealSalePrice(Decimal("1500000.5")).validated() == Decimal("1500000.50")
        assert SetRealSalePrice("250000").validated() == Decimal("250000.00")

    @pytest.mark.parametrize("value", ["-1", "abc", "NaN", "Infinity"])
    def test_bad_price_rejected(self, value):
        with pytest.raises(InvalidFieldUpdateError):
            SetRealSalePrice(value).validated()

    def test_locked_fields(self):
        assert SetClient("a").locked_when_delivered
        assert SetAdvisor("a").locked_when_delivered
        assert SetDeadline(None).locked_when_delivered
        assert not SetCommercialObservations("a").locked_when_delivered
        assert not SetRealSalePrice(None).locked_when_delivered


class TestFormatAuditValue:
    def test_values(self):
        assert format_audit_value(None) is None
        assert format_audit_value(date(2025, 3, 11)) == "2025-03-11"
        assert format_audit_value(Decimal("10.50")) == "10.50"
        assert format_audit_value("text") == "text"


class TestReservationDto:
    def _reservation(self, status):
        return Reservation(
            id=uuid4(),
            equipment_id=uuid4(),
            requester_id=uuid4(),
            status=status,
            checklist=ChecklistState(),
            created_at=datetime(2025, 3, 3, 12, 0),
        )

    def test_active_statuses(self):
        assert self._reservation(ReservationStatus.PENDING).is_active
        assert self._reservation(ReservationStatus.APPROVED).is_active
        assert not self._reservation(ReservationStatus.REJECTED).is_active


class TestLifecyclePolicy:
    def test_defaults(self):
        policy = LifecyclePolicy()
        assert policy.checklist_deadline_business_days == 7
        assert policy.separation_deadline_business_days == 59
        assert policy.approval_window_days == 7

    def test_negative_values_rejected(self):
        with pytest.raises(ValueError):
            LifecyclePolicy(approval_window_days=-1)

    def test_oversight_roles(self):
        policy = LifecyclePolicy()
        assert policy.is_oversight(Actor(uuid4(), "admin"))
        assert policy.is_oversight(Actor(uuid4(), "sales_manager"))
        assert not policy.is_oversight(Actor(uuid4(), "advisor"))


class TestClock:
    def test_naive_today_is_taken_as_local(self):
        clock = DeterministicClock(datetime(2025, 3, 3, 23, 30))
        assert clock.today("America/Bogota") == date(2025, 3, 3)

    def test_aware_today_uses_business_timezone(self):
        # 03:00 UTC on the 4th is still the 3rd in Bogota (UTC-5)
        clock = DeterministicClock(datetime(2025, 3, 4, 3, 0, tzinfo=timezone.utc))
        assert clock.today("America/Bogota") == date(2025, 3, 3)
        assert clock.today() == date(2025, 3, 4)

    def test_local_now_is_naive_wall_time(self):
        clock = DeterministicClock(datetime(2025, 3, 4, 1, 0, tzinfo=timezone.utc))
        assert clock.local_now("America/Bogota") == datetime(2025, 3, 3, 20, 0)
        assert clock.local_now() == datetime(2025, 3, 3, 20, 0)

    def test_local_now_keeps_naive_clocks(self):
        clock = DeterministicClock(datetime(2025, 3, 3, 23, 30))
        assert clock.local_now("America/Bogota") == datetime(2025, 3, 3, 23, 30)

    def test_advance_days(self):
        clock = DeterministicClock(datetime(2025, 3, 3, 12, 0))
        clock.advance_days(2)
        assert clock.today() == date(2025, 3, 5)
        assert clock.tick() == datetime(2025, 3, 5, 12, 0, 1)
