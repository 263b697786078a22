"""
Property-based tests for business-day arithmetic and checklist state.

Properties:
- add lands on a business day (n >= 1) strictly after the start
- add and count are inverse
- subtract undoes add when both ends are business days
- add is monotonic in n
- ChecklistState.apply never reports an item both checked and missing
"""

from datetime import date, timedelta

from hypothesis import assume, given, settings
from hypothesis import strategies as st

from reservation_kernel.domain.calendar import BusinessCalendar
from reservation_kernel.domain.dtos import ChecklistState, ChecklistUpdate

calendar = BusinessCalendar()

dates = st.dates(min_value=date(2000, 1, 1), max_value=date(2100, 12, 31))
counts = st.integers(min_value=0, max_value=120)
month_days = st.tuples(st.integers(1, 12), st.integers(1, 28))


@given(start=dates, n=st.integers(min_value=1, max_value=120))
def test_add_lands_on_later_business_day(start, n):
    result = calendar.add_business_days(start, n)
    assert result > start
    assert calendar.is_business_day(result)


@given(start=dates, n=counts)
def test_count_inverts_add(start, n):
    assert calendar.count_business_days(start, calendar.add_business_days(start, n)) == n


@given(start=dates, n=counts)
def test_subtract_undoes_add_from_business_day(start, n):
    assume(calendar.is_business_day(start))
    assert calendar.subtract_business_days(calendar.add_business_days(start, n), n) == start


@given(start=dates, n=st.integers(min_value=0, max_value=119))
def test_add_is_monotonic(start, n):
    assert calendar.add_business_days(start, n) < calendar.add_business_days(start, n + 1)


@given(start=dates, n=counts)
def test_span_stays_close_to_count(start, n):
    # One Sunday per six business days, plus a small holiday allowance
    span = (calendar.add_business_days(start, n) - start).days
    assert n <= span <= n + (n // 6 + 1) * 2 + 2


@settings(max_examples=50)
@given(holidays=st.frozensets(month_days, max_size=20), start=dates, n=counts)
def test_custom_holidays_are_never_landed_on(holidays, start, n):
    custom = BusinessCalendar.from_month_days(holidays)
    result = custom.add_business_days(start, n)
    if n:
        assert (result.month, result.day) not in holidays
        assert result.weekday() != 6


@given(start=dates, end=dates)
def test_count_is_antisymmetric(start, end):
    assert calendar.count_business_days(start, end) == -calendar.count_business_days(end, start)


flags = st.one_of(st.none(), st.booleans())


@given(
    initial=st.tuples(st.booleans(), st.booleans(), st.booleans()),
    update=st.tuples(flags, flags, flags),
)
def test_checklist_apply_is_consistent(initial, update):
    state = ChecklistState(*initial).apply(
        ChecklistUpdate(
            deposit_confirmed=update[0],
            ten_percent_paid=update[1],
            documents_signed=update[2],
        )
    )
    assert state.checked_count + len(state.missing_items) == 3
    assert state.is_complete == (state.missing_items == ())
    for index, before in enumerate(initial):
        expected = before if update[index] is None else update[index]
        assert (
            state.deposit_confirmed,
            state.ten_percent_paid,
            state.documents_signed,
        )[index] == expected


@given(start=dates)
def test_one_business_day_never_jumps_more_than_a_week(start):
    assert calendar.add_business_days(start, 1) - start <= timedelta(days=7)
