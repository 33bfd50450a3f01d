from __future__ import annotations

import datetime as dt

import pytest

from src.db.models.enums import BillingFrequency
from src.services import cycle_calculator
from src.services.cycle_calculator import CycleWindow


@pytest.mark.parametrize("frequency", list(BillingFrequency))
def test_cycle_length_matches_frequency(frequency):
    start = dt.date(2024, 2, 28)
    end = cycle_calculator.cycle_end(start, frequency)

    assert (end - start).days + 1 == cycle_calculator.days_for_frequency(frequency)


def test_every_frequency_has_a_length():
    assert set(cycle_calculator.DAYS_BY_FREQUENCY) == set(BillingFrequency)


@pytest.mark.parametrize("frequency", list(BillingFrequency))
def test_cycle_chain_is_contiguous_and_never_overlaps(frequency):
    window = cycle_calculator.first_cycle(dt.date(2024, 1, 1), frequency)
    for _ in range(12):
        following = cycle_calculator.next_cycle(window.end, frequency)
        assert following.start == window.end + dt.timedelta(days=1)
        assert following.start > window.end
        window = following


def test_monthly_cycles_from_new_year():
    first = cycle_calculator.first_cycle(dt.date(2024, 1, 1), BillingFrequency.MONTHLY)
    assert first == CycleWindow(start=dt.date(2024, 1, 1), end=dt.date(2024, 1, 30))

    second = cycle_calculator.next_cycle(first.end, BillingFrequency.MONTHLY)
    assert second == CycleWindow(start=dt.date(2024, 1, 31), end=dt.date(2024, 2, 29))
    assert cycle_calculator.next_cycle_start(second.end) == dt.date(2024, 3, 1)


def test_invoice_deadline_is_cycle_end():
    window = cycle_calculator.first_cycle("2024-04-01", BillingFrequency.QUARTERLY)

    assert window.end == dt.date(2024, 6, 29)
    assert window.invoice_deadline == window.end


@pytest.mark.parametrize(
    "today, expected",
    [
        (dt.date(2024, 1, 20), False),
        (dt.date(2024, 1, 21), True),
        (dt.date(2024, 1, 25), True),
        (dt.date(2024, 1, 31), True),
        (dt.date(2024, 2, 1), False),
    ],
)
def test_renewal_window(today, expected):
    assert (
        cycle_calculator.should_create_next_cycle(
            dt.date(2024, 1, 30), BillingFrequency.MONTHLY, today
        )
        is expected
    )


def test_renewal_window_boundaries():
    last_end = dt.date(2024, 6, 30)
    next_start = cycle_calculator.next_cycle_start(last_end)

    for days_before, expected in [(11, False), (10, True), (0, True), (-1, False)]:
        today = next_start - dt.timedelta(days=days_before)
        assert (
            cycle_calculator.should_create_next_cycle(last_end, BillingFrequency.YEARLY, today)
            is expected
        ), days_before


def test_inputs_accept_strings_and_datetimes():
    moment = dt.datetime(2024, 1, 21, 23, 59, tzinfo=dt.timezone.utc)

    assert cycle_calculator.to_date("2024-01-21") == dt.date(2024, 1, 21)
    assert cycle_calculator.to_date("2024-01-21T10:15:00Z") == dt.date(2024, 1, 21)
    assert cycle_calculator.to_date(moment) == dt.date(2024, 1, 21)
    assert cycle_calculator.days_until("2024-01-31", moment) == 10
    assert cycle_calculator.days_until_billing(dt.date(2024, 1, 20), moment) == -1


def test_to_date_rejects_other_types():
    with pytest.raises(TypeError):
        cycle_calculator.to_date(20240121)
