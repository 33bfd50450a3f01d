"""
Payment-cycle date arithmetic.

Pure functions, no I/O. Every billing frequency maps to a flat number of days;
calendar month lengths are never consulted. Cycle end dates are inclusive, so a
30-day monthly cycle starting on Jan 1 ends on Jan 30 and the next one starts
on Jan 31.

All inputs accept ``date``, ``datetime`` or date-like strings. All outputs are
plain ``date`` values with no time component.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Union

from dateutil import parser as date_parser

from src.db.models.enums import BillingFrequency


DateLike = Union[dt.date, dt.datetime, str]

RENEWAL_WINDOW_DAYS = 10

DAYS_BY_FREQUENCY: dict[BillingFrequency, int] = {
    BillingFrequency.MONTHLY: 30,
    BillingFrequency.QUARTERLY: 90,
    BillingFrequency.YEARLY: 365,
    # usage-based plans are billed on the monthly cadence
    BillingFrequency.USAGE_BASED: 30,
}


@dataclass(frozen=True)
class CycleWindow:
    start: dt.date
    end: dt.date

    @property
    def invoice_deadline(self) -> dt.date:
        return invoice_deadline(self.end)


def to_date(value: DateLike) -> dt.date:
    """Normalise a date-like value to a calendar date."""
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        try:
            return date_parser.isoparse(value).date()
        except ValueError:
            return date_parser.parse(value).date()
    raise TypeError(f"Expected a date-like value, got {type(value).__name__}")


def days_for_frequency(frequency: BillingFrequency) -> int:
    return DAYS_BY_FREQUENCY[BillingFrequency(frequency)]


def cycle_end(start: DateLike, frequency: BillingFrequency) -> dt.date:
    """Inclusive end date of a cycle beginning on ``start``."""
    return to_date(start) + dt.timedelta(days=days_for_frequency(frequency) - 1)


def next_cycle_start(previous_end: DateLike) -> dt.date:
    return to_date(previous_end) + dt.timedelta(days=1)


def invoice_deadline(end: DateLike) -> dt.date:
    """The invoice for a cycle is due on its last day."""
    return to_date(end)


def first_cycle(subscription_start: DateLike, frequency: BillingFrequency) -> CycleWindow:
    start = to_date(subscription_start)
    return CycleWindow(start=start, end=cycle_end(start, frequency))


def next_cycle(previous_end: DateLike, frequency: BillingFrequency) -> CycleWindow:
    start = next_cycle_start(previous_end)
    return CycleWindow(start=start, end=cycle_end(start, frequency))


def days_until(target: DateLike, today: DateLike) -> int:
    """Signed number of calendar days from ``today`` to ``target``."""
    return (to_date(target) - to_date(today)).days


def days_until_billing(end: DateLike, today: DateLike) -> int:
    return days_until(end, today)


def should_create_next_cycle(
    last_end: DateLike,
    frequency: BillingFrequency,
    today: DateLike,
) -> bool:
    """True while ``today`` is inside the renewal window of the next cycle.

    The window opens ``RENEWAL_WINDOW_DAYS`` days before the next cycle starts
    and closes on its start date. A missed window never fires retroactively.
    ``frequency`` does not affect the answer; it is validated so callers get a
    uniform error for unknown plans.
    """
    days_for_frequency(frequency)
    remaining = days_until(next_cycle_start(last_end), today)
    return 0 <= remaining <= RENEWAL_WINDOW_DAYS
