"""Clock abstraction injected into the engine."""
from __future__ import annotations

import datetime as dt
from typing import Protocol


class Clock(Protocol):
    def now(self) -> dt.datetime: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> dt.datetime:
        return dt.datetime.now(dt.timezone.utc)


class FixedClock:
    """A clock frozen at a given instant, settable by tests and backfills."""

    def __init__(self, instant: dt.datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=dt.timezone.utc)
        self.instant = instant

    def now(self) -> dt.datetime:
        return self.instant

    def advance(self, **kwargs: float) -> None:
        self.instant = self.instant + dt.timedelta(**kwargs)
