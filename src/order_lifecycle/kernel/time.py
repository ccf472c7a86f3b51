"""
Clocks and calendar helpers

Deadlines, cancellation margins, suspensions and the monthly counter
rollover are all measured against an injected clock, so a test can stand
on any instant and step forward.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Protocol


class TimeProvider(Protocol):
    def now(self) -> datetime: ...


class RealTimeProvider:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class TestTimeProvider:
    """
    Frozen clock that only moves when told to

    Starts at the given instant (or the epoch) and never ticks on its own.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, initial_time: datetime | None = None) -> None:
        self._now = as_utc(initial_time) if initial_time else datetime(1970, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set_time(self, dt: datetime) -> None:
        self._now = as_utc(dt)

    def advance(self, delta: timedelta) -> None:
        self._now += delta

    def advance_seconds(self, seconds: int) -> None:
        self.advance(timedelta(seconds=seconds))

    def advance_hours(self, hours: int) -> None:
        self.advance(timedelta(hours=hours))

    def advance_days(self, days: int) -> None:
        self.advance(timedelta(days=days))


def as_utc(value: datetime | date) -> datetime:
    """
    Aware UTC datetime for a date or datetime

    A naive datetime is read as UTC; a bare date becomes midnight UTC.
    """
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def months_between(earlier: datetime, later: datetime) -> int:
    """Calendar month boundaries crossed going from ``earlier`` to ``later``"""
    return (later.year - earlier.year) * 12 + (later.month - earlier.month)
