"""Recurring weekly rules and date-bound exceptions for one provider at one clinic."""

from dataclasses import dataclass, field
from datetime import date, time, timedelta
from enum import Enum
from typing import Iterable

from clinic_scheduler.core.errors import ValidationError
from clinic_scheduler.scheduling import intervals as interval_sets
from clinic_scheduler.scheduling.interval_codec import quantize
from clinic_scheduler.scheduling.intervals import Interval
from clinic_scheduler.scheduling.time_grid import to_minutes


class Weekday(str, Enum):
    SUNDAY = 'Sunday'
    MONDAY = 'Monday'
    TUESDAY = 'Tuesday'
    WEDNESDAY = 'Wednesday'
    THURSDAY = 'Thursday'
    FRIDAY = 'Friday'
    SATURDAY = 'Saturday'

    @classmethod
    def from_date(cls, value: date) -> 'Weekday':
        # date.weekday() counts from Monday; the schedule counts from Sunday.
        return WEEKDAYS[(value.weekday() + 1) % 7]

    @property
    def position(self) -> int:
        return WEEKDAYS.index(self)


WEEKDAYS = list(Weekday)


def _block_interval(start_time: time, end_time: time) -> Interval:
    interval = quantize(start_time, end_time)
    if interval is None:
        raise ValidationError(f'Start time {start_time} must be before end time {end_time}.')
    return interval


@dataclass(frozen=True)
class WeeklyAvailabilityRule:
    weekday: Weekday
    start_time: time
    end_time: time
    id: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, 'weekday', Weekday(self.weekday))
        _block_interval(self.start_time, self.end_time)

    @property
    def interval(self) -> Interval:
        return _block_interval(self.start_time, self.end_time)


@dataclass(frozen=True)
class AvailabilityException:
    date: date
    start_time: time
    end_time: time
    is_available: bool = False
    note: str | None = None
    id: int | None = None

    def __post_init__(self) -> None:
        _block_interval(self.start_time, self.end_time)

    @property
    def interval(self) -> Interval:
        return _block_interval(self.start_time, self.end_time)


def week_start(value: date) -> date:
    """Monday of the week containing ``value``."""
    return value - timedelta(days=value.weekday())


def week_dates(value: date) -> list[date]:
    start = week_start(value)
    return [start + timedelta(days=offset) for offset in range(7)]


def week_range(value: date) -> tuple[date, date]:
    """``[monday, next monday)`` for the week containing ``value``."""
    start = week_start(value)
    return start, start + timedelta(days=7)


@dataclass
class AvailabilityStore:
    provider_id: int | None
    clinic_id: int | None
    rules: list[WeeklyAvailabilityRule] = field(default_factory=list)
    exceptions: list[AvailabilityException] = field(default_factory=list)

    def rules_for(self, weekday: Weekday) -> list[WeeklyAvailabilityRule]:
        return [rule for rule in self.rules if rule.weekday == weekday]

    def exceptions_on(self, day: date) -> list[AvailabilityException]:
        return [exception for exception in self.exceptions if exception.date == day]

    def exceptions_between(self, start: date, end: date) -> list[AvailabilityException]:
        return [exception for exception in self.exceptions if start <= exception.date < end]

    def regular_intervals(self, day: date) -> list[Interval]:
        return interval_sets.normalize(rule.interval for rule in self.rules_for(Weekday.from_date(day)))

    def is_regularly_available(self, day: date, at: time) -> bool:
        minute = to_minutes(at)
        return interval_sets.covers(self.regular_intervals(day), minute)

    def override_at(self, day: date, at: time) -> AvailabilityException | None:
        """The exception deciding ``at`` on ``day``; available overrides win ties."""
        minute = to_minutes(at)
        covering = [exception for exception in self.exceptions_on(day) if exception.interval.contains(minute)]
        if not covering:
            return None
        granted = [exception for exception in covering if exception.is_available]
        return granted[0] if granted else covering[0]

    def effective_availability(self, day: date, at: time) -> bool:
        override = self.override_at(day, at)
        if override is not None:
            return override.is_available
        return self.is_regularly_available(day, at)

    def open_intervals(self, day: date) -> list[Interval]:
        """Recurring union, minus unavailable exceptions, plus available exceptions."""
        exceptions = self.exceptions_on(day)
        removed = [exception.interval for exception in exceptions if not exception.is_available]
        granted = [exception.interval for exception in exceptions if exception.is_available]

        open_set = interval_sets.subtract(self.regular_intervals(day), removed)
        return interval_sets.union(open_set, granted)

    def replace_rules(self, rules: Iterable[WeeklyAvailabilityRule]) -> None:
        self.rules = list(rules)

    def replace_week_exceptions(self, anchor: date, exceptions: Iterable[AvailabilityException]) -> None:
        """Swap the exceptions of ``anchor``'s week, leaving other weeks alone."""
        start, end = week_range(anchor)
        incoming = list(exceptions)
        for exception in incoming:
            if not start <= exception.date < end:
                raise ValidationError(f'Exception on {exception.date} is outside the week of {start}.')

        kept = [exception for exception in self.exceptions if not start <= exception.date < end]
        self.exceptions = kept + incoming
