"""Bookable windows and hourly display slots for one provider on one date.

Everything here is pure: callers fetch rules, exceptions and bookings first and
own any retry policy for those fetches.
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Iterable
from zoneinfo import ZoneInfo

from clinic_scheduler.scheduling import intervals as interval_sets
from clinic_scheduler.scheduling.availability_store import AvailabilityStore
from clinic_scheduler.scheduling.intervals import Interval
from clinic_scheduler.scheduling.time_grid import MINUTES_PER_DAY, format_minutes, to_time_of_day

DISPLAY_SLOT_MINUTES = 60


@dataclass(frozen=True)
class Booking:
    """An existing appointment in clinic-local wall-clock time."""

    start: datetime
    end: datetime


@dataclass(frozen=True)
class FreeWindow:
    id: int
    interval: Interval


@dataclass(frozen=True)
class DisplaySlot:
    provider_block_id: int
    start_minutes: int
    end_minutes: int

    @property
    def display_start(self) -> time:
        return to_time_of_day(self.start_minutes)

    @property
    def display_end(self) -> time:
        return to_time_of_day(self.end_minutes)

    @property
    def key(self) -> str:
        return f'{self.provider_block_id}-{format_minutes(self.start_minutes)}'


def clinic_today(timezone: str, now: datetime | None = None) -> date:
    """Today's date on the clinic's wall clock."""
    zone = ZoneInfo(timezone)
    if now is None:
        return datetime.now(zone).date()
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(zone).date()


def booking_interval(booking: Booking, day: date) -> Interval | None:
    """Clip a booking to ``day``. Returns ``None`` if it does not touch the day."""
    day_start = datetime.combine(day, time.min)
    start = booking.start.replace(tzinfo=None)
    end = booking.end.replace(tzinfo=None)

    start_minutes = max(0, int((start - day_start).total_seconds() // 60))
    end_minutes = min(MINUTES_PER_DAY, -int(-(end - day_start).total_seconds() // 60))

    if start_minutes >= end_minutes:
        return None
    return Interval(start_minutes, end_minutes)


def free_intervals(day: date, store: AvailabilityStore, bookings: Iterable[Booking] = ()) -> list[Interval]:
    booked = [interval for interval in (booking_interval(booking, day) for booking in bookings) if interval]
    return interval_sets.subtract(store.open_intervals(day), booked)


def free_windows(
    day: date | None,
    store: AvailabilityStore | None,
    bookings: Iterable[Booking] = (),
    *,
    today: date,
) -> list[FreeWindow]:
    if day is None or store is None or store.provider_id is None:
        return []
    if day < today:
        return []

    return [
        FreeWindow(id=index, interval=interval)
        for index, interval in enumerate(free_intervals(day, store, bookings), start=1)
    ]


def hourly_slots(windows: Iterable[FreeWindow]) -> list[DisplaySlot]:
    """Cut each window into whole hours on hour boundaries.

    A window that starts mid-hour begins at the next full hour, and whatever is
    left after the last full hour is not offered.
    """
    slots: list[DisplaySlot] = []
    for window in windows:
        first_hour = -(-window.interval.start // DISPLAY_SLOT_MINUTES)
        last_hour = window.interval.end // DISPLAY_SLOT_MINUTES

        for hour in range(first_hour, last_hour):
            slots.append(
                DisplaySlot(
                    provider_block_id=window.id,
                    start_minutes=hour * DISPLAY_SLOT_MINUTES,
                    end_minutes=(hour + 1) * DISPLAY_SLOT_MINUTES,
                )
            )
    return slots


def resolve_slots(
    day: date | None,
    store: AvailabilityStore | None,
    bookings: Iterable[Booking] = (),
    *,
    today: date,
) -> list[DisplaySlot]:
    return hourly_slots(free_windows(day, store, bookings, today=today))
