from datetime import date, datetime, time, timezone

from clinic_scheduler.scheduling.availability_store import (
    AvailabilityException,
    AvailabilityStore,
    Weekday,
    WeeklyAvailabilityRule,
)
from clinic_scheduler.scheduling.intervals import Interval
from clinic_scheduler.scheduling.slot_resolver import (
    Booking,
    FreeWindow,
    booking_interval,
    clinic_today,
    free_intervals,
    hourly_slots,
    resolve_slots,
)

MONDAY = date(2026, 10, 19)
SUNDAY = date(2026, 10, 25)
TODAY = date(2026, 10, 1)


def _monday_store(exceptions: list[AvailabilityException] | None = None) -> AvailabilityStore:
    return AvailabilityStore(
        provider_id=1,
        clinic_id=1,
        rules=[WeeklyAvailabilityRule(Weekday.MONDAY, time(9, 0), time(17, 0), id=1)],
        exceptions=exceptions or [],
    )


def _labels(slots) -> list[str]:
    return [f'{slot.display_start:%H:%M}-{slot.display_end:%H:%M}' for slot in slots]


def test_lunch_exception_and_booking_yield_expected_slots() -> None:
    store = _monday_store([AvailabilityException(MONDAY, time(12, 0), time(13, 0), is_available=False)])
    bookings = [Booking(start=datetime(2026, 10, 19, 10, 0), end=datetime(2026, 10, 19, 11, 0))]

    assert free_intervals(MONDAY, store, bookings) == [
        Interval(540, 600),
        Interval(660, 720),
        Interval(780, 1020),
    ]
    assert _labels(resolve_slots(MONDAY, store, bookings, today=TODAY)) == [
        '09:00-10:00',
        '11:00-12:00',
        '13:00-14:00',
        '14:00-15:00',
        '15:00-16:00',
        '16:00-17:00',
    ]


def test_past_dates_never_resolve_to_slots() -> None:
    store = _monday_store()

    assert resolve_slots(MONDAY, store, today=date(2026, 10, 20)) == []
    assert len(resolve_slots(MONDAY, store, today=MONDAY)) == 8


def test_missing_provider_or_date_returns_no_slots() -> None:
    assert resolve_slots(None, _monday_store(), today=TODAY) == []
    assert resolve_slots(MONDAY, None, today=TODAY) == []
    assert resolve_slots(MONDAY, AvailabilityStore(provider_id=None, clinic_id=1), today=TODAY) == []


def test_available_exception_on_day_without_rule_is_bookable() -> None:
    store = _monday_store([AvailabilityException(SUNDAY, time(10, 0), time(12, 0), is_available=True)])

    assert _labels(resolve_slots(SUNDAY, store, today=TODAY)) == ['10:00-11:00', '11:00-12:00']


def test_slots_never_overlap_bookings() -> None:
    store = _monday_store()
    bookings = [
        Booking(start=datetime(2026, 10, 19, 9, 30), end=datetime(2026, 10, 19, 10, 15)),
        Booking(start=datetime(2026, 10, 19, 14, 45), end=datetime(2026, 10, 19, 15, 0)),
    ]
    booked = [booking_interval(booking, MONDAY) for booking in bookings]

    slots = resolve_slots(MONDAY, store, bookings, today=TODAY)

    assert slots
    for slot in slots:
        slot_interval = Interval(slot.start_minutes, slot.end_minutes)
        assert not any(slot_interval.overlaps(interval) for interval in booked)


def test_slots_are_whole_hours_on_hour_boundaries() -> None:
    windows = [
        FreeWindow(id=1, interval=Interval(570, 720)),
        FreeWindow(id=2, interval=Interval(780, 870)),
        FreeWindow(id=3, interval=Interval(900, 930)),
    ]

    slots = hourly_slots(windows)

    assert _labels(slots) == ['10:00-11:00', '11:00-12:00', '13:00-14:00']
    assert [slot.provider_block_id for slot in slots] == [1, 1, 2]
    for slot in slots:
        assert slot.end_minutes - slot.start_minutes == 60
        assert slot.start_minutes % 60 == 0


def test_display_slot_key_combines_block_and_start() -> None:
    slot = hourly_slots([FreeWindow(id=4, interval=Interval(540, 600))])[0]

    assert slot.key == '4-09:00'


def test_booking_spanning_midnight_is_clipped_to_the_day() -> None:
    booking = Booking(start=datetime(2026, 10, 18, 23, 0), end=datetime(2026, 10, 19, 1, 30))

    assert booking_interval(booking, MONDAY) == Interval(0, 90)
    assert booking_interval(booking, date(2026, 10, 18)) == Interval(1380, 1440)
    assert booking_interval(booking, date(2026, 10, 20)) is None


def test_clinic_today_uses_clinic_wall_clock() -> None:
    late_evening_utc = datetime(2026, 10, 19, 20, 0, tzinfo=timezone.utc)

    assert clinic_today('Asia/Kolkata', late_evening_utc) == date(2026, 10, 20)
    assert clinic_today('America/New_York', late_evening_utc) == MONDAY
