from datetime import date, datetime, time

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.models.availability import AvailabilityExceptionRecord, WeeklyAvailability
from clinic_scheduler.routes.availability_routes import (
    CreateExceptionRequest,
    CreateWeeklyRuleRequest,
    create_exception,
    create_weekly_rule,
    delete_exception,
    delete_weekly_rule,
    list_display_slots,
    list_exceptions,
    list_free_windows,
    list_weekly_rules,
)
from clinic_scheduler.scheduling.time_grid import END_OF_DAY

MONDAY = date(2026, 10, 19)


@pytest.fixture
def fixed_today(monkeypatch: pytest.MonkeyPatch) -> date:
    today = date(2026, 10, 12)
    monkeypatch.setattr('clinic_scheduler.routes.availability_routes.clinic_today', lambda _timezone: today)
    return today


def test_weekly_rule_request_normalizes_weekday() -> None:
    request = CreateWeeklyRuleRequest(
        provider_id=1,
        clinic_id=2,
        weekday=' monday ',
        start_time=time(9, 0),
        end_time=time(17, 0),
    )

    assert request.weekday == 'Monday'


def test_weekly_rule_request_accepts_end_of_day() -> None:
    request = CreateWeeklyRuleRequest(
        provider_id=1,
        clinic_id=2,
        weekday='Friday',
        start_time=time(22, 0),
        end_time=END_OF_DAY,
    )

    assert request.end_time == END_OF_DAY


@pytest.mark.parametrize(
    ('weekday', 'start_time', 'end_time'),
    [
        ('Funday', time(9, 0), time(10, 0)),
        ('Monday', time(9, 10), time(10, 0)),
        ('Monday', time(10, 0), time(10, 0)),
        ('Monday', time(11, 0), time(10, 0)),
    ],
)
def test_weekly_rule_request_rejects_invalid_blocks(weekday: str, start_time: time, end_time: time) -> None:
    with pytest.raises(ValidationError):
        CreateWeeklyRuleRequest(provider_id=1, clinic_id=2, weekday=weekday, start_time=start_time, end_time=end_time)


def test_exception_request_normalizes_blank_note() -> None:
    request = CreateExceptionRequest(
        provider_id=1,
        clinic_id=2,
        date=MONDAY,
        start_time=time(12, 0),
        end_time=time(13, 0),
        note='   ',
    )

    assert request.note is None
    assert request.is_available is False


def test_exception_request_rejects_long_note() -> None:
    with pytest.raises(ValidationError):
        CreateExceptionRequest(
            provider_id=1,
            clinic_id=2,
            date=MONDAY,
            start_time=time(12, 0),
            end_time=time(13, 0),
            note='x' * 601,
        )


def test_create_and_list_weekly_rules(scheduling_db) -> None:
    create_weekly_rule(
        CreateWeeklyRuleRequest(provider_id=1, clinic_id=2, weekday='Monday', start_time=time(9, 0), end_time=time(12, 0)),
        db=scheduling_db,
    )
    create_weekly_rule(
        CreateWeeklyRuleRequest(provider_id=9, clinic_id=2, weekday='Monday', start_time=time(9, 0), end_time=time(12, 0)),
        db=scheduling_db,
    )

    rules = list_weekly_rules(provider_id=1, clinic_id=2, db=scheduling_db)

    assert len(rules) == 1
    assert rules[0].weekday == 'Monday'
    assert rules[0].start_time == time(9, 0)


def test_delete_weekly_rule_checks_owner(scheduling_db) -> None:
    rule = create_weekly_rule(
        CreateWeeklyRuleRequest(provider_id=1, clinic_id=2, weekday='Tuesday', start_time=time(9, 0), end_time=time(12, 0)),
        db=scheduling_db,
    )

    with pytest.raises(HTTPException) as exception_info:
        delete_weekly_rule(rule_id=rule.id, provider_id=5, clinic_id=2, db=scheduling_db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Availability rule not found.'

    delete_weekly_rule(rule_id=rule.id, provider_id=1, clinic_id=2, db=scheduling_db)
    assert scheduling_db.query(WeeklyAvailability).count() == 0


def test_list_exceptions_filters_by_date_range(scheduling_db) -> None:
    for day in (date(2026, 10, 18), MONDAY, date(2026, 10, 25), date(2026, 10, 26)):
        create_exception(
            CreateExceptionRequest(provider_id=1, clinic_id=2, date=day, start_time=time(9, 0), end_time=time(10, 0)),
            db=scheduling_db,
        )

    exceptions = list_exceptions(
        provider_id=1,
        clinic_id=2,
        start_date=MONDAY,
        end_date=date(2026, 10, 26),
        db=scheduling_db,
    )

    assert [exception.date for exception in exceptions] == [MONDAY, date(2026, 10, 25)]


def test_list_exceptions_rejects_inverted_range() -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_exceptions(provider_id=1, clinic_id=2, start_date=MONDAY, end_date=MONDAY, db=None)

    assert exception_info.value.status_code == 400


def test_delete_exception_returns_not_found_when_missing(scheduling_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        delete_exception(exception_id=999, provider_id=1, clinic_id=2, db=scheduling_db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Availability exception not found.'


def _seed_monday_schedule(db) -> None:
    db.add(WeeklyAvailability(provider_id=1, clinic_id=2, weekday='Monday', start_time=time(9, 0), end_time=time(17, 0)))
    db.add(
        AvailabilityExceptionRecord(
            provider_id=1,
            clinic_id=2,
            date=MONDAY,
            start_time=time(12, 0),
            end_time=time(13, 0),
            is_available=False,
            note='Staff meeting',
        )
    )
    db.add(
        Appointment(
            provider_id=1,
            clinic_id=2,
            start_time=datetime(2026, 10, 19, 10, 0),
            end_time=datetime(2026, 10, 19, 11, 0),
            status='booked',
        )
    )
    db.add(
        Appointment(
            provider_id=8,
            clinic_id=2,
            start_time=datetime(2026, 10, 19, 14, 0),
            end_time=datetime(2026, 10, 19, 15, 0),
            status='booked',
        )
    )
    db.commit()


def test_list_display_slots_applies_exceptions_and_bookings(scheduling_db, fixed_today: date) -> None:
    _seed_monday_schedule(scheduling_db)

    slots = list_display_slots(provider_id=1, clinic_id=2, slot_date=MONDAY, db=scheduling_db)

    assert [(slot.display_start_time, slot.display_end_time) for slot in slots] == [
        ('09:00', '10:00'),
        ('11:00', '12:00'),
        ('13:00', '14:00'),
        ('14:00', '15:00'),
        ('15:00', '16:00'),
        ('16:00', '17:00'),
    ]
    assert slots[0].key == '1-09:00'


def test_list_free_windows_returns_free_set(scheduling_db, fixed_today: date) -> None:
    _seed_monday_schedule(scheduling_db)

    windows = list_free_windows(provider_id=1, clinic_id=2, slot_date=MONDAY, db=scheduling_db)

    assert [(window.start_time, window.end_time) for window in windows] == [
        (time(9, 0), time(10, 0)),
        (time(11, 0), time(12, 0)),
        (time(13, 0), time(17, 0)),
    ]


def test_list_display_slots_returns_nothing_for_past_dates(scheduling_db, fixed_today: date) -> None:
    _seed_monday_schedule(scheduling_db)

    assert list_display_slots(provider_id=1, clinic_id=2, slot_date=date(2026, 10, 5), db=scheduling_db) == []
