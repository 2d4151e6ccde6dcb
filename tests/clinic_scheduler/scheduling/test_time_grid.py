from datetime import date, time

import pytest

from clinic_scheduler.core.errors import ValidationError
from clinic_scheduler.scheduling.availability_store import AvailabilityException, Weekday, WeeklyAvailabilityRule
from clinic_scheduler.scheduling.time_grid import (
    END_OF_DAY,
    SLOTS_PER_DAY,
    CellState,
    TimeGrid,
    parse_time_of_day,
    project,
    to_minutes,
    to_time_of_day,
)


def test_to_minutes_floors_to_quarter_hour() -> None:
    assert to_minutes(time(9, 0)) == 540
    assert to_minutes(time(9, 7)) == 540
    assert to_minutes('09:59:30') == 585


def test_to_minutes_maps_end_of_day_sentinel_to_midnight_only_for_ends() -> None:
    assert to_minutes(END_OF_DAY, is_end=True) == 1440
    assert to_minutes(END_OF_DAY) == 1425
    assert to_minutes('24:00', is_end=True) == 1440


@pytest.mark.parametrize('raw', ['9am', '25:00', '12', '10:61', '24:00'])
def test_parse_time_of_day_rejects_malformed_strings(raw: str) -> None:
    with pytest.raises(ValidationError):
        parse_time_of_day(raw)


def test_to_time_of_day_returns_sentinel_for_midnight() -> None:
    assert to_time_of_day(0) == time(0, 0)
    assert to_time_of_day(13 * 60 + 20) == time(13, 15)
    assert to_time_of_day(1440) == END_OF_DAY

    with pytest.raises(ValidationError):
        to_time_of_day(1441)


def test_time_grid_rejects_wrong_shape() -> None:
    with pytest.raises(ValidationError):
        TimeGrid([[CellState.NONE] * SLOTS_PER_DAY] * 6)


def test_time_grid_copy_is_independent() -> None:
    grid = TimeGrid()
    copy = grid.copy()
    copy.set(10, 2, CellState.AVAILABLE)

    assert grid.get(10, 2) == CellState.NONE
    assert grid != copy


def test_project_rules_marks_only_matching_weekday() -> None:
    rules = [
        WeeklyAvailabilityRule(Weekday.MONDAY, time(9, 0), time(10, 0)),
        WeeklyAvailabilityRule(Weekday.TUESDAY, time(14, 0), time(15, 0)),
    ]

    column = project(rules, Weekday.MONDAY)

    assert [row for row, cell in enumerate(column) if cell == CellState.AVAILABLE] == [36, 37, 38, 39]


def test_project_marks_partially_covered_cells() -> None:
    rules = [WeeklyAvailabilityRule(Weekday.MONDAY, time(9, 10), time(9, 20))]

    column = project(rules, Weekday.MONDAY)

    assert column[36] == CellState.AVAILABLE
    assert column[37] == CellState.AVAILABLE
    assert column[38] == CellState.NONE


def test_project_block_ending_at_midnight_fills_last_cell_only() -> None:
    rules = [WeeklyAvailabilityRule(Weekday.FRIDAY, time(23, 0), END_OF_DAY)]

    column = project(rules, Weekday.FRIDAY)

    assert column[91] == CellState.NONE
    assert column[92:] == [CellState.AVAILABLE] * 4


def test_project_exceptions_draws_unavailable_over_available() -> None:
    day = date(2026, 10, 19)
    exceptions = [
        AvailabilityException(day, time(9, 0), time(11, 0), is_available=True),
        AvailabilityException(day, time(10, 0), time(10, 30), is_available=False),
        AvailabilityException(date(2026, 10, 20), time(9, 0), time(10, 0), is_available=False),
    ]

    column = project(exceptions, day)

    assert column[36:40] == [CellState.AVAILABLE] * 4
    assert column[40:42] == [CellState.UNAVAILABLE] * 2
    assert column[42:44] == [CellState.AVAILABLE] * 2
    assert column[44] == CellState.NONE
