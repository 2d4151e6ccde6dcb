"""Fixed-resolution week grid used by the schedule editors.

A grid has 96 rows (one per 15-minute slot of the day) and 7 columns. Column
meaning is decided by the caller: weekdays for the recurring schedule editor,
concrete dates for the exception editor.
"""

from datetime import date, time
from enum import Enum
from typing import Iterable, Sequence

from clinic_scheduler.core.errors import ValidationError

SLOT_MINUTES = 15
MINUTES_PER_DAY = 24 * 60
SLOTS_PER_DAY = MINUTES_PER_DAY // SLOT_MINUTES
DAYS_PER_WEEK = 7

# time() cannot express 24:00, so blocks running to midnight are stored with this end.
END_OF_DAY = time(23, 59, 59)


class CellState(str, Enum):
    NONE = 'none'
    AVAILABLE = 'available'
    UNAVAILABLE = 'unavailable'


def _raw_minutes(value: time | str, *, is_end: bool = False) -> int:
    if isinstance(value, str):
        value = parse_time_of_day(value, is_end=is_end)

    if not isinstance(value, time):
        raise ValidationError(f'Expected a time of day, got {value!r}.')

    if is_end and value >= time(23, 59):
        return MINUTES_PER_DAY

    return value.hour * 60 + value.minute


def parse_time_of_day(value: str, *, is_end: bool = False) -> time:
    """Parse ``HH:MM`` or ``HH:MM:SS``. ``24:00`` is accepted as an end boundary."""
    parts = value.strip().split(':')
    if len(parts) not in (2, 3) or not all(part.isdigit() for part in parts):
        raise ValidationError(f'Malformed time string: {value!r}.')

    hours, minutes = int(parts[0]), int(parts[1])
    seconds = int(parts[2]) if len(parts) == 3 else 0

    if is_end and hours == 24 and minutes == 0 and seconds == 0:
        return END_OF_DAY

    if not (0 <= hours < 24 and 0 <= minutes < 60 and 0 <= seconds < 60):
        raise ValidationError(f'Time out of range: {value!r}.')

    return time(hours, minutes, seconds)


def to_minutes(value: time | str, *, is_end: bool = False) -> int:
    """Minutes since midnight, floored to the 15-minute grid.

    With ``is_end`` set, the end-of-day sentinel maps to 1440 so the final cell
    of the day is covered.
    """
    minutes = _raw_minutes(value, is_end=is_end)
    return minutes - minutes % SLOT_MINUTES


def to_time_of_day(minutes: int) -> time:
    if not 0 <= minutes <= MINUTES_PER_DAY:
        raise ValidationError(f'Minute offset out of range: {minutes}.')

    minutes -= minutes % SLOT_MINUTES
    if minutes == MINUTES_PER_DAY:
        return END_OF_DAY

    return time(minutes // 60, minutes % 60)


def format_minutes(minutes: int) -> str:
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def row_to_minutes(row: int) -> int:
    return row * SLOT_MINUTES


class TimeGrid:
    """7 columns x 96 rows of CellState values."""

    def __init__(self, columns: Sequence[Sequence[CellState]] | None = None):
        if columns is None:
            self._columns = [empty_column() for _ in range(DAYS_PER_WEEK)]
            return

        if len(columns) != DAYS_PER_WEEK or any(len(column) != SLOTS_PER_DAY for column in columns):
            raise ValidationError('A time grid needs 7 columns of 96 cells.')

        self._columns = [list(column) for column in columns]

    def get(self, row: int, col: int) -> CellState:
        return self._columns[col][row]

    def set(self, row: int, col: int, state: CellState) -> None:
        self._columns[col][row] = state

    def column(self, col: int) -> list[CellState]:
        return list(self._columns[col])

    def set_column(self, col: int, cells: Sequence[CellState]) -> None:
        if len(cells) != SLOTS_PER_DAY:
            raise ValidationError('A grid column needs 96 cells.')
        self._columns[col] = list(cells)

    def copy(self) -> 'TimeGrid':
        return TimeGrid(self._columns)

    def count(self, state: CellState) -> int:
        return sum(column.count(state) for column in self._columns)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TimeGrid):
            return NotImplemented
        return self._columns == other._columns

    def __repr__(self) -> str:
        return f'<TimeGrid available={self.count(CellState.AVAILABLE)} unavailable={self.count(CellState.UNAVAILABLE)}>'


def empty_column() -> list[CellState]:
    return [CellState.NONE] * SLOTS_PER_DAY


def _mark_overlapping(column: list[CellState], start: time, end: time, state: CellState) -> None:
    start_minutes = _raw_minutes(start)
    end_minutes = _raw_minutes(end, is_end=True)
    start_row = start_minutes // SLOT_MINUTES
    end_row = min(SLOTS_PER_DAY, -(-end_minutes // SLOT_MINUTES))

    for row in range(max(0, start_row), end_row):
        column[row] = state


def project(blocks: Iterable, key: date | object) -> list[CellState]:
    """Project rules or exceptions onto one grid column.

    ``key`` is a date (matched against ``block.date``) or a weekday (matched
    against ``block.weekday``). Rules mark cells available. Exceptions mark
    cells by their ``is_available`` flag, with unavailable blocks drawn last so
    they win over available ones.
    """
    column = empty_column()
    available, unavailable = [], []

    for block in blocks:
        if isinstance(key, date):
            if getattr(block, 'date', None) != key:
                continue
        elif getattr(block, 'weekday', None) != key:
            continue

        if getattr(block, 'is_available', True):
            available.append(block)
        else:
            unavailable.append(block)

    for block in available:
        _mark_overlapping(column, block.start_time, block.end_time, CellState.AVAILABLE)
    for block in unavailable:
        _mark_overlapping(column, block.start_time, block.end_time, CellState.UNAVAILABLE)

    return column
