"""Conversion between grid columns and minimal interval lists."""

from typing import Iterable, Sequence

from clinic_scheduler.scheduling.intervals import Interval
from clinic_scheduler.scheduling.time_grid import (
    SLOT_MINUTES,
    SLOTS_PER_DAY,
    CellState,
    empty_column,
    to_minutes,
)


def grid_to_intervals(column: Sequence[CellState], state: CellState = CellState.AVAILABLE) -> list[Interval]:
    """Scan a column top to bottom and emit one interval per run of ``state`` cells.

    Adjacent matching cells always end up in the same interval, so the result is
    the canonical form the backend stores.
    """
    intervals: list[Interval] = []
    current_start = -1

    for row in range(len(column) + 1):
        matches = row < len(column) and column[row] == state

        if matches and current_start == -1:
            current_start = row * SLOT_MINUTES
        elif not matches and current_start != -1:
            end = row * SLOT_MINUTES
            if current_start < end:
                intervals.append(Interval(current_start, end))
            current_start = -1

    return intervals


def intervals_to_grid(
    intervals: Iterable[Interval],
    column: Sequence[CellState] | None = None,
    state: CellState = CellState.AVAILABLE,
) -> list[CellState]:
    """Mark every cell in ``[floor(start/15), floor(end/15))`` with ``state``.

    Returns a new column; the one passed in is left untouched.
    """
    cells = list(column) if column is not None else empty_column()

    for interval in intervals:
        start_row = interval.start // SLOT_MINUTES
        end_row = min(SLOTS_PER_DAY, interval.end // SLOT_MINUTES)
        for row in range(start_row, end_row):
            cells[row] = state

    return cells


def quantize(start, end) -> Interval | None:
    """Build an interval from raw times, or ``None`` when it collapses to zero length."""
    start_minutes = to_minutes(start)
    end_minutes = to_minutes(end, is_end=True)
    if start_minutes < end_minutes:
        return Interval(start_minutes, end_minutes)
    return None
