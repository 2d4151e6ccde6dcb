"""Half-open minute intervals and the set algebra used to build open and free sets."""

from dataclasses import dataclass
from datetime import time
from typing import Iterable

from clinic_scheduler.core.errors import ValidationError
from clinic_scheduler.scheduling.time_grid import MINUTES_PER_DAY, format_minutes, to_minutes, to_time_of_day


@dataclass(frozen=True, order=True)
class Interval:
    """``[start, end)`` in minutes since clinic-local midnight."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if not 0 <= self.start < self.end <= MINUTES_PER_DAY:
            raise ValidationError(f'Invalid interval [{self.start}, {self.end}).')

    @classmethod
    def from_times(cls, start: time | str, end: time | str) -> 'Interval':
        return cls(to_minutes(start), to_minutes(end, is_end=True))

    @property
    def start_time(self) -> time:
        return to_time_of_day(self.start)

    @property
    def end_time(self) -> time:
        return to_time_of_day(self.end)

    @property
    def duration(self) -> int:
        return self.end - self.start

    def contains(self, minute: int) -> bool:
        return self.start <= minute < self.end

    def overlaps(self, other: 'Interval') -> bool:
        return self.start < other.end and other.start < self.end

    def __str__(self) -> str:
        return f'{format_minutes(self.start)}-{format_minutes(self.end)}'


def normalize(intervals: Iterable[Interval]) -> list[Interval]:
    """Sort and merge overlapping or touching intervals."""
    merged: list[Interval] = []
    for interval in sorted(intervals):
        if merged and interval.start <= merged[-1].end:
            if interval.end > merged[-1].end:
                merged[-1] = Interval(merged[-1].start, interval.end)
        else:
            merged.append(interval)
    return merged


def union(left: Iterable[Interval], right: Iterable[Interval]) -> list[Interval]:
    return normalize([*left, *right])


def subtract(base: Iterable[Interval], removed: Iterable[Interval]) -> list[Interval]:
    cuts = normalize(removed)
    result: list[Interval] = []

    for interval in normalize(base):
        cursor = interval.start
        for cut in cuts:
            if cut.end <= cursor or cut.start >= interval.end:
                continue
            if cut.start > cursor:
                result.append(Interval(cursor, cut.start))
            cursor = max(cursor, cut.end)
            if cursor >= interval.end:
                break
        if cursor < interval.end:
            result.append(Interval(cursor, interval.end))

    return result


def covers(intervals: Iterable[Interval], minute: int) -> bool:
    return any(interval.contains(minute) for interval in intervals)


def covers_interval(intervals: Iterable[Interval], target: Interval) -> bool:
    return any(interval.start <= target.start and target.end <= interval.end for interval in normalize(intervals))
