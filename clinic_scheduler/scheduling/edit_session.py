"""Paint-and-save editing of a week of availability.

A session owns a pending TimeGrid built from the last fetched snapshot. Paint
gestures mutate the pending grid; ``commit`` encodes each touched column, diffs
it against the persisted blocks and pushes deletes, then creates, through a
gateway. The backend has no multi-row transaction, so a failure part way
through is reported as a PartialCommitError and the session refuses further
edits until it is reloaded.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Hashable, Iterable, Protocol, Sequence

from clinic_scheduler.core.errors import (
    CommitError,
    PartialCommitError,
    PastDateEditRejected,
    SchedulingError,
    StaleScheduleError,
    ValidationError,
)
from clinic_scheduler.scheduling.availability_store import (
    AvailabilityException,
    WeeklyAvailabilityRule,
    WEEKDAYS,
    week_dates,
)
from clinic_scheduler.scheduling.interval_codec import grid_to_intervals, intervals_to_grid
from clinic_scheduler.scheduling.intervals import Interval
from clinic_scheduler.scheduling.time_grid import DAYS_PER_WEEK, SLOTS_PER_DAY, CellState, TimeGrid

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = 'idle'
    PAINTING = 'painting'


@dataclass(frozen=True)
class BlockKey:
    """Identity of a block for diffing: column, state and interval."""

    column: Hashable
    state: CellState
    interval: Interval


@dataclass(frozen=True)
class PersistedBlock:
    id: int
    key: BlockKey


@dataclass
class CommitPlan:
    deletes: list[PersistedBlock] = field(default_factory=list)
    creates: list[BlockKey] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.deletes and not self.creates

    @property
    def size(self) -> int:
        return len(self.deletes) + len(self.creates)


@dataclass
class CommitResult:
    deleted: list[PersistedBlock]
    created: list[PersistedBlock]


class BlockGateway(Protocol):
    """Per-row backend writes. Failures must surface as SchedulingError."""

    def delete(self, block: PersistedBlock) -> None: ...

    def create(self, key: BlockKey) -> PersistedBlock: ...


def plan_commit(persisted: Iterable[PersistedBlock], pending: Iterable[BlockKey]) -> CommitPlan:
    """Minimal deletes and creates turning ``persisted`` into ``pending``.

    Persisted blocks with the same key as a pending block are kept. Duplicate
    persisted rows beyond the first are deleted.
    """
    wanted = list(dict.fromkeys(pending))
    wanted_set = set(wanted)

    plan = CommitPlan()
    kept: set[BlockKey] = set()
    for block in persisted:
        if block.key in wanted_set and block.key not in kept:
            kept.add(block.key)
        else:
            plan.deletes.append(block)

    plan.creates = [key for key in wanted if key not in kept]
    return plan


def apply_commit_plan(plan: CommitPlan, gateway: BlockGateway) -> CommitResult:
    """Run every delete, then every create, stopping at the first failure."""
    deleted: list[PersistedBlock] = []
    created: list[PersistedBlock] = []

    try:
        for block in plan.deletes:
            gateway.delete(block)
            deleted.append(block)
        for key in plan.creates:
            created.append(gateway.create(key))
    except SchedulingError as exc:
        done = len(deleted) + len(created)
        if done == 0:
            raise CommitError(f'Saving the schedule failed before any change was made: {exc}') from exc

        logger.warning(
            'Schedule commit stopped after %s of %s operations (%s deleted, %s created)',
            done,
            plan.size,
            len(deleted),
            len(created),
        )
        raise PartialCommitError(
            f'Schedule partially saved: {done} of {plan.size} operations succeeded.',
            deleted=deleted,
            created=created,
            pending=plan.size - done,
        ) from exc

    return CommitResult(deleted=deleted, created=created)


class ScheduleEditSession:
    """Idle -> Painting -> Idle state machine over a pending week grid.

    ``columns`` names what each grid column means (weekdays or dates).
    ``paint_state`` is the value a gesture toggles cells to; ``committed_states``
    are the cell states that get encoded and persisted.
    """

    def __init__(
        self,
        columns: Sequence[Hashable],
        persisted: Iterable[PersistedBlock] = (),
        *,
        paint_state: CellState = CellState.AVAILABLE,
        committed_states: Sequence[CellState] = (CellState.AVAILABLE,),
        today: date | None = None,
    ):
        if len(columns) != DAYS_PER_WEEK:
            raise ValidationError('An edit session needs exactly 7 columns.')

        self.columns = list(columns)
        self.paint_state = paint_state
        self.committed_states = tuple(committed_states)
        self.today = today
        self.state = SessionState.IDLE
        self.requires_refresh = False
        self._target = CellState.NONE
        self.load(persisted)

    @classmethod
    def for_weekly_rules(cls, rules: Iterable[WeeklyAvailabilityRule]) -> 'ScheduleEditSession':
        blocks = [
            PersistedBlock(id=rule.id, key=BlockKey(rule.weekday, CellState.AVAILABLE, rule.interval))
            for rule in rules
            if rule.id is not None
        ]
        return cls(WEEKDAYS, blocks)

    @classmethod
    def for_week_exceptions(
        cls,
        exceptions: Iterable[AvailabilityException],
        anchor: date,
        today: date,
    ) -> 'ScheduleEditSession':
        dates = week_dates(anchor)
        blocks = [
            PersistedBlock(
                id=exception.id,
                key=BlockKey(
                    exception.date,
                    CellState.AVAILABLE if exception.is_available else CellState.UNAVAILABLE,
                    exception.interval,
                ),
            )
            for exception in exceptions
            if exception.id is not None and exception.date in dates
        ]
        return cls(
            dates,
            blocks,
            paint_state=CellState.UNAVAILABLE,
            committed_states=(CellState.AVAILABLE, CellState.UNAVAILABLE),
            today=today,
        )

    def load(self, persisted: Iterable[PersistedBlock]) -> None:
        """Rebuild the pending grid from freshly fetched blocks and clear any stale flag."""
        self.persisted = [block for block in persisted if block.key.column in self.columns]
        self.grid = self._grid_from(self.persisted)
        self.state = SessionState.IDLE
        self.requires_refresh = False
        self._touched: set[int] = set()

    def _grid_from(self, blocks: Sequence[PersistedBlock]) -> TimeGrid:
        grid = TimeGrid()
        for col, column_key in enumerate(self.columns):
            column = grid.column(col)
            # Unavailable is drawn last so it wins where blocks overlap.
            for state in (CellState.AVAILABLE, CellState.UNAVAILABLE):
                intervals = [
                    block.key.interval
                    for block in blocks
                    if block.key.column == column_key and block.key.state == state
                ]
                column = intervals_to_grid(intervals, column, state)
            grid.set_column(col, column)
        return grid

    def discard(self) -> None:
        self.grid = self._grid_from(self.persisted)
        self.state = SessionState.IDLE
        self._touched = set()

    def is_editable(self, col: int) -> bool:
        column_key = self.columns[col]
        if isinstance(column_key, date) and self.today is not None:
            return column_key >= self.today
        return True

    def _check_cell(self, row: int, col: int) -> None:
        if self.requires_refresh:
            raise StaleScheduleError('Reload the schedule before editing it again.')
        if not (0 <= row < SLOTS_PER_DAY and 0 <= col < DAYS_PER_WEEK):
            raise ValidationError(f'Cell ({row}, {col}) is outside the grid.')
        if not self.is_editable(col):
            raise PastDateEditRejected(f'{self.columns[col]} is in the past.')

    def begin_paint(self, row: int, col: int) -> bool:
        try:
            self._check_cell(row, col)
        except PastDateEditRejected:
            logger.debug('Ignoring paint on past column %s', self.columns[col])
            return False

        current = self.grid.get(row, col)
        self._target = CellState.NONE if current == self.paint_state else self.paint_state
        self.grid.set(row, col, self._target)
        self._touched.add(col)
        self.state = SessionState.PAINTING
        return True

    def continue_paint(self, row: int, col: int) -> bool:
        if self.state != SessionState.PAINTING:
            return False

        try:
            self._check_cell(row, col)
        except PastDateEditRejected:
            return False

        self.grid.set(row, col, self._target)
        self._touched.add(col)
        return True

    def end_paint(self) -> None:
        self.state = SessionState.IDLE

    def pending_blocks(self) -> list[BlockKey]:
        blocks: list[BlockKey] = []
        for col, column_key in enumerate(self.columns):
            column = self.grid.column(col)
            for state in self.committed_states:
                blocks.extend(BlockKey(column_key, state, interval) for interval in grid_to_intervals(column, state))
        return blocks

    def plan(self) -> CommitPlan:
        """Diff only the columns a gesture touched; untouched columns keep their rows as stored."""
        touched = {self.columns[col] for col in self._touched}
        return plan_commit(
            [block for block in self.persisted if block.key.column in touched],
            [key for key in self.pending_blocks() if key.column in touched],
        )

    def commit(self, gateway: BlockGateway) -> CommitResult:
        if self.requires_refresh:
            raise StaleScheduleError('Reload the schedule before saving it again.')

        self.end_paint()
        plan = self.plan()
        if plan.is_empty:
            return CommitResult(deleted=[], created=[])

        try:
            result = apply_commit_plan(plan, gateway)
        except PartialCommitError:
            self.requires_refresh = True
            raise

        removed_ids = {block.id for block in result.deleted}
        self.persisted = [block for block in self.persisted if block.id not in removed_ids] + result.created
        self._touched = set()
        logger.info('Schedule saved: %s deleted, %s created', len(result.deleted), len(result.created))
        return result
