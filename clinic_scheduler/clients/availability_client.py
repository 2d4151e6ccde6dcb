"""HTTP client for the scheduling API.

Reads raise FetchError on any transport or status failure. Writes go one row
at a time because the API has no multi-row endpoint; a single failed write
raises CommitError, and the replace helpers escalate to PartialCommitError
when some rows already changed.
"""

import logging
from datetime import date, datetime, time
from typing import Any, Iterable, Mapping

import httpx

from clinic_scheduler.core import config
from clinic_scheduler.core.errors import CommitError, FetchError
from clinic_scheduler.scheduling.availability_store import (
    AvailabilityException,
    AvailabilityStore,
    WeeklyAvailabilityRule,
    Weekday,
    week_range,
)
from clinic_scheduler.scheduling.edit_session import (
    BlockKey,
    CommitPlan,
    CommitResult,
    PersistedBlock,
    apply_commit_plan,
)
from clinic_scheduler.scheduling import intervals as interval_sets
from clinic_scheduler.scheduling.intervals import Interval
from clinic_scheduler.scheduling.slot_resolver import Booking
from clinic_scheduler.scheduling.time_grid import CellState

logger = logging.getLogger(__name__)


def _parse_rule(payload: Mapping[str, Any]) -> WeeklyAvailabilityRule:
    return WeeklyAvailabilityRule(
        weekday=Weekday(payload['weekday']),
        start_time=time.fromisoformat(payload['start_time']),
        end_time=time.fromisoformat(payload['end_time']),
        id=payload.get('id'),
    )


def _parse_exception(payload: Mapping[str, Any]) -> AvailabilityException:
    return AvailabilityException(
        date=date.fromisoformat(payload['date']),
        start_time=time.fromisoformat(payload['start_time']),
        end_time=time.fromisoformat(payload['end_time']),
        is_available=bool(payload.get('is_available', False)),
        note=payload.get('note'),
        id=payload.get('id'),
    )


class AvailabilityApiClient:
    def __init__(self, http: httpx.Client):
        self.http = http

    @classmethod
    def from_config(cls) -> 'AvailabilityApiClient':
        return cls(httpx.Client(base_url=config.SCHEDULER_API_URL, timeout=config.SCHEDULER_API_TIMEOUT_SECONDS))

    def _get(self, path: str, params: dict[str, Any]) -> Any:
        try:
            response = self.http.get(path, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            logger.warning('GET %s failed: %s', path, exc)
            raise FetchError(f'Could not load {path}: {exc}') from exc

    def _write(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self.http.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning('%s %s failed: %s', method, path, exc)
            raise CommitError(f'{method} {path} failed: {exc}') from exc

        if response.status_code == httpx.codes.NO_CONTENT:
            return None
        return response.json()

    def fetch_weekly_rules(self, provider_id: int, clinic_id: int) -> list[WeeklyAvailabilityRule]:
        payload = self._get('/availability/rules', {'provider_id': provider_id, 'clinic_id': clinic_id})
        return [_parse_rule(item) for item in payload]

    def fetch_exceptions(
        self,
        provider_id: int,
        clinic_id: int,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[AvailabilityException]:
        params: dict[str, Any] = {'provider_id': provider_id, 'clinic_id': clinic_id}
        if start_date is not None:
            params['start_date'] = start_date.isoformat()
        if end_date is not None:
            params['end_date'] = end_date.isoformat()

        payload = self._get('/availability/exceptions', params)
        return [_parse_exception(item) for item in payload]

    def fetch_booked_appointments(self, provider_id: int, clinic_id: int, day: date) -> list[Booking]:
        payload = self._get(
            '/appointments/booked',
            {'provider_id': provider_id, 'clinic_id': clinic_id, 'date': day.isoformat()},
        )
        return [
            Booking(start=datetime.fromisoformat(item['start']), end=datetime.fromisoformat(item['end']))
            for item in payload
        ]

    def load_store(self, provider_id: int, clinic_id: int) -> AvailabilityStore:
        return AvailabilityStore(
            provider_id=provider_id,
            clinic_id=clinic_id,
            rules=self.fetch_weekly_rules(provider_id, clinic_id),
            exceptions=self.fetch_exceptions(provider_id, clinic_id),
        )

    def create_rule(self, provider_id: int, clinic_id: int, weekday: Weekday, interval: Interval) -> WeeklyAvailabilityRule:
        payload = self._write(
            'POST',
            '/availability/rules',
            json={
                'provider_id': provider_id,
                'clinic_id': clinic_id,
                'weekday': Weekday(weekday).value,
                'start_time': interval.start_time.isoformat(),
                'end_time': interval.end_time.isoformat(),
            },
        )
        return _parse_rule(payload)

    def delete_rule(self, provider_id: int, clinic_id: int, rule_id: int) -> None:
        self._write(
            'DELETE',
            f'/availability/rules/{rule_id}',
            params={'provider_id': provider_id, 'clinic_id': clinic_id},
        )

    def create_exception(
        self,
        provider_id: int,
        clinic_id: int,
        day: date,
        interval: Interval,
        is_available: bool = False,
        note: str | None = None,
    ) -> AvailabilityException:
        payload = self._write(
            'POST',
            '/availability/exceptions',
            json={
                'provider_id': provider_id,
                'clinic_id': clinic_id,
                'date': day.isoformat(),
                'start_time': interval.start_time.isoformat(),
                'end_time': interval.end_time.isoformat(),
                'is_available': is_available,
                'note': note,
            },
        )
        return _parse_exception(payload)

    def delete_exception(self, provider_id: int, clinic_id: int, exception_id: int) -> None:
        self._write(
            'DELETE',
            f'/availability/exceptions/{exception_id}',
            params={'provider_id': provider_id, 'clinic_id': clinic_id},
        )

    def replace_weekly_rules(
        self,
        provider_id: int,
        clinic_id: int,
        intervals_by_weekday: Mapping[Weekday, Iterable[Interval]],
    ) -> CommitResult:
        """Delete every existing rule, then create one rule per merged interval."""
        gateway = WeeklyRulesGateway(self, provider_id, clinic_id)
        existing = self.fetch_weekly_rules(provider_id, clinic_id)
        plan = CommitPlan(
            deletes=[gateway.persisted(rule) for rule in existing if rule.id is not None],
            creates=[
                BlockKey(Weekday(weekday), CellState.AVAILABLE, interval)
                for weekday, intervals in intervals_by_weekday.items()
                for interval in interval_sets.normalize(intervals)
            ],
        )
        result = apply_commit_plan(plan, gateway)
        logger.info(
            'Replaced weekly schedule for provider %s at clinic %s: %s removed, %s added',
            provider_id,
            clinic_id,
            len(result.deleted),
            len(result.created),
        )
        return result

    def replace_exceptions(
        self,
        provider_id: int,
        clinic_id: int,
        anchor: date,
        exceptions: Iterable[AvailabilityException],
    ) -> CommitResult:
        """Replace the exceptions of ``anchor``'s Monday-start week only."""
        start, end = week_range(anchor)
        incoming = list(exceptions)
        outside = [exception.date for exception in incoming if not start <= exception.date < end]
        if outside:
            raise CommitError(f'Exceptions on {outside} fall outside the week of {start}.')

        grouped: dict[tuple[date, CellState], list[AvailabilityException]] = {}
        for exception in incoming:
            key = ExceptionsGateway.key_for(exception)
            grouped.setdefault((key.column, key.state), []).append(exception)

        notes = {}
        creates = []
        for (day, state), group in grouped.items():
            for interval in interval_sets.normalize(exception.interval for exception in group):
                key = BlockKey(day, state, interval)
                creates.append(key)
                # A merged block keeps the first note among the pieces it absorbed.
                note = next(
                    (
                        exception.note
                        for exception in group
                        if exception.note and interval.start <= exception.interval.start < interval.end
                    ),
                    None,
                )
                if note:
                    notes[key] = note

        gateway = ExceptionsGateway(self, provider_id, clinic_id, notes=notes)
        existing = self.fetch_exceptions(provider_id, clinic_id, start, end)
        plan = CommitPlan(
            deletes=[gateway.persisted(exception) for exception in existing if exception.id is not None],
            creates=creates,
        )
        result = apply_commit_plan(plan, gateway)
        logger.info(
            'Replaced exceptions for provider %s at clinic %s in week of %s: %s removed, %s added',
            provider_id,
            clinic_id,
            start,
            len(result.deleted),
            len(result.created),
        )
        return result

    def create_appointment(
        self,
        provider_id: int,
        clinic_id: int,
        start: datetime,
        end: datetime,
        timezone: str,
        notes: str | None = None,
        patient_id: int | None = None,
    ) -> dict[str, Any]:
        """Book ``[start, end)`` given in the clinic's wall-clock time."""
        return self._write(
            'POST',
            '/appointments',
            json={
                'provider_id': provider_id,
                'clinic_id': clinic_id,
                'patient_id': patient_id,
                'datetime_start': start.isoformat(),
                'datetime_end': end.isoformat(),
                'timezone': timezone,
                'notes': notes,
            },
        )


class WeeklyRulesGateway:
    def __init__(self, client: AvailabilityApiClient, provider_id: int, clinic_id: int):
        self.client = client
        self.provider_id = provider_id
        self.clinic_id = clinic_id

    @staticmethod
    def persisted(rule: WeeklyAvailabilityRule) -> PersistedBlock:
        return PersistedBlock(id=rule.id, key=BlockKey(rule.weekday, CellState.AVAILABLE, rule.interval))

    def delete(self, block: PersistedBlock) -> None:
        self.client.delete_rule(self.provider_id, self.clinic_id, block.id)

    def create(self, key: BlockKey) -> PersistedBlock:
        rule = self.client.create_rule(self.provider_id, self.clinic_id, key.column, key.interval)
        return PersistedBlock(id=rule.id, key=key)


class ExceptionsGateway:
    def __init__(
        self,
        client: AvailabilityApiClient,
        provider_id: int,
        clinic_id: int,
        notes: Mapping[BlockKey, str] | None = None,
    ):
        self.client = client
        self.provider_id = provider_id
        self.clinic_id = clinic_id
        self.notes = dict(notes or {})

    @staticmethod
    def key_for(exception: AvailabilityException) -> BlockKey:
        state = CellState.AVAILABLE if exception.is_available else CellState.UNAVAILABLE
        return BlockKey(exception.date, state, exception.interval)

    @classmethod
    def persisted(cls, exception: AvailabilityException) -> PersistedBlock:
        return PersistedBlock(id=exception.id, key=cls.key_for(exception))

    def delete(self, block: PersistedBlock) -> None:
        self.client.delete_exception(self.provider_id, self.clinic_id, block.id)

    def create(self, key: BlockKey) -> PersistedBlock:
        exception = self.client.create_exception(
            self.provider_id,
            self.clinic_id,
            key.column,
            key.interval,
            is_available=key.state == CellState.AVAILABLE,
            note=self.notes.get(key),
        )
        return PersistedBlock(id=exception.id, key=key)
