from datetime import date, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.core import config
from clinic_scheduler.core.errors import ValidationError as ScheduleValidationError
from clinic_scheduler.database import SessionLocal, ensure_availability_schema, ensure_appointment_schema
from clinic_scheduler.models.availability import AvailabilityExceptionRecord, WeeklyAvailability
from clinic_scheduler.scheduling.availability_store import Weekday
from clinic_scheduler.scheduling.slot_resolver import clinic_today, free_windows, hourly_slots
from clinic_scheduler.scheduling.time_grid import END_OF_DAY, SLOT_MINUTES, format_minutes, to_minutes
from clinic_scheduler.services.availability_service import (
    get_clinic_timezone,
    load_availability_store,
    load_bookings,
    query_exceptions,
    query_rules,
)

router = APIRouter(tags=['availability'])

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def validate_block_times(start_time: time, end_time: time) -> None:
    for label, value in (('Start', start_time), ('End', end_time)):
        if label == 'End' and value == END_OF_DAY:
            continue
        if value.second or value.microsecond or value.minute % SLOT_MINUTES != 0:
            raise ValueError(f'{label} time must be on a {SLOT_MINUTES}-minute boundary.')

    if to_minutes(start_time) >= to_minutes(end_time, is_end=True):
        raise ValueError('Start time must be before end time.')


class CreateWeeklyRuleRequest(BaseModel):
    provider_id: int
    clinic_id: int
    weekday: str
    start_time: time
    end_time: time

    @field_validator('weekday')
    @classmethod
    def validate_weekday(cls, value: str) -> str:
        normalized = value.strip().capitalize()
        if normalized not in {weekday.value for weekday in Weekday}:
            raise ValueError('Weekday must be a day name such as Monday.')
        return normalized

    @model_validator(mode='after')
    def validate_times(self) -> 'CreateWeeklyRuleRequest':
        validate_block_times(self.start_time, self.end_time)
        return self


class CreateExceptionRequest(BaseModel):
    provider_id: int
    clinic_id: int
    date: date
    start_time: time
    end_time: time
    is_available: bool = False
    note: str | None = None

    @field_validator('note')
    @classmethod
    def validate_note(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > config.MAX_NOTE_LENGTH:
            raise ValueError(f'Notes must be {config.MAX_NOTE_LENGTH} characters or fewer.')

        return normalized

    @model_validator(mode='after')
    def validate_times(self) -> 'CreateExceptionRequest':
        validate_block_times(self.start_time, self.end_time)
        return self


class WeeklyRuleResponse(BaseModel):
    id: int
    provider_id: int
    clinic_id: int
    weekday: str
    start_time: time
    end_time: time

    class Config:
        from_attributes = True


class ExceptionResponse(BaseModel):
    id: int
    provider_id: int
    clinic_id: int
    date: date
    start_time: time
    end_time: time
    is_available: bool
    note: str | None = None

    class Config:
        from_attributes = True


class FreeWindowResponse(BaseModel):
    id: int
    date: date
    start_time: time
    end_time: time


class DisplaySlotResponse(BaseModel):
    provider_block_id: int
    date: date
    display_start_time: str
    display_end_time: str
    key: str


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@router.get('/rules', response_model=list[WeeklyRuleResponse])
def list_weekly_rules(
    provider_id: int = Query(...),
    clinic_id: int = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return query_rules(db, provider_id, clinic_id)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('/rules', response_model=WeeklyRuleResponse, status_code=status.HTTP_201_CREATED)
def create_weekly_rule(data: CreateWeeklyRuleRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        rule = WeeklyAvailability(
            provider_id=data.provider_id,
            clinic_id=data.clinic_id,
            weekday=data.weekday,
            start_time=data.start_time,
            end_time=data.end_time,
        )
        db.add(rule)
        db.commit()
        db.refresh(rule)

        return rule
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.delete('/rules/{rule_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_weekly_rule(
    rule_id: int,
    provider_id: int = Query(...),
    clinic_id: int = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        rule = db.query(WeeklyAvailability).filter(
            WeeklyAvailability.id == rule_id,
            WeeklyAvailability.provider_id == provider_id,
            WeeklyAvailability.clinic_id == clinic_id,
        ).first()

        if not rule:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Availability rule not found.',
            )

        db.delete(rule)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.get('/exceptions', response_model=list[ExceptionResponse])
def list_exceptions(
    provider_id: int = Query(...),
    clinic_id: int = Query(...),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    if start_date and end_date and start_date >= end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='start_date must be before end_date.',
        )

    ensure_database_ready()

    try:
        return query_exceptions(db, provider_id, clinic_id, start_date, end_date)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('/exceptions', response_model=ExceptionResponse, status_code=status.HTTP_201_CREATED)
def create_exception(data: CreateExceptionRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        exception = AvailabilityExceptionRecord(
            provider_id=data.provider_id,
            clinic_id=data.clinic_id,
            date=data.date,
            start_time=data.start_time,
            end_time=data.end_time,
            is_available=data.is_available,
            note=data.note,
        )
        db.add(exception)
        db.commit()
        db.refresh(exception)

        return exception
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.delete('/exceptions/{exception_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_exception(
    exception_id: int,
    provider_id: int = Query(...),
    clinic_id: int = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        exception = db.query(AvailabilityExceptionRecord).filter(
            AvailabilityExceptionRecord.id == exception_id,
            AvailabilityExceptionRecord.provider_id == provider_id,
            AvailabilityExceptionRecord.clinic_id == clinic_id,
        ).first()

        if not exception:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Availability exception not found.',
            )

        db.delete(exception)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def resolve_free_windows(db: Session, provider_id: int, clinic_id: int, slot_date: date):
    today = clinic_today(get_clinic_timezone(db, clinic_id))
    if slot_date < today:
        return []

    store = load_availability_store(db, provider_id, clinic_id, slot_date)
    bookings = load_bookings(db, provider_id, clinic_id, slot_date)
    try:
        return free_windows(slot_date, store, bookings, today=today)
    except ScheduleValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc


@router.get('/windows', response_model=list[FreeWindowResponse])
def list_free_windows(
    provider_id: int = Query(...),
    clinic_id: int = Query(...),
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return [
            FreeWindowResponse(
                id=window.id,
                date=slot_date,
                start_time=window.interval.start_time,
                end_time=window.interval.end_time,
            )
            for window in resolve_free_windows(db, provider_id, clinic_id, slot_date)
        ]
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.get('/slots', response_model=list[DisplaySlotResponse])
def list_display_slots(
    provider_id: int = Query(...),
    clinic_id: int = Query(...),
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        windows = resolve_free_windows(db, provider_id, clinic_id, slot_date)
        return [
            DisplaySlotResponse(
                provider_block_id=slot.provider_block_id,
                date=slot_date,
                display_start_time=format_minutes(slot.start_minutes),
                display_end_time=format_minutes(slot.end_minutes),
                key=slot.key,
            )
            for slot in hourly_slots(windows)
        ]
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc
