"""Loads persisted scheduling rows into the pure scheduling types."""

import logging
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from clinic_scheduler.core import config
from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.models.availability import AvailabilityExceptionRecord, WeeklyAvailability
from clinic_scheduler.models.clinic import Clinic
from clinic_scheduler.scheduling.availability_store import (
    AvailabilityException,
    AvailabilityStore,
    WeeklyAvailabilityRule,
    Weekday,
)
from clinic_scheduler.scheduling.slot_resolver import Booking

logger = logging.getLogger(__name__)


def to_rule(record: WeeklyAvailability) -> WeeklyAvailabilityRule:
    return WeeklyAvailabilityRule(
        weekday=Weekday(record.weekday),
        start_time=record.start_time,
        end_time=record.end_time,
        id=record.id,
    )


def to_exception(record: AvailabilityExceptionRecord) -> AvailabilityException:
    return AvailabilityException(
        date=record.date,
        start_time=record.start_time,
        end_time=record.end_time,
        is_available=bool(record.is_available),
        note=record.note,
        id=record.id,
    )


def get_clinic_timezone(db: Session, clinic_id: int) -> str:
    clinic = db.query(Clinic).filter(Clinic.id == clinic_id).first()
    if not clinic or not clinic.timezone:
        return config.DEFAULT_CLINIC_TIMEZONE

    try:
        ZoneInfo(clinic.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(
            'Clinic %s has unknown timezone %r; using %s',
            clinic_id,
            clinic.timezone,
            config.DEFAULT_CLINIC_TIMEZONE,
        )
        return config.DEFAULT_CLINIC_TIMEZONE

    return clinic.timezone


def query_rules(db: Session, provider_id: int, clinic_id: int) -> list[WeeklyAvailability]:
    return db.query(WeeklyAvailability).filter(
        WeeklyAvailability.provider_id == provider_id,
        WeeklyAvailability.clinic_id == clinic_id,
    ).order_by(WeeklyAvailability.weekday.asc(), WeeklyAvailability.start_time.asc()).all()


def query_exceptions(
    db: Session,
    provider_id: int,
    clinic_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[AvailabilityExceptionRecord]:
    query = db.query(AvailabilityExceptionRecord).filter(
        AvailabilityExceptionRecord.provider_id == provider_id,
        AvailabilityExceptionRecord.clinic_id == clinic_id,
    )
    if start_date is not None:
        query = query.filter(AvailabilityExceptionRecord.date >= start_date)
    if end_date is not None:
        query = query.filter(AvailabilityExceptionRecord.date < end_date)

    return query.order_by(
        AvailabilityExceptionRecord.date.asc(),
        AvailabilityExceptionRecord.start_time.asc(),
    ).all()


def query_booked_appointments(db: Session, provider_id: int, clinic_id: int, day: date) -> list[Appointment]:
    day_start = datetime.combine(day, time.min)
    day_end = day_start + timedelta(days=1)

    return db.query(Appointment).filter(
        Appointment.provider_id == provider_id,
        Appointment.clinic_id == clinic_id,
        Appointment.start_time < day_end,
        Appointment.end_time > day_start,
    ).order_by(Appointment.start_time.asc()).all()


def load_availability_store(db: Session, provider_id: int, clinic_id: int, day: date | None = None) -> AvailabilityStore:
    if day is None:
        exception_rows = query_exceptions(db, provider_id, clinic_id)
    else:
        exception_rows = query_exceptions(db, provider_id, clinic_id, day, day + timedelta(days=1))

    return AvailabilityStore(
        provider_id=provider_id,
        clinic_id=clinic_id,
        rules=[to_rule(row) for row in query_rules(db, provider_id, clinic_id)],
        exceptions=[to_exception(row) for row in exception_rows],
    )


def load_bookings(db: Session, provider_id: int, clinic_id: int, day: date) -> list[Booking]:
    return [
        Booking(start=appointment.start_time, end=appointment.end_time)
        for appointment in query_booked_appointments(db, provider_id, clinic_id, day)
    ]
