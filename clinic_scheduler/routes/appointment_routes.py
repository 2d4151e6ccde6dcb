import logging
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.core import config
from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.routes.availability_routes import DATABASE_UNAVAILABLE_DETAIL, ensure_database_ready, get_db
from clinic_scheduler.scheduling import intervals as interval_sets
from clinic_scheduler.scheduling.slot_resolver import Booking, booking_interval, clinic_today
from clinic_scheduler.services.availability_service import (
    get_clinic_timezone,
    load_availability_store,
    load_bookings,
    query_booked_appointments,
)

router = APIRouter(tags=['appointments'])

logger = logging.getLogger(__name__)


class CreateAppointmentRequest(BaseModel):
    provider_id: int
    clinic_id: int
    patient_id: int | None = None
    datetime_start: datetime
    datetime_end: datetime
    timezone: str | None = None
    notes: str | None = None

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None

        normalized = value.strip()
        try:
            ZoneInfo(normalized)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError('Unknown timezone.') from exc

        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > config.MAX_NOTE_LENGTH:
            raise ValueError(f'Notes must be {config.MAX_NOTE_LENGTH} characters or fewer.')

        return normalized

    @model_validator(mode='after')
    def validate_range(self) -> 'CreateAppointmentRequest':
        if self.datetime_start >= self.datetime_end:
            raise ValueError('Appointment start must be before its end.')
        return self


class BookedIntervalResponse(BaseModel):
    id: int
    start: datetime
    end: datetime


class AppointmentResponse(BaseModel):
    id: int
    provider_id: int
    clinic_id: int
    patient_id: int | None = None
    start_time: datetime
    end_time: datetime
    start_time_utc: datetime | None = None
    end_time_utc: datetime | None = None
    timezone: str | None = None
    status: str
    notes: str | None = None

    class Config:
        from_attributes = True


def to_clinic_local(value: datetime, zone: ZoneInfo) -> datetime:
    if value.tzinfo is None:
        return value.replace(second=0, microsecond=0)
    return value.astimezone(zone).replace(tzinfo=None, second=0, microsecond=0)


def to_utc(local_value: datetime, zone: ZoneInfo) -> datetime:
    return local_value.replace(tzinfo=zone).astimezone(timezone.utc).replace(tzinfo=None)


@router.get('/booked', response_model=list[BookedIntervalResponse])
def list_booked_appointments(
    provider_id: int = Query(...),
    clinic_id: int = Query(...),
    booking_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointments = query_booked_appointments(db, provider_id, clinic_id, booking_date)
        return [
            BookedIntervalResponse(id=appointment.id, start=appointment.start_time, end=appointment.end_time)
            for appointment in appointments
        ]
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        zone_name = data.timezone or get_clinic_timezone(db, data.clinic_id)
        zone = ZoneInfo(zone_name)
        start_time = to_clinic_local(data.datetime_start, zone)
        end_time = to_clinic_local(data.datetime_end, zone)
        appointment_date = start_time.date()
        today = clinic_today(zone_name)

        if start_time <= datetime.now(zone).replace(tzinfo=None) or appointment_date < today:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Appointments must be scheduled in the future.',
            )

        if appointment_date > today + timedelta(days=config.BOOKING_RANGE_DAYS):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f'Appointments can only be booked within the next {config.BOOKING_RANGE_DAYS} days.',
            )

        next_midnight = datetime.combine(appointment_date + timedelta(days=1), datetime.min.time())
        if end_time <= start_time or (end_time.date() != appointment_date and end_time != next_midnight):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Appointments must start and end on the same day.',
            )

        requested = booking_interval(Booking(start=start_time, end=end_time), appointment_date)
        booked = [
            interval
            for interval in (
                booking_interval(booking, appointment_date)
                for booking in load_bookings(db, data.provider_id, data.clinic_id, appointment_date)
            )
            if interval
        ]
        if any(requested.overlaps(interval) for interval in booked):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='This time is already booked.',
            )

        store = load_availability_store(db, data.provider_id, data.clinic_id, appointment_date)
        if not interval_sets.covers_interval(store.open_intervals(appointment_date), requested):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='The provider is not available at this time.',
            )

        appointment = Appointment(
            provider_id=data.provider_id,
            clinic_id=data.clinic_id,
            patient_id=data.patient_id,
            start_time=start_time,
            end_time=end_time,
            start_time_utc=to_utc(start_time, zone),
            end_time_utc=to_utc(end_time, zone),
            timezone=zone_name,
            notes=data.notes,
            status='booked',
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)

        logger.info(
            'Booked appointment %s for provider %s at clinic %s (%s to %s %s)',
            appointment.id,
            data.provider_id,
            data.clinic_id,
            start_time,
            end_time,
            zone_name,
        )
        return appointment
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.delete('/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def cancel_appointment(
    appointment_id: int,
    provider_id: int = Query(...),
    clinic_id: int = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.provider_id == provider_id,
            Appointment.clinic_id == clinic_id,
        ).first()

        if not appointment:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Appointment not found.',
            )

        db.delete(appointment)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc
