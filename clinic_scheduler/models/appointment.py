"""Appointment model definitions."""

from sqlalchemy import Column, Integer, DateTime, ForeignKey, String
from clinic_scheduler.database import Base


class Appointment(Base):
    """Represents a booked appointment.

    ``start_time``/``end_time`` are clinic-local wall-clock values; the ``_utc``
    columns hold the same instants converted when the booking was made.
    """
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, nullable=False, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False)
    patient_id = Column(Integer)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    start_time_utc = Column(DateTime)
    end_time_utc = Column(DateTime)
    timezone = Column(String)
    notes = Column(String)
    status = Column(String, default="booked")
