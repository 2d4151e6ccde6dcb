"""Availability model definitions."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, String, Time
from clinic_scheduler.database import Base


class WeeklyAvailability(Base):
    """One recurring weekly window for a provider at a clinic."""
    __tablename__ = "weekly_availability"

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, nullable=False, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False)
    weekday = Column(String, nullable=False)  # Sunday..Saturday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)


class AvailabilityExceptionRecord(Base):
    """A date-specific override of the weekly schedule."""
    __tablename__ = "availability_exceptions"

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, nullable=False, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, default=False, nullable=False)
    note = Column(String)
