"""Clinic model definitions."""

from sqlalchemy import Column, Integer, String
from clinic_scheduler.database import Base


class Clinic(Base):
    """The clinic record; only the fields scheduling reads are mapped."""
    __tablename__ = "clinics"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String)
    timezone = Column(String)
