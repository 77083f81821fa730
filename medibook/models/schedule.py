"""Weekly schedule model definitions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Time, func
from medibook.database import Base


class DoctorSchedule(Base):
    """A recurring weekly working interval. day_of_week uses 0=Sunday..6=Saturday."""
    __tablename__ = "doctor_schedules"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_duration_minutes = Column(Integer, default=30)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())
