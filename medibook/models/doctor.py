"""Doctor profile model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship
from medibook.database import Base


class Doctor(Base):
    """Professional profile of a user with the doctor role."""
    __tablename__ = "doctors"

    id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    specialization = Column(String, index=True)
    qualification = Column(String)
    license_number = Column(String)
    experience_years = Column(Integer)
    consultation_fee = Column(Float)
    bio = Column(Text)
    clinic_address = Column(String)
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    user = relationship("User")
