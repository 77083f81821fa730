"""User model definitions."""

from sqlalchemy import Column, DateTime, Integer, String, func
from medibook.database import Base


ROLE_PATIENT = "patient"
ROLE_DOCTOR = "doctor"
ROLE_ADMIN = "admin"
USER_ROLES = (ROLE_PATIENT, ROLE_DOCTOR, ROLE_ADMIN)


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    full_name = Column(String)
    phone = Column(String)
    role = Column(String, nullable=False, default=ROLE_PATIENT)  # patient/doctor/admin
    created_at = Column(DateTime, server_default=func.now())
