"""User model definitions."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String
from backend.database import Base


class User(Base):
    """Represents a doctor or patient account."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, default="patient")  # doctor/patient
    otp = Column(String)
    otp_expires = Column(DateTime)
    is_email_verified = Column(Boolean, default=False, nullable=False)
    two_fa_enabled = Column(Boolean, default=True, nullable=False)
    specialization = Column(String)
    profile_picture = Column(String)

    # Weekly availability, doctors only. Overwritten in place on profile update.
    availability_days = Column(JSON)
    availability_start = Column(String)  # HH:mm
    availability_end = Column(String)  # HH:mm
