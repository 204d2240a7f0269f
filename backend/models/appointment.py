"""Appointment model definitions."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint
from backend.database import Base


class AppointmentStatus(str, enum.Enum):
    PENDING = 'PENDING'
    CONFIRMED = 'CONFIRMED'
    CANCELLED = 'CANCELLED'


class CancelledBy(str, enum.Enum):
    PATIENT = 'PATIENT'
    PROVIDER = 'PROVIDER'
    ADMIN = 'ADMIN'


class Appointment(Base):
    """Represents a booked consultation."""
    __tablename__ = "appointments"
    # occupies_slot is True or NULL; NULLs never collide, so only occupying rows are unique.
    __table_args__ = (
        UniqueConstraint('provider_id', 'instant', 'occupies_slot', name='uq_appointment_occupied_slot'),
    )

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    instant = Column(DateTime, nullable=False)
    reason = Column(String(500))
    status = Column(Enum(AppointmentStatus, native_enum=False, length=20), nullable=False)
    occupies_slot = Column(Boolean, nullable=True)
    cancelled_by = Column(Enum(CancelledBy, native_enum=False, length=20), nullable=True)
    cancellation_reason = Column(Text)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)
