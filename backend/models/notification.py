"""Notification record definitions."""

import enum
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from backend.database import Base


class NotificationKind(str, enum.Enum):
    CONFIRMATION = 'CONFIRMATION'
    REMINDER = 'REMINDER'
    CANCELLATION = 'CANCELLATION'
    RESCHEDULE = 'RESCHEDULE'


class NotificationRecord(Base):
    """A message decided by the scheduler, sent now or deferred."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    recipient_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    kind = Column(Enum(NotificationKind, native_enum=False, length=20), nullable=False)
    message = Column(Text, nullable=False)
    scheduled_for = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    appointment = relationship("Appointment")
