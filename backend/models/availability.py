"""Availability definition models."""

import enum
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Time, UniqueConstraint
from backend.database import Base


class DayOfWeek(str, enum.Enum):
    MONDAY = 'MONDAY'
    TUESDAY = 'TUESDAY'
    WEDNESDAY = 'WEDNESDAY'
    THURSDAY = 'THURSDAY'
    FRIDAY = 'FRIDAY'
    SATURDAY = 'SATURDAY'
    SUNDAY = 'SUNDAY'

    @classmethod
    def from_date(cls, value) -> 'DayOfWeek':
        return list(cls)[value.weekday()]


class TimeSlotDefinition(Base):
    """A provider's recurring weekly availability window."""
    __tablename__ = "availability_definitions"
    __table_args__ = (
        UniqueConstraint('provider_id', 'day_of_week', 'start_time', name='uq_definition_provider_day_start'),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    day_of_week = Column(Enum(DayOfWeek, native_enum=False, length=20), nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    granularity_minutes = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)
