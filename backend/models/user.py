"""User model definitions."""

import enum

from sqlalchemy import Column, Integer, String
from backend.database import Base


class UserRole(str, enum.Enum):
    PATIENT = 'patient'
    PROVIDER = 'provider'
    ADMIN = 'admin'


class User(Base):
    """Represents a patient, provider or administrator."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String)
    role = Column(String, nullable=False)  # patient/provider/admin
