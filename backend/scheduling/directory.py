"""Lookups of the people the engine schedules for."""

from sqlalchemy.orm import Session

from backend.core.exceptions import NotFound
from backend.models.user import User, UserRole


def get_user_with_role(db: Session, user_id: int, role: UserRole) -> User:
    user = db.query(User).filter(
        User.id == user_id,
        User.role == role.value,
    ).first()

    if user is None:
        raise NotFound(role.value.capitalize(), user_id)

    return user


def get_patient(db: Session, patient_id: int) -> User:
    return get_user_with_role(db, patient_id, UserRole.PATIENT)


def get_provider(db: Session, provider_id: int) -> User:
    return get_user_with_role(db, provider_id, UserRole.PROVIDER)
