from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import attribution_for, get_current_user
from backend.core.exceptions import SchedulingError, ValidationError
from backend.database import ensure_scheduling_schema, get_db
from backend.models.appointment import AppointmentStatus, CancelledBy
from backend.models.user import User, UserRole
from backend.routes.errors import database_unavailable, to_http_exception
from backend.scheduling import booking
from backend.scheduling.booking import BookingArbiter
from backend.scheduling.runtime import get_booking_arbiter

router = APIRouter(tags=['appointments'])


def _to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def _normalize_reason(value: str | None) -> str | None:
    try:
        return booking.normalize_reason(value)
    except ValidationError as exc:
        raise ValueError(exc.detail) from exc


class CreateAppointmentRequest(BaseModel):
    patient_id: int
    provider_id: int
    instant: datetime
    reason: str | None = None

    @field_validator('instant')
    @classmethod
    def validate_instant(cls, value: datetime) -> datetime:
        return _to_local_naive(value)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_reason(value)


class MoveAppointmentRequest(BaseModel):
    instant: datetime
    provider_id: int | None = None

    @field_validator('instant')
    @classmethod
    def validate_instant(cls, value: datetime) -> datetime:
        return _to_local_naive(value)


class UpdateAppointmentRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_reason(value)


class CancelAppointmentRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_reason(value)


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    provider_id: int
    instant: datetime
    reason: str | None = None
    status: AppointmentStatus
    cancelled_by: CancelledBy | None = None
    cancellation_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


def ensure_database_ready() -> None:
    try:
        ensure_scheduling_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    arbiter: BookingArbiter = Depends(get_booking_arbiter),
    db: Session = Depends(get_db),
):
    if current_user.role == UserRole.PATIENT.value and current_user.id != data.patient_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Patients can only book appointments for themselves.',
        )

    ensure_database_ready()

    try:
        return arbiter.book(db, data.patient_id, data.provider_id, data.instant, data.reason)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('', response_model=list[AppointmentResponse])
def list_all_appointments(
    appointment_status: AppointmentStatus | None = Query(default=None, alias='status'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if current_user.role != UserRole.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only admins can list every appointment.',
        )

    ensure_database_ready()

    try:
        return booking.list_appointments(db, appointment_status)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/patient/{patient_id}', response_model=list[AppointmentResponse])
def list_patient_appointments(
    patient_id: int,
    appointment_status: AppointmentStatus | None = Query(default=None, alias='status'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return booking.list_appointments_for_patient(db, patient_id, appointment_status)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/provider/{provider_id}', response_model=list[AppointmentResponse])
def list_provider_appointments(
    provider_id: int,
    appointment_status: AppointmentStatus | None = Query(default=None, alias='status'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return booking.list_appointments_for_provider(db, provider_id, appointment_status)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(appointment_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return booking.get_appointment(db, appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    arbiter: BookingArbiter = Depends(get_booking_arbiter),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return arbiter.confirm(db, appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest | None = None,
    current_user: User = Depends(get_current_user),
    arbiter: BookingArbiter = Depends(get_booking_arbiter),
    db: Session = Depends(get_db),
):
    cancelled_by = attribution_for(current_user)
    reason = data.reason if data else None

    ensure_database_ready()

    try:
        return arbiter.cancel(db, appointment_id, cancelled_by, reason)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/move', response_model=AppointmentResponse)
def move_appointment(
    appointment_id: int,
    data: MoveAppointmentRequest,
    current_user: User = Depends(get_current_user),
    arbiter: BookingArbiter = Depends(get_booking_arbiter),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return arbiter.reschedule(db, appointment_id, data.instant, new_provider_id=data.provider_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    arbiter: BookingArbiter = Depends(get_booking_arbiter),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = booking.get_appointment(db, appointment_id)
        is_party = current_user.id in (appointment.patient_id, appointment.provider_id)
        if current_user.role != UserRole.ADMIN.value and not is_party:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Only the patient, the provider or an admin can edit this appointment.',
            )

        return arbiter.update_reason(db, appointment_id, data.reason)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
