from datetime import date, datetime, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, require_admin_or_provider
from backend.core.exceptions import SchedulingError
from backend.database import ensure_scheduling_schema, get_db
from backend.models.availability import DayOfWeek
from backend.models.user import User
from backend.routes.errors import database_unavailable, to_http_exception
from backend.scheduling import definitions
from backend.scheduling.availability import available_instants

router = APIRouter(tags=['availability'])


def _normalize_day(value):
    if isinstance(value, str):
        return value.strip().upper()
    return value


class CreateDefinitionRequest(BaseModel):
    provider_id: int
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    granularity_minutes: int | None = None

    @field_validator('day_of_week', mode='before')
    @classmethod
    def normalize_day_of_week(cls, value):
        return _normalize_day(value)


class UpdateDefinitionRequest(BaseModel):
    day_of_week: DayOfWeek | None = None
    start_time: time | None = None
    end_time: time | None = None
    granularity_minutes: int | None = None

    @field_validator('day_of_week', mode='before')
    @classmethod
    def normalize_day_of_week(cls, value):
        return _normalize_day(value)


class DefinitionResponse(BaseModel):
    id: int
    provider_id: int
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    granularity_minutes: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


def ensure_database_ready() -> None:
    try:
        ensure_scheduling_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/providers/{provider_id}/instants', response_model=list[time])
def list_available_instants(
    provider_id: int,
    on_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return available_instants(db, provider_id, on_date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/providers/{provider_id}/definitions', response_model=list[DefinitionResponse])
def list_provider_definitions(provider_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return definitions.list_definitions(db, provider_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/definitions', response_model=DefinitionResponse, status_code=status.HTTP_201_CREATED)
def create_definition(
    data: CreateDefinitionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_admin_or_provider(current_user, data.provider_id)
    ensure_database_ready()

    try:
        return definitions.create_definition(
            db,
            provider_id=data.provider_id,
            day_of_week=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
            granularity_minutes=data.granularity_minutes,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/definitions/{definition_id}', response_model=DefinitionResponse)
def update_definition(
    definition_id: int,
    data: UpdateDefinitionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        existing = definitions.get_definition(db, definition_id)
        require_admin_or_provider(current_user, existing.provider_id)

        return definitions.update_definition(
            db,
            definition_id,
            day_of_week=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
            granularity_minutes=data.granularity_minutes,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/definitions/{definition_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_definition(
    definition_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        existing = definitions.get_definition(db, definition_id)
        require_admin_or_provider(current_user, existing.provider_id)
        definitions.delete_definition(db, definition_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
