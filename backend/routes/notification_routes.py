from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.database import get_db
from backend.models.notification import NotificationKind
from backend.routes.errors import database_unavailable
from backend.scheduling import notifications

router = APIRouter(tags=['notifications'])


class NotificationResponse(BaseModel):
    id: int
    appointment_id: int
    recipient_user_id: int
    kind: NotificationKind
    message: str
    scheduled_for: datetime | None = None
    sent_at: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationCountResponse(BaseModel):
    total: int
    pending: int


@router.get('/user/{user_id}', response_model=list[NotificationResponse])
def list_user_notifications(user_id: int, db: Session = Depends(get_db)):
    try:
        return notifications.list_notifications_for_user(db, user_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/user/{user_id}/count', response_model=NotificationCountResponse)
def count_user_notifications(user_id: int, db: Session = Depends(get_db)):
    try:
        return NotificationCountResponse(
            total=notifications.count_notifications_for_user(db, user_id),
            pending=notifications.count_notifications_for_user(db, user_id, unsent_only=True),
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/appointment/{appointment_id}', response_model=list[NotificationResponse])
def list_appointment_notifications(appointment_id: int, db: Session = Depends(get_db)):
    try:
        return notifications.list_notifications_for_appointment(db, appointment_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
