"""Pure appointment state machine.

``PENDING --confirm--> CONFIRMED`` and ``{PENDING, CONFIRMED} --cancel-->
CANCELLED``. ``CANCELLED`` is terminal. Each transition function takes a
snapshot of the current appointment and returns the new state along with the
notifications it implies, or raises ``InvalidTransition``. Nothing here
touches the database.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime

from backend.core.exceptions import InvalidTransition
from backend.models.appointment import AppointmentStatus, CancelledBy
from backend.models.notification import NotificationKind


class Action(str, enum.Enum):
    CONFIRM = 'confirm'
    CANCEL = 'cancel'
    RESCHEDULE = 'reschedule'
    EDIT = 'edit'


ALLOWED_SOURCES = {
    Action.CONFIRM: {AppointmentStatus.PENDING},
    Action.CANCEL: {AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED},
    Action.RESCHEDULE: {AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED},
    Action.EDIT: {AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED},
}


@dataclass(frozen=True)
class AppointmentSnapshot:
    patient_id: int
    provider_id: int
    instant: datetime
    status: AppointmentStatus
    cancelled_by: CancelledBy | None = None
    cancellation_reason: str | None = None


@dataclass(frozen=True)
class NotificationIntent:
    recipient_user_id: int
    kind: NotificationKind
    message: str


@dataclass(frozen=True)
class Transition:
    state: AppointmentSnapshot
    notifications: tuple[NotificationIntent, ...] = field(default_factory=tuple)


def format_instant(instant: datetime) -> str:
    return instant.strftime('%A, %B %d at %H:%M')


def _require(snapshot: AppointmentSnapshot, action: Action) -> None:
    if snapshot.status not in ALLOWED_SOURCES[action]:
        raise InvalidTransition(snapshot.status.value, action.value)


def confirm(snapshot: AppointmentSnapshot) -> Transition:
    _require(snapshot, Action.CONFIRM)

    state = AppointmentSnapshot(
        patient_id=snapshot.patient_id,
        provider_id=snapshot.provider_id,
        instant=snapshot.instant,
        status=AppointmentStatus.CONFIRMED,
    )
    notice = NotificationIntent(
        recipient_user_id=snapshot.patient_id,
        kind=NotificationKind.CONFIRMATION,
        message=f'Your appointment on {format_instant(snapshot.instant)} has been confirmed.',
    )
    return Transition(state=state, notifications=(notice,))


def cancel(snapshot: AppointmentSnapshot, cancelled_by: CancelledBy, reason: str | None = None) -> Transition:
    _require(snapshot, Action.CANCEL)

    state = AppointmentSnapshot(
        patient_id=snapshot.patient_id,
        provider_id=snapshot.provider_id,
        instant=snapshot.instant,
        status=AppointmentStatus.CANCELLED,
        cancelled_by=cancelled_by,
        cancellation_reason=reason,
    )

    message = f'The appointment on {format_instant(snapshot.instant)} has been cancelled.'
    if reason:
        message = f'{message} Reason: {reason}'

    # The side that cancelled already knows; an admin cancellation informs both.
    if cancelled_by == CancelledBy.PATIENT:
        recipients = [snapshot.provider_id]
    elif cancelled_by == CancelledBy.PROVIDER:
        recipients = [snapshot.patient_id]
    else:
        recipients = [snapshot.patient_id, snapshot.provider_id]

    notices = tuple(
        NotificationIntent(recipient_user_id=recipient, kind=NotificationKind.CANCELLATION, message=message)
        for recipient in recipients
    )
    return Transition(state=state, notifications=notices)


def reschedule(snapshot: AppointmentSnapshot, new_provider_id: int, new_instant: datetime) -> Transition:
    _require(snapshot, Action.RESCHEDULE)

    state = AppointmentSnapshot(
        patient_id=snapshot.patient_id,
        provider_id=new_provider_id,
        instant=new_instant,
        status=snapshot.status,
    )

    message = (
        f'The appointment on {format_instant(snapshot.instant)} '
        f'has been moved to {format_instant(new_instant)}.'
    )
    recipients = [snapshot.patient_id, new_provider_id]
    if new_provider_id != snapshot.provider_id:
        recipients.append(snapshot.provider_id)

    notices = tuple(
        NotificationIntent(recipient_user_id=recipient, kind=NotificationKind.RESCHEDULE, message=message)
        for recipient in recipients
    )
    return Transition(state=state, notifications=notices)


def edit(snapshot: AppointmentSnapshot) -> Transition:
    """Details such as the reason stay editable until the appointment is cancelled."""
    _require(snapshot, Action.EDIT)
    return Transition(state=snapshot)
