"""Expansion of weekly definitions into bookable instants for one date."""

from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from backend.core import config
from backend.models.appointment import Appointment, AppointmentStatus
from backend.models.availability import DayOfWeek, TimeSlotDefinition
from backend.scheduling.definitions import list_definitions_for_day


def occupying_statuses(cancelled_occupy: bool | None = None) -> list[AppointmentStatus]:
    if cancelled_occupy is None:
        cancelled_occupy = config.CANCELLED_APPOINTMENTS_OCCUPY_SLOT

    if cancelled_occupy:
        return list(AppointmentStatus)
    return [AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED]


def is_occupying(status: AppointmentStatus, cancelled_occupy: bool | None = None) -> bool:
    return status in occupying_statuses(cancelled_occupy)


def iterate_definition_instants(definition: TimeSlotDefinition) -> list[time]:
    # Anchor on an arbitrary date so time arithmetic can use timedelta.
    anchor = date(2000, 1, 3)
    current = datetime.combine(anchor, definition.start_time)
    window_end = datetime.combine(anchor, definition.end_time)
    step = timedelta(minutes=definition.granularity_minutes)

    instants: list[time] = []
    while current < window_end:
        instants.append(current.time())
        current += step

    return instants


def defined_instants(db: Session, provider_id: int, on_date: date) -> set[time]:
    """Every instant the provider's definitions generate for ``on_date``."""
    day_of_week = DayOfWeek.from_date(on_date)

    generated: set[time] = set()
    for definition in list_definitions_for_day(db, provider_id, day_of_week):
        generated.update(iterate_definition_instants(definition))

    return generated


def get_occupied_instants(
    db: Session,
    provider_id: int,
    on_date: date,
    cancelled_occupy: bool | None = None,
) -> set[time]:
    day_start = datetime.combine(on_date, time.min)
    day_end = day_start + timedelta(days=1)

    rows = db.query(Appointment.instant).filter(
        Appointment.provider_id == provider_id,
        Appointment.instant >= day_start,
        Appointment.instant < day_end,
        Appointment.status.in_(occupying_statuses(cancelled_occupy)),
    ).all()

    return {instant.time() for (instant,) in rows}


def available_instants(
    db: Session,
    provider_id: int,
    on_date: date,
    cancelled_occupy: bool | None = None,
) -> list[time]:
    """Sorted free instants for ``provider_id`` on ``on_date``.

    Past dates are answered like any other; rejecting them is the booking
    side's job. A day without definitions yields an empty list.
    """
    generated = defined_instants(db, provider_id, on_date)
    if not generated:
        return []

    occupied = get_occupied_instants(db, provider_id, on_date, cancelled_occupy)
    return sorted(generated - occupied)
