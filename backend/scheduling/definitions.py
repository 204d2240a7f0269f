"""Recurring weekly availability rules per provider.

A provider's definitions for one day of the week never overlap: two windows
``a`` and ``b`` collide when ``a.start < b.end and a.end > b.start``, so
windows that merely touch (``12:00`` end, ``12:00`` start) are accepted.
"""

import logging
from datetime import time
from threading import Lock

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.exceptions import NotFound, OverlapConflict, ValidationError
from backend.models.availability import DayOfWeek, TimeSlotDefinition
from backend.scheduling.directory import get_provider

logger = logging.getLogger(__name__)

# Definition writes are administrative and rare; one lock serializes check-then-write.
_definition_write_lock = Lock()


def intervals_overlap(a_start: time, a_end: time, b_start: time, b_end: time) -> bool:
    return a_start < b_end and a_end > b_start


def resolve_granularity(granularity_minutes: int | None) -> int:
    if granularity_minutes is None:
        return config.DEFAULT_GRANULARITY_MINUTES

    if not config.MIN_GRANULARITY_MINUTES <= granularity_minutes <= config.MAX_GRANULARITY_MINUTES:
        raise ValidationError(
            f'Granularity must be between {config.MIN_GRANULARITY_MINUTES} '
            f'and {config.MAX_GRANULARITY_MINUTES} minutes.'
        )

    return granularity_minutes


def validate_window(start_time: time, end_time: time) -> None:
    if start_time >= end_time:
        raise ValidationError('Start time must be before end time.')


def find_overlapping_definition(
    db: Session,
    provider_id: int,
    day_of_week: DayOfWeek,
    start_time: time,
    end_time: time,
    exclude_id: int | None = None,
) -> TimeSlotDefinition | None:
    query = db.query(TimeSlotDefinition).filter(
        TimeSlotDefinition.provider_id == provider_id,
        TimeSlotDefinition.day_of_week == day_of_week,
        TimeSlotDefinition.start_time < end_time,
        TimeSlotDefinition.end_time > start_time,
    )

    if exclude_id is not None:
        query = query.filter(TimeSlotDefinition.id != exclude_id)

    return query.order_by(TimeSlotDefinition.start_time.asc()).first()


def get_definition(db: Session, definition_id: int) -> TimeSlotDefinition:
    definition = db.get(TimeSlotDefinition, definition_id)
    if definition is None:
        raise NotFound('Definition', definition_id)
    return definition


def list_definitions(db: Session, provider_id: int) -> list[TimeSlotDefinition]:
    definitions = db.query(TimeSlotDefinition).filter(
        TimeSlotDefinition.provider_id == provider_id,
    ).all()

    day_order = {day: index for index, day in enumerate(DayOfWeek)}
    return sorted(definitions, key=lambda item: (day_order[item.day_of_week], item.start_time))


def list_definitions_for_day(db: Session, provider_id: int, day_of_week: DayOfWeek) -> list[TimeSlotDefinition]:
    return db.query(TimeSlotDefinition).filter(
        TimeSlotDefinition.provider_id == provider_id,
        TimeSlotDefinition.day_of_week == day_of_week,
    ).order_by(TimeSlotDefinition.start_time.asc()).all()


def _commit_definition(db: Session, definition: TimeSlotDefinition, exclude_id: int | None) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        conflicting = find_overlapping_definition(
            db,
            definition.provider_id,
            definition.day_of_week,
            definition.start_time,
            definition.end_time,
            exclude_id=exclude_id,
        )
        logger.info('Definition write for provider %s rejected by storage constraint', definition.provider_id)
        raise OverlapConflict(conflicting.id if conflicting else None) from exc

    db.refresh(definition)


def create_definition(
    db: Session,
    provider_id: int,
    day_of_week: DayOfWeek,
    start_time: time,
    end_time: time,
    granularity_minutes: int | None = None,
) -> TimeSlotDefinition:
    validate_window(start_time, end_time)
    granularity = resolve_granularity(granularity_minutes)
    get_provider(db, provider_id)

    with _definition_write_lock:
        overlapping = find_overlapping_definition(db, provider_id, day_of_week, start_time, end_time)
        if overlapping:
            logger.info(
                'Definition %s-%s on %s for provider %s overlaps definition %s',
                start_time, end_time, day_of_week.value, provider_id, overlapping.id,
            )
            raise OverlapConflict(overlapping.id)

        definition = TimeSlotDefinition(
            provider_id=provider_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            granularity_minutes=granularity,
        )
        db.add(definition)
        _commit_definition(db, definition, exclude_id=None)

    logger.info('Created definition %s for provider %s', definition.id, provider_id)
    return definition


def update_definition(
    db: Session,
    definition_id: int,
    day_of_week: DayOfWeek | None = None,
    start_time: time | None = None,
    end_time: time | None = None,
    granularity_minutes: int | None = None,
) -> TimeSlotDefinition:
    with _definition_write_lock:
        definition = get_definition(db, definition_id)

        new_day = day_of_week if day_of_week is not None else definition.day_of_week
        new_start = start_time if start_time is not None else definition.start_time
        new_end = end_time if end_time is not None else definition.end_time
        validate_window(new_start, new_end)
        new_granularity = (
            resolve_granularity(granularity_minutes)
            if granularity_minutes is not None
            else definition.granularity_minutes
        )

        overlapping = find_overlapping_definition(
            db,
            definition.provider_id,
            new_day,
            new_start,
            new_end,
            exclude_id=definition.id,
        )
        if overlapping:
            logger.info('Update of definition %s overlaps definition %s', definition.id, overlapping.id)
            raise OverlapConflict(overlapping.id)

        definition.day_of_week = new_day
        definition.start_time = new_start
        definition.end_time = new_end
        definition.granularity_minutes = new_granularity
        _commit_definition(db, definition, exclude_id=definition.id)

    return definition


def delete_definition(db: Session, definition_id: int) -> None:
    """Delete a definition without touching appointments booked from it."""
    with _definition_write_lock:
        definition = get_definition(db, definition_id)
        db.delete(definition)
        db.commit()

    logger.info('Deleted definition %s', definition_id)
