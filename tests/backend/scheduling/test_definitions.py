from datetime import time

import pytest

from backend.core.exceptions import NotFound, OverlapConflict, ValidationError
from backend.models.availability import DayOfWeek, TimeSlotDefinition
from backend.scheduling.definitions import (
    create_definition,
    delete_definition,
    intervals_overlap,
    list_definitions,
    update_definition,
)


@pytest.mark.parametrize(
    ('a', 'b', 'expected'),
    [
        ((time(9, 0), time(12, 0)), (time(11, 0), time(13, 0)), True),
        ((time(9, 0), time(12, 0)), (time(12, 0), time(13, 0)), False),
        ((time(9, 0), time(12, 0)), (time(8, 0), time(9, 0)), False),
        ((time(9, 0), time(12, 0)), (time(10, 0), time(10, 30)), True),
        ((time(10, 0), time(10, 30)), (time(9, 0), time(12, 0)), True),
    ],
)
def test_intervals_overlap_uses_half_open_ranges(a, b, expected) -> None:
    assert intervals_overlap(a[0], a[1], b[0], b[1]) is expected


def test_create_definition_defaults_granularity(db, people) -> None:
    definition = create_definition(db, people.provider.id, DayOfWeek.TUESDAY, time(14, 0), time(17, 0))

    assert definition.id is not None
    assert definition.granularity_minutes == 30


def test_create_definition_rejects_overlap_and_names_colliding_definition(db, people, monday_definition) -> None:
    with pytest.raises(OverlapConflict) as exception_info:
        create_definition(db, people.provider.id, DayOfWeek.MONDAY, time(11, 0), time(13, 0))

    assert exception_info.value.conflicting_id == monday_definition.id


def test_create_definition_accepts_touching_window(db, people, monday_definition) -> None:
    definition = create_definition(db, people.provider.id, DayOfWeek.MONDAY, time(12, 0), time(13, 0))

    assert definition.start_time == time(12, 0)
    assert db.query(TimeSlotDefinition).count() == 2


def test_overlap_is_scoped_to_provider_and_day(db, people, monday_definition) -> None:
    create_definition(db, people.other_provider.id, DayOfWeek.MONDAY, time(9, 0), time(12, 0))
    create_definition(db, people.provider.id, DayOfWeek.TUESDAY, time(9, 0), time(12, 0))

    assert db.query(TimeSlotDefinition).count() == 3


@pytest.mark.parametrize(
    ('start', 'end'),
    [
        (time(12, 0), time(9, 0)),
        (time(9, 0), time(9, 0)),
    ],
)
def test_create_definition_rejects_empty_or_inverted_window(db, people, start, end) -> None:
    with pytest.raises(ValidationError):
        create_definition(db, people.provider.id, DayOfWeek.MONDAY, start, end)


@pytest.mark.parametrize('granularity', [10, 121, 0])
def test_create_definition_rejects_granularity_out_of_bounds(db, people, granularity: int) -> None:
    with pytest.raises(ValidationError):
        create_definition(db, people.provider.id, DayOfWeek.MONDAY, time(9, 0), time(12, 0), granularity)


def test_create_definition_requires_existing_provider(db, people) -> None:
    with pytest.raises(NotFound):
        create_definition(db, people.patient.id, DayOfWeek.MONDAY, time(9, 0), time(12, 0))


def test_update_definition_ignores_its_own_window(db, people, monday_definition) -> None:
    updated = update_definition(db, monday_definition.id, end_time=time(12, 30), granularity_minutes=15)

    assert updated.end_time == time(12, 30)
    assert updated.granularity_minutes == 15


def test_update_definition_rejects_overlap_with_sibling(db, people, monday_definition) -> None:
    afternoon = create_definition(db, people.provider.id, DayOfWeek.MONDAY, time(14, 0), time(16, 0))

    with pytest.raises(OverlapConflict) as exception_info:
        update_definition(db, afternoon.id, start_time=time(11, 30))

    assert exception_info.value.conflicting_id == monday_definition.id
    db.refresh(afternoon)
    assert afternoon.start_time == time(14, 0)


def test_update_definition_returns_not_found_for_unknown_id(db, people) -> None:
    with pytest.raises(NotFound):
        update_definition(db, 999, start_time=time(8, 0))


def test_delete_definition_removes_row(db, people, monday_definition) -> None:
    delete_definition(db, monday_definition.id)

    assert db.query(TimeSlotDefinition).count() == 0

    with pytest.raises(NotFound):
        delete_definition(db, monday_definition.id)


def test_list_definitions_orders_by_weekday_then_start(db, people) -> None:
    create_definition(db, people.provider.id, DayOfWeek.WEDNESDAY, time(9, 0), time(10, 0))
    create_definition(db, people.provider.id, DayOfWeek.MONDAY, time(14, 0), time(15, 0))
    create_definition(db, people.provider.id, DayOfWeek.MONDAY, time(9, 0), time(10, 0))

    listed = [(item.day_of_week, item.start_time) for item in list_definitions(db, people.provider.id)]

    assert listed == [
        (DayOfWeek.MONDAY, time(9, 0)),
        (DayOfWeek.MONDAY, time(14, 0)),
        (DayOfWeek.WEDNESDAY, time(9, 0)),
    ]
