from datetime import date, datetime, time

from backend.models.appointment import Appointment, AppointmentStatus
from backend.models.availability import DayOfWeek
from backend.scheduling.availability import (
    available_instants,
    is_occupying,
    iterate_definition_instants,
)
from backend.scheduling.definitions import create_definition

NEXT_MONDAY = date(2026, 1, 5)


def _add_appointment(db, people, instant: datetime, status: AppointmentStatus) -> Appointment:
    appointment = Appointment(
        patient_id=people.patient.id,
        provider_id=people.provider.id,
        instant=instant,
        status=status,
        occupies_slot=True if status != AppointmentStatus.CANCELLED else None,
    )
    db.add(appointment)
    db.commit()
    return appointment


def test_iterate_definition_instants_stops_before_window_end(db, people) -> None:
    definition = create_definition(db, people.provider.id, DayOfWeek.MONDAY, time(9, 0), time(10, 10), 20)

    assert iterate_definition_instants(definition) == [time(9, 0), time(9, 20), time(9, 40), time(10, 0)]


def test_available_instants_for_morning_definition(db, people, monday_definition) -> None:
    assert available_instants(db, people.provider.id, NEXT_MONDAY) == [
        time(9, 0),
        time(9, 30),
        time(10, 0),
        time(10, 30),
        time(11, 0),
        time(11, 30),
    ]


def test_available_instants_is_empty_without_definitions(db, people, monday_definition) -> None:
    assert available_instants(db, people.provider.id, date(2026, 1, 6)) == []
    assert available_instants(db, people.other_provider.id, NEXT_MONDAY) == []


def test_available_instants_unions_definitions_with_their_own_granularity(db, people, monday_definition) -> None:
    create_definition(db, people.provider.id, DayOfWeek.MONDAY, time(14, 0), time(15, 0), 20)

    instants = available_instants(db, people.provider.id, NEXT_MONDAY)

    assert instants[-3:] == [time(14, 0), time(14, 20), time(14, 40)]
    assert len(instants) == 9
    assert instants == sorted(instants)


def test_available_instants_subtracts_occupying_appointments(db, people, monday_definition) -> None:
    _add_appointment(db, people, datetime(2026, 1, 5, 10, 0), AppointmentStatus.PENDING)
    _add_appointment(db, people, datetime(2026, 1, 5, 11, 0), AppointmentStatus.CONFIRMED)
    _add_appointment(db, people, datetime(2026, 1, 12, 9, 0), AppointmentStatus.PENDING)

    instants = available_instants(db, people.provider.id, NEXT_MONDAY)

    assert time(10, 0) not in instants
    assert time(11, 0) not in instants
    assert time(9, 0) in instants
    assert len(instants) == 4


def test_cancelled_appointment_occupancy_follows_policy(db, people, monday_definition) -> None:
    _add_appointment(db, people, datetime(2026, 1, 5, 9, 30), AppointmentStatus.CANCELLED)

    assert time(9, 30) in available_instants(db, people.provider.id, NEXT_MONDAY, cancelled_occupy=False)
    assert time(9, 30) not in available_instants(db, people.provider.id, NEXT_MONDAY, cancelled_occupy=True)


def test_past_dates_are_answered_like_any_other(db, people, monday_definition) -> None:
    assert len(available_instants(db, people.provider.id, date(2025, 12, 29))) == 6


def test_is_occupying_predicate() -> None:
    assert is_occupying(AppointmentStatus.PENDING, cancelled_occupy=False)
    assert is_occupying(AppointmentStatus.CONFIRMED, cancelled_occupy=False)
    assert not is_occupying(AppointmentStatus.CANCELLED, cancelled_occupy=False)
    assert is_occupying(AppointmentStatus.CANCELLED, cancelled_occupy=True)
