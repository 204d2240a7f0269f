from datetime import datetime

import pytest

from backend.core.exceptions import InvalidTransition
from backend.models.appointment import AppointmentStatus, CancelledBy
from backend.models.notification import NotificationKind
from backend.scheduling import lifecycle

PATIENT_ID = 1
PROVIDER_ID = 2
INSTANT = datetime(2026, 1, 5, 10, 0)


def _snapshot(status: AppointmentStatus) -> lifecycle.AppointmentSnapshot:
    return lifecycle.AppointmentSnapshot(
        patient_id=PATIENT_ID,
        provider_id=PROVIDER_ID,
        instant=INSTANT,
        status=status,
    )


def test_confirm_moves_pending_to_confirmed_and_notifies_patient() -> None:
    transition = lifecycle.confirm(_snapshot(AppointmentStatus.PENDING))

    assert transition.state.status == AppointmentStatus.CONFIRMED
    assert [(n.recipient_user_id, n.kind) for n in transition.notifications] == [
        (PATIENT_ID, NotificationKind.CONFIRMATION),
    ]


@pytest.mark.parametrize('status', [AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED])
def test_confirm_is_only_legal_from_pending(status: AppointmentStatus) -> None:
    with pytest.raises(InvalidTransition) as exception_info:
        lifecycle.confirm(_snapshot(status))

    assert exception_info.value.current_status == status.value
    assert exception_info.value.action == 'confirm'


@pytest.mark.parametrize(
    ('cancelled_by', 'recipients'),
    [
        (CancelledBy.PATIENT, [PROVIDER_ID]),
        (CancelledBy.PROVIDER, [PATIENT_ID]),
        (CancelledBy.ADMIN, [PATIENT_ID, PROVIDER_ID]),
    ],
)
def test_cancel_notifies_the_counterpart(cancelled_by: CancelledBy, recipients: list[int]) -> None:
    transition = lifecycle.cancel(_snapshot(AppointmentStatus.CONFIRMED), cancelled_by, 'Travelling')

    assert transition.state.status == AppointmentStatus.CANCELLED
    assert transition.state.cancelled_by == cancelled_by
    assert transition.state.cancellation_reason == 'Travelling'
    assert [n.recipient_user_id for n in transition.notifications] == recipients
    assert all(n.kind == NotificationKind.CANCELLATION for n in transition.notifications)
    assert 'Travelling' in transition.notifications[0].message


def test_cancel_is_rejected_once_cancelled() -> None:
    with pytest.raises(InvalidTransition):
        lifecycle.cancel(_snapshot(AppointmentStatus.CANCELLED), CancelledBy.PATIENT)


def test_transitions_do_not_mutate_the_input_snapshot() -> None:
    snapshot = _snapshot(AppointmentStatus.PENDING)

    lifecycle.cancel(snapshot, CancelledBy.PATIENT)

    assert snapshot.status == AppointmentStatus.PENDING


def test_reschedule_keeps_status_and_notifies_old_and_new_provider() -> None:
    new_instant = datetime(2026, 1, 12, 9, 0)
    transition = lifecycle.reschedule(_snapshot(AppointmentStatus.CONFIRMED), 3, new_instant)

    assert transition.state.status == AppointmentStatus.CONFIRMED
    assert transition.state.provider_id == 3
    assert transition.state.instant == new_instant
    assert [n.recipient_user_id for n in transition.notifications] == [PATIENT_ID, 3, PROVIDER_ID]
    assert all(n.kind == NotificationKind.RESCHEDULE for n in transition.notifications)


def test_reschedule_of_cancelled_appointment_is_rejected() -> None:
    with pytest.raises(InvalidTransition):
        lifecycle.reschedule(_snapshot(AppointmentStatus.CANCELLED), PROVIDER_ID, datetime(2026, 1, 12, 9, 0))


@pytest.mark.parametrize('status', [AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED])
def test_edit_keeps_state_and_sends_nothing(status: AppointmentStatus) -> None:
    snapshot = _snapshot(status)

    transition = lifecycle.edit(snapshot)

    assert transition.state == snapshot
    assert transition.notifications == ()


def test_edit_of_cancelled_appointment_is_rejected() -> None:
    with pytest.raises(InvalidTransition) as exc_info:
        lifecycle.edit(_snapshot(AppointmentStatus.CANCELLED))

    assert exc_info.value.detail == 'Cannot edit an appointment that is cancelled.'
