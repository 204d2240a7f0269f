"""Creates and moves appointments, and applies lifecycle transitions.

"One occupying appointment per (provider, instant)" is held in two layers. A
query before the write turns the common case into a clear ``SlotConflict``.
The ``uq_appointment_occupied_slot`` constraint decides concurrent races; its
violation is caught at commit and raised as the same ``SlotConflict``.

Status changes are written with a conditional UPDATE on the status that was
read, so of two concurrent transitions on one appointment only one applies.
"""

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.exceptions import InvalidTransition, NotFound, SlotConflict, ValidationError
from backend.models.appointment import Appointment, AppointmentStatus, CancelledBy
from backend.models.notification import NotificationRecord
from backend.scheduling import lifecycle
from backend.scheduling.availability import defined_instants, is_occupying, occupying_statuses
from backend.scheduling.directory import get_patient, get_provider
from backend.scheduling.notifications import NotificationScheduler

logger = logging.getLogger(__name__)

SLOT_CONSTRAINT_NAME = 'uq_appointment_occupied_slot'


def is_slot_constraint_violation(error: IntegrityError) -> bool:
    message = str(getattr(error, 'orig', error))
    return SLOT_CONSTRAINT_NAME in message or 'appointments.provider_id, appointments.instant' in message


def normalize_reason(reason: str | None) -> str | None:
    if reason is None:
        return None

    normalized = reason.strip()
    if not normalized:
        return None

    if len(normalized) > config.MAX_REASON_LENGTH:
        raise ValidationError(f'Reason must be {config.MAX_REASON_LENGTH} characters or fewer.')

    return normalized


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFound('Appointment', appointment_id)
    return appointment


def list_appointments(db: Session, status: AppointmentStatus | None = None) -> list[Appointment]:
    query = db.query(Appointment)
    if status is not None:
        query = query.filter(Appointment.status == status)
    return query.order_by(Appointment.instant.asc(), Appointment.id.asc()).all()


def list_appointments_for_patient(
    db: Session,
    patient_id: int,
    status: AppointmentStatus | None = None,
) -> list[Appointment]:
    query = db.query(Appointment).filter(Appointment.patient_id == patient_id)
    if status is not None:
        query = query.filter(Appointment.status == status)
    return query.order_by(Appointment.instant.asc()).all()


def list_appointments_for_provider(
    db: Session,
    provider_id: int,
    status: AppointmentStatus | None = None,
) -> list[Appointment]:
    query = db.query(Appointment).filter(Appointment.provider_id == provider_id)
    if status is not None:
        query = query.filter(Appointment.status == status)
    return query.order_by(Appointment.instant.asc()).all()


def snapshot_of(appointment: Appointment) -> lifecycle.AppointmentSnapshot:
    return lifecycle.AppointmentSnapshot(
        patient_id=appointment.patient_id,
        provider_id=appointment.provider_id,
        instant=appointment.instant,
        status=appointment.status,
        cancelled_by=appointment.cancelled_by,
        cancellation_reason=appointment.cancellation_reason,
    )


class BookingArbiter:
    """Sole writer of appointment state."""

    def __init__(
        self,
        notifier: NotificationScheduler | None = None,
        clock: Callable[[], datetime] | None = None,
        cancelled_occupy: bool | None = None,
    ):
        self.notifier = notifier or NotificationScheduler()
        self.clock = clock or self.notifier.clock
        self.cancelled_occupy = (
            config.CANCELLED_APPOINTMENTS_OCCUPY_SLOT if cancelled_occupy is None else cancelled_occupy
        )

    def _occupies(self, status: AppointmentStatus) -> bool | None:
        # NULL instead of False keeps non-occupying rows out of the unique constraint.
        return True if is_occupying(status, self.cancelled_occupy) else None

    @staticmethod
    def _require_future(instant: datetime, now: datetime) -> None:
        if instant <= now:
            raise ValidationError('Appointments must be scheduled in the future.')

    @staticmethod
    def _require_defined_instant(db: Session, provider_id: int, instant: datetime) -> None:
        if instant.time() not in defined_instants(db, provider_id, instant.date()):
            raise ValidationError('The provider is not available at this time.')

    def find_occupying_appointment(
        self,
        db: Session,
        provider_id: int,
        instant: datetime,
        exclude_id: int | None = None,
    ) -> Appointment | None:
        query = db.query(Appointment).filter(
            Appointment.provider_id == provider_id,
            Appointment.instant == instant,
            Appointment.status.in_(occupying_statuses(self.cancelled_occupy)),
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.first()

    def _commit_slot_write(self, db: Session, provider_id: int, instant: datetime) -> None:
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if not is_slot_constraint_violation(exc):
                raise
            logger.info('Slot %s for provider %s lost a concurrent race', instant, provider_id)
            raise SlotConflict(provider_id, instant) from exc

    def book(
        self,
        db: Session,
        patient_id: int,
        provider_id: int,
        instant: datetime,
        reason: str | None = None,
    ) -> Appointment:
        now = self.clock()
        self._require_future(instant, now)

        reason = normalize_reason(reason)
        get_patient(db, patient_id)
        get_provider(db, provider_id)
        self._require_defined_instant(db, provider_id, instant)

        if self.find_occupying_appointment(db, provider_id, instant):
            logger.info('Slot %s for provider %s is already booked', instant, provider_id)
            raise SlotConflict(provider_id, instant)

        appointment = Appointment(
            patient_id=patient_id,
            provider_id=provider_id,
            instant=instant,
            reason=reason,
            status=AppointmentStatus.PENDING,
            occupies_slot=self._occupies(AppointmentStatus.PENDING),
        )
        try:
            db.add(appointment)
            db.flush()
        except IntegrityError as exc:
            db.rollback()
            if not is_slot_constraint_violation(exc):
                raise
            raise SlotConflict(provider_id, instant) from exc

        immediate = self.notifier.on_booked(db, appointment, now)
        self._commit_slot_write(db, provider_id, instant)
        db.refresh(appointment)

        logger.info('Booked appointment %s for patient %s with provider %s at %s',
                    appointment.id, patient_id, provider_id, instant)
        self.notifier.dispatch_immediate(immediate)
        return appointment

    def _write_transition(
        self,
        db: Session,
        appointment: Appointment,
        expected_status: AppointmentStatus,
        action: lifecycle.Action,
        **values,
    ) -> None:
        """Apply ``values`` only while the row still holds ``expected_status``.

        A concurrent transition that committed after our read leaves no row to
        update; the loser sees ``InvalidTransition`` against the current state.
        """
        written = db.execute(
            update(Appointment)
            .where(Appointment.id == appointment.id, Appointment.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if written.rowcount != 1:
            db.rollback()
            logger.info('Appointment %s changed concurrently; %s rejected', appointment.id, action.value)
            raise InvalidTransition(appointment.status.value, action.value)

        db.refresh(appointment)

    def reschedule(
        self,
        db: Session,
        appointment_id: int,
        new_instant: datetime,
        new_provider_id: int | None = None,
    ) -> Appointment:
        now = self.clock()
        appointment = get_appointment(db, appointment_id)
        provider_id = new_provider_id if new_provider_id is not None else appointment.provider_id

        snapshot = snapshot_of(appointment)
        transition = lifecycle.reschedule(snapshot, provider_id, new_instant)

        self._require_future(new_instant, now)
        if provider_id != appointment.provider_id:
            get_provider(db, provider_id)
        self._require_defined_instant(db, provider_id, new_instant)

        if self.find_occupying_appointment(db, provider_id, new_instant, exclude_id=appointment.id):
            logger.info('Cannot move appointment %s: slot %s for provider %s is taken',
                        appointment.id, new_instant, provider_id)
            raise SlotConflict(provider_id, new_instant)

        # Updating the same row frees the old instant in the same transaction.
        try:
            self._write_transition(
                db,
                appointment,
                snapshot.status,
                lifecycle.Action.RESCHEDULE,
                provider_id=transition.state.provider_id,
                instant=transition.state.instant,
            )
        except IntegrityError as exc:
            db.rollback()
            if not is_slot_constraint_violation(exc):
                raise
            logger.info('Move of appointment %s to slot %s for provider %s lost a concurrent race',
                        appointment_id, new_instant, provider_id)
            raise SlotConflict(provider_id, new_instant) from exc

        records = self.notifier.record_intents(db, appointment, transition.notifications, now)
        self.notifier.retarget_reminder(db, appointment, now)
        self._commit_slot_write(db, provider_id, new_instant)
        db.refresh(appointment)

        logger.info('Moved appointment %s to provider %s at %s', appointment.id, provider_id, new_instant)
        self.notifier.dispatch_immediate(records)
        return appointment

    def confirm(self, db: Session, appointment_id: int) -> Appointment:
        now = self.clock()
        appointment = get_appointment(db, appointment_id)
        snapshot = snapshot_of(appointment)
        transition = lifecycle.confirm(snapshot)

        self._write_transition(
            db,
            appointment,
            snapshot.status,
            lifecycle.Action.CONFIRM,
            status=transition.state.status,
        )
        records = self.notifier.record_intents(db, appointment, transition.notifications, now)
        db.commit()
        db.refresh(appointment)

        logger.info('Confirmed appointment %s', appointment.id)
        self.notifier.dispatch_immediate(records)
        return appointment

    def cancel(
        self,
        db: Session,
        appointment_id: int,
        cancelled_by: CancelledBy,
        reason: str | None = None,
    ) -> Appointment:
        now = self.clock()
        appointment = get_appointment(db, appointment_id)
        reason = normalize_reason(reason)
        snapshot = snapshot_of(appointment)
        transition = lifecycle.cancel(snapshot, cancelled_by, reason)

        self._write_transition(
            db,
            appointment,
            snapshot.status,
            lifecycle.Action.CANCEL,
            status=transition.state.status,
            cancelled_by=transition.state.cancelled_by,
            cancellation_reason=transition.state.cancellation_reason,
            occupies_slot=self._occupies(transition.state.status),
        )
        records: list[NotificationRecord] = self.notifier.record_intents(
            db, appointment, transition.notifications, now,
        )
        db.commit()
        db.refresh(appointment)

        logger.info('Cancelled appointment %s (by %s)', appointment.id, cancelled_by.value)
        self.notifier.dispatch_immediate(records)
        return appointment

    def update_reason(self, db: Session, appointment_id: int, reason: str | None) -> Appointment:
        appointment = get_appointment(db, appointment_id)
        reason = normalize_reason(reason)
        snapshot = snapshot_of(appointment)
        lifecycle.edit(snapshot)

        self._write_transition(db, appointment, snapshot.status, lifecycle.Action.EDIT, reason=reason)
        db.commit()
        db.refresh(appointment)

        logger.info('Updated reason of appointment %s', appointment.id)
        return appointment
