"""Decides when and what to send for each appointment.

Immediate notices (confirmation, cancellation, reschedule) are written with
``sent_at`` already set. A reminder is written unsent and becomes due once the
clock enters ``[instant - lead_time, instant)``; ``sweep`` hands
due reminders to the dispatcher and marks them sent only after a successful
call.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Protocol

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from backend.core import config
from backend.models.appointment import Appointment, AppointmentStatus
from backend.models.notification import NotificationKind, NotificationRecord
from backend.scheduling.lifecycle import NotificationIntent, format_instant

logger = logging.getLogger(__name__)


class Dispatcher(Protocol):
    def send(self, record: NotificationRecord) -> None:
        ...


class LoggingDispatcher:
    """Dispatch channel that only writes the message to the log."""

    def send(self, record: NotificationRecord) -> None:
        logger.info(
            'Dispatching %s notification %s to user %s: %s',
            record.kind.value, record.id, record.recipient_user_id, record.message,
        )


@dataclass
class SweepResult:
    selected: int = 0
    dispatched: int = 0
    failed: int = 0
    skipped: int = 0


class NotificationScheduler:
    def __init__(
        self,
        dispatcher: Dispatcher | None = None,
        clock: Callable[[], datetime] = datetime.now,
        lead_time: timedelta | None = None,
        batch_size: int | None = None,
        claim_ttl: timedelta | None = None,
    ):
        self.dispatcher = dispatcher or LoggingDispatcher()
        self.clock = clock
        self.lead_time = lead_time or timedelta(hours=config.REMINDER_LEAD_HOURS)
        self.batch_size = batch_size or config.REMINDER_SWEEP_BATCH_SIZE
        self.claim_ttl = claim_ttl or timedelta(seconds=config.REMINDER_CLAIM_TTL_SECONDS)

    def on_booked(self, db: Session, appointment: Appointment, now: datetime) -> list[NotificationRecord]:
        """Stage the confirmation and the deferred reminder for a new booking.

        The records join the caller's transaction; nothing is committed here.
        """
        when = format_instant(appointment.instant)
        confirmation = NotificationRecord(
            appointment_id=appointment.id,
            recipient_user_id=appointment.patient_id,
            kind=NotificationKind.CONFIRMATION,
            message=f'Your appointment on {when} has been booked.',
            sent_at=now,
            attempts=1,
        )
        reminder = self._build_reminder(appointment)
        db.add_all([confirmation, reminder])
        return [confirmation]

    def record_intents(
        self,
        db: Session,
        appointment: Appointment,
        intents: Iterable[NotificationIntent],
        now: datetime,
    ) -> list[NotificationRecord]:
        records = [
            NotificationRecord(
                appointment_id=appointment.id,
                recipient_user_id=intent.recipient_user_id,
                kind=intent.kind,
                message=intent.message,
                sent_at=now,
                attempts=1,
            )
            for intent in intents
        ]
        db.add_all(records)
        return records

    def retarget_reminder(self, db: Session, appointment: Appointment, now: datetime) -> NotificationRecord:
        """Point the pending reminder at the appointment's current instant.

        A reminder held by a live sweep claim is left to that sweep and a fresh
        one is created for the new instant.
        """
        stale_before = now - self.claim_ttl
        unclaimed = or_(NotificationRecord.claimed_at.is_(None), NotificationRecord.claimed_at < stale_before)

        reminder = db.query(NotificationRecord).filter(
            NotificationRecord.appointment_id == appointment.id,
            NotificationRecord.kind == NotificationKind.REMINDER,
            NotificationRecord.sent_at.is_(None),
            unclaimed,
        ).order_by(NotificationRecord.id.asc()).first()

        if reminder is not None:
            retargeted = db.execute(
                update(NotificationRecord)
                .where(
                    NotificationRecord.id == reminder.id,
                    NotificationRecord.sent_at.is_(None),
                    unclaimed,
                )
                .values(
                    scheduled_for=appointment.instant - self.lead_time,
                    message=self._reminder_message(appointment),
                    claimed_at=None,
                )
                .execution_options(synchronize_session=False)
            )
            if retargeted.rowcount == 1:
                db.refresh(reminder)
                return reminder

        reminder = self._build_reminder(appointment)
        db.add(reminder)
        return reminder

    def dispatch_immediate(self, records: Iterable[NotificationRecord]) -> None:
        # Called after commit; a failed send never undoes the booking.
        for record in records:
            try:
                self.dispatcher.send(record)
            except Exception:
                logger.exception('Immediate dispatch of notification %s failed', record.id)

    def select_due_reminders(
        self,
        db: Session,
        now: datetime,
        exclude_ids: set[int] | None = None,
    ) -> list[NotificationRecord]:
        stale_before = now - self.claim_ttl
        query = db.query(NotificationRecord).join(
            Appointment, NotificationRecord.appointment_id == Appointment.id,
        ).filter(
            NotificationRecord.kind == NotificationKind.REMINDER,
            NotificationRecord.sent_at.is_(None),
            or_(NotificationRecord.claimed_at.is_(None), NotificationRecord.claimed_at < stale_before),
            Appointment.status != AppointmentStatus.CANCELLED,
            Appointment.instant > now,
            Appointment.instant <= now + self.lead_time,
        )

        if exclude_ids:
            query = query.filter(NotificationRecord.id.not_in(exclude_ids))

        return query.order_by(Appointment.instant.asc(), NotificationRecord.id.asc()).limit(self.batch_size).all()

    def sweep(
        self,
        db: Session,
        now: datetime | None = None,
        should_continue: Callable[[], bool] | None = None,
    ) -> SweepResult:
        """Dispatch every due reminder once.

        Batches are processed until one comes back short. ``should_continue``
        is checked between batches only, so a started batch always finishes.
        """
        now = now or self.clock()
        result = SweepResult()
        attempted: set[int] = set()

        while True:
            batch = self.select_due_reminders(db, now, exclude_ids=attempted)
            result.selected += len(batch)

            for record in batch:
                attempted.add(record.id)
                self._process_reminder(db, record, now, result)

            if len(batch) < self.batch_size:
                break
            if should_continue is not None and not should_continue():
                break

        logger.info(
            'Reminder sweep at %s: selected=%s dispatched=%s failed=%s skipped=%s',
            now, result.selected, result.dispatched, result.failed, result.skipped,
        )
        return result

    def _process_reminder(self, db: Session, record: NotificationRecord, now: datetime, result: SweepResult) -> None:
        record_id = record.id
        if not self._claim(db, record_id, now):
            result.skipped += 1
            return

        db.refresh(record)
        appointment = db.get(Appointment, record.appointment_id, populate_existing=True)
        if appointment is None or appointment.status == AppointmentStatus.CANCELLED:
            # Cancelled after selection; release the claim without sending.
            record.claimed_at = None
            db.commit()
            result.skipped += 1
            return

        try:
            self.dispatcher.send(record)
        except Exception as exc:
            logger.exception('Dispatch of reminder %s failed; it stays pending', record_id)
            record.attempts = (record.attempts or 0) + 1
            record.last_error = str(exc)
            record.claimed_at = None
            db.commit()
            result.failed += 1
            return

        record.sent_at = now
        record.attempts = (record.attempts or 0) + 1
        record.last_error = None
        db.commit()
        result.dispatched += 1

    def _claim(self, db: Session, record_id: int, now: datetime) -> bool:
        stale_before = now - self.claim_ttl
        claimed = db.execute(
            update(NotificationRecord)
            .where(
                NotificationRecord.id == record_id,
                NotificationRecord.sent_at.is_(None),
                or_(NotificationRecord.claimed_at.is_(None), NotificationRecord.claimed_at < stale_before),
            )
            .values(claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return claimed.rowcount == 1

    def _build_reminder(self, appointment: Appointment) -> NotificationRecord:
        return NotificationRecord(
            appointment_id=appointment.id,
            recipient_user_id=appointment.patient_id,
            kind=NotificationKind.REMINDER,
            message=self._reminder_message(appointment),
            scheduled_for=appointment.instant - self.lead_time,
            sent_at=None,
            attempts=0,
        )

    @staticmethod
    def _reminder_message(appointment: Appointment) -> str:
        return f'Reminder: you have an appointment on {format_instant(appointment.instant)}.'


def list_notifications_for_user(db: Session, user_id: int) -> list[NotificationRecord]:
    return db.query(NotificationRecord).filter(
        NotificationRecord.recipient_user_id == user_id,
    ).order_by(NotificationRecord.created_at.desc(), NotificationRecord.id.desc()).all()


def list_notifications_for_appointment(db: Session, appointment_id: int) -> list[NotificationRecord]:
    return db.query(NotificationRecord).filter(
        NotificationRecord.appointment_id == appointment_id,
    ).order_by(NotificationRecord.created_at.desc(), NotificationRecord.id.desc()).all()


def count_notifications_for_user(db: Session, user_id: int, unsent_only: bool = False) -> int:
    query = db.query(NotificationRecord).filter(NotificationRecord.recipient_user_id == user_id)
    if unsent_only:
        query = query.filter(NotificationRecord.sent_at.is_(None))
    return query.count()
