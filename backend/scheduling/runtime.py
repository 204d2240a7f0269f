"""Process-wide engine instances and their FastAPI dependencies."""

from backend.core import config
from backend.database import SessionLocal
from backend.scheduling.booking import BookingArbiter
from backend.scheduling.notifications import NotificationScheduler
from backend.scheduling.sweeper import ReminderSweeper

notification_scheduler = NotificationScheduler()
booking_arbiter = BookingArbiter(notification_scheduler)
reminder_sweeper = ReminderSweeper(
    SessionLocal,
    notification_scheduler,
    interval_seconds=config.REMINDER_SWEEP_INTERVAL_SECONDS,
)


def get_booking_arbiter() -> BookingArbiter:
    return booking_arbiter


def get_notification_scheduler() -> NotificationScheduler:
    return notification_scheduler
