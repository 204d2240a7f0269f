"""Periodic background task that runs the reminder sweep."""

import logging
from datetime import datetime
from threading import Event, Thread
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.scheduling.notifications import NotificationScheduler, SweepResult

logger = logging.getLogger(__name__)


class ReminderSweeper:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        scheduler: NotificationScheduler,
        interval_seconds: float,
        clock: Callable[[], datetime] | None = None,
    ):
        self.session_factory = session_factory
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds
        self.clock = clock or scheduler.clock
        self._stop_event = Event()
        self._thread: Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> SweepResult:
        db = self.session_factory()
        try:
            return self.scheduler.sweep(
                db,
                now=self.clock(),
                should_continue=lambda: not self._stop_event.is_set(),
            )
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    def start(self) -> None:
        if self.running:
            return

        self._stop_event.clear()
        self._thread = Thread(target=self._loop, name='reminder-sweeper', daemon=True)
        self._thread.start()
        logger.info('Reminder sweeper started (interval %ss)', self.interval_seconds)

    def stop(self, timeout: float | None = None) -> None:
        """Ask the loop to exit; a sweep already running completes its batch."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info('Reminder sweeper stopped')

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except SQLAlchemyError:
                logger.exception('Reminder sweep failed; retrying on the next interval')

            self._stop_event.wait(self.interval_seconds)
