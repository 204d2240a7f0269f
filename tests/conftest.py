import os
from datetime import date, datetime, time, timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret-key-with-at-least-32-bytes')

from backend.database import Base  # noqa: E402
from backend.models import appointment, availability, notification  # noqa: E402,F401
from backend.models.availability import DayOfWeek  # noqa: E402
from backend.models.user import User, UserRole  # noqa: E402
from backend.scheduling.booking import BookingArbiter  # noqa: E402
from backend.scheduling.definitions import create_definition  # noqa: E402
from backend.scheduling.notifications import NotificationScheduler  # noqa: E402

# Thursday morning; the first Monday after it is 2026-01-05.
NOW = datetime(2026, 1, 1, 8, 0)
NEXT_MONDAY = date(2026, 1, 5)


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingDispatcher:
    def __init__(self):
        self.sent = []
        self.failing_ids = set()

    def send(self, record) -> None:
        if record.id in self.failing_ids:
            raise RuntimeError('SMS gateway unavailable')
        self.sent.append((record.id, record.kind, record.recipient_user_id))


@pytest.fixture
def db_engine():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def people(db):
    patient = User(email='patient@example.com', full_name='Pat Doe', role=UserRole.PATIENT.value)
    other_patient = User(email='second@example.com', full_name='Sam Roe', role=UserRole.PATIENT.value)
    provider = User(email='doctor@example.com', full_name='Dr. Martin', role=UserRole.PROVIDER.value)
    other_provider = User(email='other.doctor@example.com', full_name='Dr. Lee', role=UserRole.PROVIDER.value)
    admin = User(email='admin@example.com', full_name='Admin', role=UserRole.ADMIN.value)
    db.add_all([patient, other_patient, provider, other_provider, admin])
    db.commit()

    return SimpleNamespace(
        patient=patient,
        other_patient=other_patient,
        provider=provider,
        other_provider=other_provider,
        admin=admin,
    )


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def notifier(dispatcher, clock):
    return NotificationScheduler(
        dispatcher=dispatcher,
        clock=clock,
        lead_time=timedelta(hours=24),
        batch_size=10,
        claim_ttl=timedelta(minutes=5),
    )


@pytest.fixture
def arbiter(notifier, clock):
    return BookingArbiter(notifier, clock=clock, cancelled_occupy=False)


@pytest.fixture
def monday_definition(db, people):
    return create_definition(db, people.provider.id, DayOfWeek.MONDAY, time(9, 0), time(12, 0), 30)
