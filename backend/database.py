import os
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL")

engine = create_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_scheduling_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_scheduling_schema(bind=None) -> None:
    global _scheduling_schema_checked

    if _scheduling_schema_checked:
        return

    with _schema_lock:
        if _scheduling_schema_checked:
            return

        bind = bind or engine
        inspector = inspect(bind)
        table_names = set(inspector.get_table_names())

        index_statements = []
        if 'availability_definitions' in table_names:
            index_statements.append(
                'CREATE INDEX IF NOT EXISTS idx_definitions_provider_day '
                'ON availability_definitions(provider_id, day_of_week)'
            )
        if 'appointments' in table_names:
            index_statements.append(
                'CREATE INDEX IF NOT EXISTS idx_appointments_provider_instant '
                'ON appointments(provider_id, instant)'
            )
            index_statements.append(
                'CREATE INDEX IF NOT EXISTS idx_appointments_patient_instant '
                'ON appointments(patient_id, instant)'
            )
        if 'notifications' in table_names:
            index_statements.append(
                'CREATE INDEX IF NOT EXISTS idx_notifications_kind_sent '
                'ON notifications(kind, sent_at)'
            )

        with bind.begin() as connection:
            for statement in index_statements:
                connection.execute(text(statement))

        _scheduling_schema_checked = True
