import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.database import Base, engine, ensure_scheduling_schema
from backend.models import appointment, availability, notification, user  # noqa: F401
from backend.routes import appointment_routes, availability_routes, notification_routes
from backend.scheduling.runtime import reminder_sweeper

config.validate_runtime_config()

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_scheduling_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and Postgres credentials.')


@app.on_event('startup')
def start_reminder_sweeper() -> None:
    if config.REMINDER_SWEEP_ENABLED:
        reminder_sweeper.start()


@app.on_event('shutdown')
def stop_reminder_sweeper() -> None:
    reminder_sweeper.stop()


@app.get('/')
def root():
    return {'status': 'Scheduling API Running'}


app.include_router(availability_routes.router, prefix='/availability')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(notification_routes.router, prefix='/notifications')
