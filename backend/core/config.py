import os



def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)

APP_ENV = os.getenv("APP_ENV", "development")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:4200").split(",")
    if origin.strip()
]

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

DEFAULT_GRANULARITY_MINUTES = _get_int(os.getenv("DEFAULT_GRANULARITY_MINUTES"), 30)
MIN_GRANULARITY_MINUTES = _get_int(os.getenv("MIN_GRANULARITY_MINUTES"), 15)
MAX_GRANULARITY_MINUTES = _get_int(os.getenv("MAX_GRANULARITY_MINUTES"), 120)
MAX_REASON_LENGTH = _get_int(os.getenv("MAX_REASON_LENGTH"), 500)

# Whether a cancelled appointment keeps blocking its (provider, instant) slot.
CANCELLED_APPOINTMENTS_OCCUPY_SLOT = _get_bool(
    os.getenv("CANCELLED_APPOINTMENTS_OCCUPY_SLOT"),
    default=False,
)

REMINDER_LEAD_HOURS = _get_int(os.getenv("REMINDER_LEAD_HOURS"), 24)
REMINDER_SWEEP_ENABLED = _get_bool(os.getenv("REMINDER_SWEEP_ENABLED"), default=True)
REMINDER_SWEEP_INTERVAL_SECONDS = _get_int(os.getenv("REMINDER_SWEEP_INTERVAL_SECONDS"), 3600)
REMINDER_SWEEP_BATCH_SIZE = _get_int(os.getenv("REMINDER_SWEEP_BATCH_SIZE"), 100)
REMINDER_CLAIM_TTL_SECONDS = _get_int(os.getenv("REMINDER_CLAIM_TTL_SECONDS"), 300)

def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if not MIN_GRANULARITY_MINUTES <= DEFAULT_GRANULARITY_MINUTES <= MAX_GRANULARITY_MINUTES:
        raise RuntimeError("DEFAULT_GRANULARITY_MINUTES must lie between the configured bounds.")
