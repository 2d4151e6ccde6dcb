import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic_scheduler.db")
DATABASE_ECHO = _get_bool(os.getenv("DATABASE_ECHO"), default=False)

CORS_ORIGINS = _get_list(os.getenv("CORS_ORIGINS"), default=["http://localhost:3000"])

# Clinic-local wall-clock zone used when a clinic row carries no timezone.
DEFAULT_CLINIC_TIMEZONE = os.getenv("DEFAULT_CLINIC_TIMEZONE", "Asia/Kolkata")

BOOKING_RANGE_DAYS = int(os.getenv("BOOKING_RANGE_DAYS", "60"))
MAX_NOTE_LENGTH = int(os.getenv("MAX_NOTE_LENGTH", "600"))

SCHEDULER_API_URL = os.getenv("SCHEDULER_API_URL", "http://localhost:8000")
SCHEDULER_API_TIMEOUT_SECONDS = float(os.getenv("SCHEDULER_API_TIMEOUT_SECONDS", "10"))


def validate_runtime_config() -> None:
    try:
        ZoneInfo(DEFAULT_CLINIC_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise RuntimeError(f"DEFAULT_CLINIC_TIMEZONE is not a known timezone: {DEFAULT_CLINIC_TIMEZONE!r}") from exc

    if APP_ENV.lower() == "production" and DATABASE_URL.startswith("sqlite"):
        raise RuntimeError("DATABASE_URL must point to a server database in production.")

    if BOOKING_RANGE_DAYS < 1:
        raise RuntimeError("BOOKING_RANGE_DAYS must be at least 1.")
