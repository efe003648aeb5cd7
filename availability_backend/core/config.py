import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    return float(value)


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./availability.db")

CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:8081,http://localhost:19006").split(",")
    if origin.strip()
]

DEFAULT_RADIUS_MILES = _get_float(os.getenv("DEFAULT_RADIUS_MILES"), 5.0)

GEOCODING_ENABLED = _get_bool(os.getenv("GEOCODING_ENABLED"), default=True)
GEOCODER_URL = os.getenv("GEOCODER_URL", "https://nominatim.openstreetmap.org/search")
GEOCODER_USER_AGENT = os.getenv("GEOCODER_USER_AGENT", "availability-backend/dev")
GEOCODER_TIMEOUT_SECONDS = _get_float(os.getenv("GEOCODER_TIMEOUT_SECONDS"), 5.0)
GEOCODER_RESULT_LIMIT = int(os.getenv("GEOCODER_RESULT_LIMIT", "1"))


def validate_runtime_config() -> None:
    if DEFAULT_RADIUS_MILES <= 0:
        raise RuntimeError("DEFAULT_RADIUS_MILES must be a positive number.")
    if GEOCODER_TIMEOUT_SECONDS <= 0:
        raise RuntimeError("GEOCODER_TIMEOUT_SECONDS must be a positive number.")
    if APP_ENV.lower() == "production" and GEOCODING_ENABLED and GEOCODER_USER_AGENT.endswith("/dev"):
        raise RuntimeError("GEOCODER_USER_AGENT must identify the deployment in production.")
