import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./hospital.db")
DB_ECHO = _get_bool(os.getenv("DB_ECHO"), default=False)
DB_POOL_SIZE = _get_int(os.getenv("DB_POOL_SIZE"), 10)
DB_CONNECT_TIMEOUT_SECONDS = _get_int(os.getenv("DB_CONNECT_TIMEOUT_SECONDS"), 30)
DB_RETRY_ATTEMPTS = _get_int(os.getenv("DB_RETRY_ATTEMPTS"), 3)
DB_RETRY_DELAY_MS = _get_int(os.getenv("DB_RETRY_DELAY_MS"), 100)
DB_LOCK_TIMEOUT_MS = _get_int(os.getenv("DB_LOCK_TIMEOUT_MS"), 5000)

DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "BDT").strip().upper()
FEE_TOLERANCE = os.getenv("FEE_TOLERANCE", "0.01")

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = _get_int(os.getenv("JWT_EXPIRES_MINUTES"), 60 * 24 * 7)

CORS_ALLOWED_ORIGINS = _get_list(
    os.getenv("CORS_ALLOWED_ORIGINS"),
    ["http://localhost:5173", "http://localhost:3000"],
)


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
