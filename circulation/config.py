import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # Database settings
    database_file: str = os.getenv("LIBRARY_DB_FILE") or os.getenv("LIBRARY_DATA_FILE", "library.db")
    # Seconds to wait for the writer lock / a SQLite write lock before failing with BusyError
    lock_timeout: float = float(os.getenv("LOCK_TIMEOUT", "0.5"))
    busy_timeout: float = float(os.getenv("BUSY_TIMEOUT", "0.5"))

    # Circulation rules
    borrow_limit: int = int(os.getenv("BORROW_LIMIT", "10"))
    grace_period_days: int = int(os.getenv("GRACE_PERIOD_DAYS", "14"))
    fine_per_day: float = float(os.getenv("FINE_PER_DAY", "2.0"))
    currency: str = os.getenv("FINE_CURRENCY", "Rs.")

    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Library Circulation")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _env_bool("DEBUG", "False")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # CLI output: plain | json | rich
    default_output: str = os.getenv("LIB_CLI_OUTPUT", "plain")


settings = Settings()
