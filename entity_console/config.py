from __future__ import annotations

import os

APP_VERSION = "0.3.0"


class Settings:
    PROJECT_NAME: str = "Entity Console"

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Record service (descriptions + CRUD endpoints)
    RECORD_SERVICE_URL: str = os.getenv("RECORD_SERVICE_URL", "http://localhost:7001")
    RECORD_SERVICE_TOKEN: str = os.getenv("RECORD_SERVICE_TOKEN", "")
    RECORD_SERVICE_TIMEOUT: float = float(os.getenv("RECORD_SERVICE_TIMEOUT", "30"))

    # Column visibility / page size preferences
    PREFERENCES_DB_URL: str = os.getenv(
        "PREFERENCES_DB_URL", "sqlite+aiosqlite:///./entity_console.db"
    )

    DEFAULT_PAGE_SIZE: int = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
    TEXT_MAX_LENGTH: int = int(os.getenv("TEXT_MAX_LENGTH", "50"))

    DISPLAY_TIMEZONE: str = os.getenv("DISPLAY_TIMEZONE", "UTC")
    LOCALE: str = os.getenv("LOCALE", "en")


settings = Settings()
