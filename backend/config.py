"""
AirTrack configuration — all environment variables in one place.

Read from environment at runtime. Never hardcode secrets.
"""

from __future__ import annotations

import os


class Settings:
    """Application settings from environment variables."""

    # Document store: "memory" for local development and tests, "postgres" for deployment
    STORE_BACKEND: str = os.environ.get("STORE_BACKEND", "memory")

    # Database
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "")

    # Auth
    JWT_SECRET: str = os.environ.get("JWT_SECRET", "")
    JWT_ALGORITHM: str = os.environ.get("JWT_ALGORITHM", "HS256")
    JWT_EXPIRY_HOURS: int = 24

    # Record views
    DEFAULT_PAGE_SIZE: int = int(os.environ.get("DEFAULT_PAGE_SIZE", "10"))
    OPTIMISTIC_EDIT_STALE_SECONDS: float = float(os.environ.get("OPTIMISTIC_EDIT_STALE_SECONDS", "10"))

    # Chat and notifications
    NOTIFICATION_FEED_LIMIT: int = int(os.environ.get("NOTIFICATION_FEED_LIMIT", "20"))
    GLOBAL_CHAT_ROOM_ID: str = os.environ.get("GLOBAL_CHAT_ROOM_ID", "global_chat_room")

    # CSV import
    IMPORT_MAX_ROWS: int = int(os.environ.get("IMPORT_MAX_ROWS", "5000"))
    IMPORTS_PER_HOUR: int = int(os.environ.get("IMPORTS_PER_HOUR", "20"))

    # Application
    ENVIRONMENT: str = os.environ.get("ENVIRONMENT", "development")

    @property
    def uses_postgres(self) -> bool:
        return self.STORE_BACKEND == "postgres"


# Singleton instance
settings = Settings()

# Validate required settings (skip in test mode)
_testing = os.environ.get("TESTING", "").lower() == "true"

if settings.STORE_BACKEND not in ("memory", "postgres"):
    raise RuntimeError(f"STORE_BACKEND must be 'memory' or 'postgres', got {settings.STORE_BACKEND!r}")
if not settings.JWT_SECRET:
    raise RuntimeError("JWT_SECRET environment variable is required")

if not _testing:
    if settings.uses_postgres and not settings.DATABASE_URL:
        raise RuntimeError("DATABASE_URL environment variable is required when STORE_BACKEND=postgres")
    if settings.ENVIRONMENT == "production" and not settings.uses_postgres:
        raise RuntimeError("STORE_BACKEND=postgres is required in production")
