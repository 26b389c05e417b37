from __future__ import annotations

import os

APP_VERSION = "1.4.0"

_DEFAULT_SECRET_KEYS = {"change-me-in-production", ""}


def _env_bool(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Settings:
    PROJECT_NAME: str = "Freeboard"
    API_V1_PREFIX: str = "/api/v1"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "production").lower()
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    POSTGRES_HOST: str = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT: str = os.getenv("POSTGRES_PORT", "5432")
    POSTGRES_DB: str = os.getenv("POSTGRES_DB", "freeboard")
    POSTGRES_USER: str = os.getenv("POSTGRES_USER", "freeboard")
    POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "freeboard")
    # Full SQLAlchemy URL; takes precedence over the POSTGRES_* parts when set
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")

    # Ignored for SQLite URLs, which run on a single shared connection
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "10"))
    DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    DB_POOL_TIMEOUT: int = int(os.getenv("DB_POOL_TIMEOUT", "30"))
    DB_POOL_RECYCLE: int = int(os.getenv("DB_POOL_RECYCLE", "1800"))

    RESET_DB: bool = _env_bool("RESET_DB")

    SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me-in-production")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "120"))

    ALLOWED_ORIGINS: list[str] = [
        o.strip()
        for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173").split(",")
        if o.strip()
    ]

    # Policy defaults. Persisted overrides in the policies table win over these.
    AUTH_REGISTRATION_MODE: str = os.getenv("AUTH_REGISTRATION_MODE", "disabled")
    AUTH_REGISTRATION_DEFAULT_ROLE: str = os.getenv("AUTH_REGISTRATION_DEFAULT_ROLE", "viewer")
    AUTH_EDITOR_CAN_PUBLISH: bool = _env_bool("AUTH_EDITOR_CAN_PUBLISH")
    DASHBOARD_DEFAULT_VISIBILITY: str = os.getenv("DASHBOARD_DEFAULT_VISIBILITY", "private")
    DASHBOARD_PUBLIC_LISTING_ENABLED: bool = _env_bool("DASHBOARD_PUBLIC_LISTING_ENABLED")
    EXECUTION_MODE: str = os.getenv("EXECUTION_MODE", "safe")
    # Deployment-time only; never persisted
    POLICY_EDIT_LOCK: bool = _env_bool("POLICY_EDIT_LOCK")

    SHARE_TOKEN_RATE_LIMIT: str = os.getenv("SHARE_TOKEN_RATE_LIMIT", "60/minute")

    # Bootstrap administrator, created at startup when no active admin exists
    ADMIN_EMAIL: str = os.getenv("ADMIN_EMAIL", "")
    ADMIN_PASSWORD: str = os.getenv("ADMIN_PASSWORD", "")

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


settings = Settings()
