"""
Application configuration module.

Loads settings from environment variables (or .env file) using pydantic-settings.
All sensitive values (DB credentials) come from environment — never hardcoded.
"""

from decimal import Decimal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the AgroFund marketplace service.

    Environment variables are loaded automatically from .env if present.
    In production, these should be injected via the container orchestrator
    (e.g., Kubernetes Secrets, AWS Parameter Store).
    """

    PROJECT_NAME: str = "AgroFund Marketplace API"
    API_V1_STR: str = "/api/v1"

    # ── SQLite mode (no external DB required) ──
    USE_SQLITE: bool = False

    # ── PostgreSQL connection parameters ──
    # Empty defaults so USE_SQLITE=true works without dummy PG variables;
    # the validator below restores fail-fast behaviour in PostgreSQL mode.
    POSTGRES_USER: str = ""
    POSTGRES_PASSWORD: str = ""
    POSTGRES_SERVER: str = ""
    POSTGRES_DB: str = ""
    POSTGRES_PORT: int = 5432

    @model_validator(mode="after")
    def _require_pg_credentials_unless_sqlite(self) -> "Settings":
        """Fail fast if PostgreSQL credentials are missing in production mode."""
        if not self.USE_SQLITE:
            missing = [
                name
                for name in (
                    "POSTGRES_USER",
                    "POSTGRES_PASSWORD",
                    "POSTGRES_SERVER",
                    "POSTGRES_DB",
                )
                if not getattr(self, name)
            ]
            if missing:
                vars_list = ", ".join(missing)
                raise ValueError(
                    f"PostgreSQL mode requires these environment variables: "
                    f"{vars_list}.\n\n"
                    f"Set them in a .env file or export them before starting:\n"
                    f"       POSTGRES_USER=agrofund\n"
                    f"       POSTGRES_PASSWORD=agrofund\n"
                    f"       POSTGRES_SERVER=127.0.0.1\n"
                    f"       POSTGRES_DB=agrofund\n\n"
                    f"Or skip PostgreSQL entirely (in-memory SQLite):\n"
                    f"       USE_SQLITE=true uvicorn agrofund.main:app"
                )
        return self

    # ── Connection pool tuning ──
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30  # seconds to wait for a connection from the pool
    DB_POOL_RECYCLE: int = 1800  # seconds before a connection is recycled

    # ── CORS ──
    # Comma-separated list of allowed origins. "*" in dev, restrict in prod.
    CORS_ORIGINS: str = "*"

    # ── Logging ──
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = ""  # empty: <project root>/logs
    LOG_FILE_MAX_BYTES: int = 10 * 1024 * 1024
    LOG_FILE_BACKUP_COUNT: int = 5

    # ── Response cache ──
    CACHE_TTL: float = 300.0  # five minutes, matching the dashboard refresh window
    CACHE_MAX_SIZE: int = 1000
    CACHE_ENABLED: bool = True

    # ── Circuit breaker (database) ──
    CB_FAILURE_THRESHOLD: int = 5
    CB_RECOVERY_TIMEOUT: float = 30.0

    # ── Auth sessions ──
    SESSION_TTL_HOURS: int = 24 * 7

    # ── Object storage ──
    STORAGE_DIR: str = "storage"
    STORAGE_PUBLIC_URL: str = "/storage"
    MAX_UPLOAD_BYTES: int = 5 * 1024 * 1024

    # ── Investment bounds (₦) ──
    MIN_INVESTMENT: Decimal = Decimal("1000")
    MAX_INVESTMENT: Decimal = Decimal("10000000")

    # ── Realtime ──
    REALTIME_QUEUE_SIZE: int = 256
    REALTIME_RETRY_DELAY: float = 3.0

    @property
    def DATABASE_URL(self) -> str:
        """Construct the async database DSN.

        Returns an in-memory SQLite URL when ``USE_SQLITE`` is enabled,
        otherwise a PostgreSQL DSN for asyncpg.
        """
        if self.USE_SQLITE:
            return "sqlite+aiosqlite://"
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
