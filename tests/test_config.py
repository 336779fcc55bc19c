"""
Unit tests for the application configuration (Settings).

Tests cover:
- Defaults the marketplace rules depend on
- DATABASE_URL for SQLite and PostgreSQL
- PostgreSQL credential validation
- Environment overrides
"""

from decimal import Decimal

import pytest

from agrofund.core.config import Settings, settings

_PG_VARS = ("USE_SQLITE", "POSTGRES_USER", "POSTGRES_PASSWORD", "POSTGRES_SERVER", "POSTGRES_DB")


class TestSettingsDefaults:
    def test_project_name(self):
        assert settings.PROJECT_NAME == "AgroFund Marketplace API"
        assert settings.API_V1_STR == "/api/v1"

    def test_tests_run_on_sqlite(self):
        assert settings.USE_SQLITE is True

    def test_investment_bounds(self):
        assert settings.MIN_INVESTMENT == Decimal("1000")
        assert settings.MAX_INVESTMENT == Decimal("10000000")

    def test_upload_limit_is_five_megabytes(self):
        assert settings.MAX_UPLOAD_BYTES == 5 * 1024 * 1024

    def test_realtime_defaults(self):
        assert settings.REALTIME_QUEUE_SIZE > 0
        assert settings.REALTIME_RETRY_DELAY == 3.0

    def test_cache_and_breaker_defaults(self):
        assert settings.CACHE_TTL > 0
        assert settings.CACHE_MAX_SIZE > 0
        assert settings.CB_FAILURE_THRESHOLD > 0
        assert settings.CB_RECOVERY_TIMEOUT > 0


class TestDatabaseURL:
    def test_sqlite_url(self):
        assert settings.DATABASE_URL == "sqlite+aiosqlite://"

    def test_postgres_url(self):
        s = Settings(
            USE_SQLITE=False,
            POSTGRES_USER="agrofund",
            POSTGRES_PASSWORD="secret",
            POSTGRES_SERVER="db",
            POSTGRES_DB="agrofund",
            POSTGRES_PORT=6543,
        )
        assert s.DATABASE_URL == "postgresql+asyncpg://agrofund:secret@db:6543/agrofund"


class TestEnvironment:
    @pytest.fixture()
    def bare_env(self, monkeypatch):
        for key in _PG_VARS:
            monkeypatch.delenv(key, raising=False)
        return monkeypatch

    def test_missing_pg_credentials_raise(self, bare_env):
        with pytest.raises(ValueError, match="POSTGRES_USER, POSTGRES_PASSWORD"):
            Settings(USE_SQLITE=False, _env_file=None)  # type: ignore[call-arg]

    def test_environment_overrides(self, bare_env):
        bare_env.setenv("USE_SQLITE", "true")
        bare_env.setenv("MIN_INVESTMENT", "5000")
        bare_env.setenv("CORS_ORIGINS", "https://agrofund.ng")

        s = Settings(_env_file=None)  # type: ignore[call-arg]

        assert s.MIN_INVESTMENT == Decimal("5000")
        assert s.CORS_ORIGINS == "https://agrofund.ng"
