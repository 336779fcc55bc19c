"""
Shared pytest fixtures.

Unit tests run with mocked repositories so no real database or network
I/O is needed.  Integration tests get a private in-memory SQLite engine
(``sqlite_session``) whose sessions publish committed changes to a
``ChangeFeed`` exactly like the application's sessions do.
"""

import os

# Settings are read at import time; make sure PostgreSQL credentials are
# never required by the test run.
os.environ.setdefault("USE_SQLITE", "true")

import uuid  # noqa: E402
from datetime import datetime, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from werkzeug.security import generate_password_hash  # noqa: E402

from agrofund.core.cache import TTLCache  # noqa: E402
from agrofund.core.resilience import db_circuit_breaker  # noqa: E402
from agrofund.db.base import SQLModel  # noqa: E402
from agrofund.db.changes import FEED_KEY, TrackedSession  # noqa: E402
from agrofund.models.investment import Investment, InvestmentStatus  # noqa: E402
from agrofund.models.project import Project, ProjectCategory, ProjectStatus  # noqa: E402
from agrofund.models.user import KYCStatus, User, UserRole  # noqa: E402
from agrofund.realtime.feed import ChangeFeed  # noqa: E402
from agrofund.schemas.user import PrincipalBase, principal_from_user  # noqa: E402

# ────────────────────────────────────────────────────────────────────────────
# Factory helpers — create domain objects with sensible defaults
# ────────────────────────────────────────────────────────────────────────────

FARMER_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
INVESTOR_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
ADMIN_ID = uuid.UUID("33333333-3333-3333-3333-333333333333")
PROJECT_ID = uuid.UUID("44444444-4444-4444-4444-444444444444")
INVESTMENT_ID = uuid.UUID("55555555-5555-5555-5555-555555555555")
OTHER_USER_ID = uuid.UUID("66666666-6666-6666-6666-666666666666")

TEST_PASSWORD = "harvest2024"

_NAMES = {
    UserRole.FARMER: ("Aminu Hassan", "aminu@example.com", FARMER_ID),
    UserRole.INVESTOR: ("Chidi Eze", "chidi@example.com", INVESTOR_ID),
    UserRole.ADMIN: ("Platform Admin", "admin@example.com", ADMIN_ID),
}


def make_user(
    role: UserRole = UserRole.FARMER,
    *,
    id: uuid.UUID | None = None,
    name: str | None = None,
    email: str | None = None,
    kyc_status: KYCStatus = KYCStatus.PENDING,
    password: str = TEST_PASSWORD,
    **extra,
) -> User:
    """Create a User with sensible test defaults for ``role``."""
    default_name, default_email, default_id = _NAMES[role]
    return User(
        id=id or default_id,
        name=name or default_name,
        email=email or default_email,
        role=role,
        kyc_status=kyc_status,
        password_hash=generate_password_hash(password),
        created_at=datetime.now(timezone.utc),
        **extra,
    )


def make_principal(role: UserRole = UserRole.FARMER, **kwargs) -> PrincipalBase:
    """The role-specific principal for a freshly made user."""
    return principal_from_user(make_user(role, **kwargs))


def make_project(
    *,
    id: uuid.UUID = PROJECT_ID,
    farmer_id: uuid.UUID = FARMER_ID,
    title: str = "Organic Rice Farming - Kebbi State",
    category: ProjectCategory = ProjectCategory.CROPS,
    funding_goal: Decimal = Decimal("500000"),
    amount_raised: Decimal = Decimal("0"),
    min_investment: Decimal = Decimal("1000"),
    max_investment: Decimal | None = None,
    status: ProjectStatus = ProjectStatus.ACTIVE,
    created_at: datetime | None = None,
) -> Project:
    """Create a Project with sensible test defaults."""
    now = created_at or datetime.now(timezone.utc)
    return Project(
        id=id,
        farmer_id=farmer_id,
        title=title,
        description="Sustainable rice farming using organic methods.",
        category=category,
        location="Kebbi State",
        funding_goal=funding_goal,
        amount_raised=amount_raised,
        min_investment=min_investment,
        max_investment=max_investment,
        expected_return=Decimal("18.00"),
        status=status,
        created_at=now,
        updated_at=now,
    )


def make_investment(
    *,
    id: uuid.UUID = INVESTMENT_ID,
    investor_id: uuid.UUID = INVESTOR_ID,
    project_id: uuid.UUID = PROJECT_ID,
    amount: Decimal = Decimal("50000"),
    status: InvestmentStatus = InvestmentStatus.ACTIVE,
) -> Investment:
    """Create an Investment with sensible test defaults."""
    now = datetime.now(timezone.utc)
    return Investment(
        id=id,
        investor_id=investor_id,
        project_id=project_id,
        amount=amount,
        status=status,
        expected_return=Decimal("18.00"),
        created_at=now,
        updated_at=now,
    )


def mock_repo(db=None) -> AsyncMock:
    """
    An AsyncMock repository.

    ``db`` stands in for the shared session; change capture writes to
    ``db.info`` so it must be a real dict.
    """
    repo = AsyncMock()
    repo.db = db if db is not None else MagicMock(info={})
    return repo


# ────────────────────────────────────────────────────────────────────────────
# Pytest fixtures
# ────────────────────────────────────────────────────────────────────────────


@pytest.fixture()
def test_cache():
    """A fresh TTL cache instance for test isolation."""
    return TTLCache(ttl=30.0, max_size=100, enabled=True)


@pytest.fixture()
def disabled_cache():
    """A disabled TTL cache — all operations are no-ops."""
    return TTLCache(ttl=30.0, max_size=100, enabled=False)


@pytest.fixture()
def feed():
    return ChangeFeed(queue_size=16)


@pytest.fixture(autouse=True)
def _reset_circuit_breaker():
    """Failures recorded by one test must not open the breaker for the next."""
    db_circuit_breaker.reset()
    yield
    db_circuit_breaker.reset()


@pytest_asyncio.fixture()
async def sqlite_sessionmaker():
    """A private in-memory database with every table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _fk_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        sync_session_class=TrackedSession,
        expire_on_commit=False,
    )
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture()
async def sqlite_session(sqlite_sessionmaker, feed):
    """A session on the in-memory database publishing to ``feed``."""
    async with sqlite_sessionmaker(info={FEED_KEY: feed}) as session:
        yield session
