"""
Seed script — populates the database with demo accounts and projects.

Usage:
    python -m agrofund.seed

Every demo account uses the password ``Password123``.  The script is
idempotent: it checks for existing data before inserting.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from werkzeug.security import generate_password_hash

from agrofund.core.logging import setup_logging
from agrofund.db.base import SQLModel
from agrofund.db.session import engine, open_session
from agrofund.models.investment import Investment
from agrofund.models.project import Project, ProjectCategory, RiskLevel
from agrofund.models.user import KYCStatus, User, UserRole

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "Password123"

AMINU_ID = uuid.UUID("a1000000-0000-4000-8000-000000000001")
GRACE_ID = uuid.UUID("a1000000-0000-4000-8000-000000000002")
JOHN_ID = uuid.UUID("a1000000-0000-4000-8000-000000000003")
MUSA_ID = uuid.UUID("a1000000-0000-4000-8000-000000000004")
CHIDI_ID = uuid.UUID("b2000000-0000-4000-8000-000000000001")
FATIMA_ID = uuid.UUID("b2000000-0000-4000-8000-000000000002")
ADMIN_ID = uuid.UUID("c3000000-0000-4000-8000-000000000001")

RICE_ID = uuid.UUID("d4000000-0000-4000-8000-000000000001")
POULTRY_ID = uuid.UUID("d4000000-0000-4000-8000-000000000002")
CASSAVA_ID = uuid.UUID("d4000000-0000-4000-8000-000000000003")
CATTLE_ID = uuid.UUID("d4000000-0000-4000-8000-000000000004")


def _users(password_hash: str) -> list[User]:
    def farmer(id: uuid.UUID, name: str, email: str, location: str, specialization: str) -> User:
        return User(
            id=id,
            email=email,
            name=name,
            role=UserRole.FARMER,
            kyc_status=KYCStatus.APPROVED,
            password_hash=password_hash,
            location=location,
            specialization=specialization,
        )

    return [
        farmer(AMINU_ID, "Aminu Hassan", "aminu@agrofund.ng", "Kebbi State", "Rice"),
        farmer(GRACE_ID, "Grace Okonkwo", "grace@agrofund.ng", "Ogun State", "Poultry"),
        farmer(JOHN_ID, "John Adebayo", "john@agrofund.ng", "Oyo State", "Cassava"),
        farmer(MUSA_ID, "Musa Garba", "musa@agrofund.ng", "Kaduna State", "Cattle"),
        User(
            id=CHIDI_ID,
            email="chidi@agrofund.ng",
            name="Chidi Eze",
            role=UserRole.INVESTOR,
            kyc_status=KYCStatus.APPROVED,
            password_hash=password_hash,
            location="Lagos",
            investment_focus="Crops, Processing",
        ),
        User(
            id=FATIMA_ID,
            email="fatima@agrofund.ng",
            name="Fatima Bello",
            role=UserRole.INVESTOR,
            password_hash=password_hash,
            location="Abuja",
        ),
        User(
            id=ADMIN_ID,
            email="admin@agrofund.ng",
            name="AgroFund Admin",
            role=UserRole.ADMIN,
            kyc_status=KYCStatus.APPROVED,
            password_hash=password_hash,
        ),
    ]



def _projects() -> list[Project]:
    return [
        Project(
            id=RICE_ID,
            farmer_id=AMINU_ID,
            title="Organic Rice Farming - Kebbi State",
            description=(
                "Sustainable rice farming using organic methods to produce "
                "high-quality rice for local and export markets."
            ),
            category=ProjectCategory.CROPS,
            location="Kebbi State",
            funding_goal=Decimal("500000"),
            amount_raised=Decimal("350000"),
            duration_months=8,
            expected_return=Decimal("18.00"),
            risk_level=RiskLevel.LOW,
            created_at=datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc),
        ),
        Project(
            id=POULTRY_ID,
            farmer_id=GRACE_ID,
            title="Modern Poultry Farm Setup",
            description=(
                "Establishing a modern poultry farm with automated feeding systems "
                "and climate control."
            ),
            category=ProjectCategory.POULTRY,
            location="Ogun State",
            funding_goal=Decimal("800000"),
            amount_raised=Decimal("200000"),
            expected_return=Decimal("22.00"),
            created_at=datetime(2025, 2, 3, 14, 30, tzinfo=timezone.utc),
        ),
        Project(
            id=CASSAVA_ID,
            farmer_id=JOHN_ID,
            title="Cassava Processing Plant",
            description=(
                "Setting up a cassava processing facility to produce garri, starch, "
                "and other cassava products."
            ),
            category=ProjectCategory.PROCESSING,
            location="Oyo State",
            funding_goal=Decimal("1200000"),
            amount_raised=Decimal("900000"),
            duration_months=18,
            expected_return=Decimal("25.00"),
            risk_level=RiskLevel.HIGH,
            created_at=datetime(2025, 2, 20, 11, 15, tzinfo=timezone.utc),
        ),
        Project(
            id=CATTLE_ID,
            farmer_id=MUSA_ID,
            title="Cattle Ranch Expansion",
            description=(
                "Expanding cattle ranch operations with improved grazing land and "
                "modern facilities."
            ),
            category=ProjectCategory.LIVESTOCK,
            location="Kaduna State",
            funding_goal=Decimal("2000000"),
            amount_raised=Decimal("450000"),
            duration_months=24,
            expected_return=Decimal("20.00"),
            created_at=datetime(2025, 3, 5, 8, 45, tzinfo=timezone.utc),
        ),
    ]


# Stakes whose totals match each project's ``amount_raised``.
INVESTMENTS = [
    (CHIDI_ID, RICE_ID, Decimal("200000")),
    (FATIMA_ID, RICE_ID, Decimal("150000")),
    (CHIDI_ID, POULTRY_ID, Decimal("200000")),
    (CHIDI_ID, CASSAVA_ID, Decimal("500000")),
    (FATIMA_ID, CASSAVA_ID, Decimal("400000")),
    (FATIMA_ID, CATTLE_ID, Decimal("450000")),
]


async def seed() -> None:
    """Create tables and insert demo data if the database is empty."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    async with open_session() as session:
        result = await session.execute(select(User).limit(1))
        if result.scalars().first() is not None:
            logger.info("Database already contains data — skipping seed.")
            return

        users = _users(generate_password_hash(DEMO_PASSWORD))
        session.add_all(users)
        await session.flush()
        projects = _projects()
        session.add_all(projects)
        await session.flush()
        expected = {project.id: project.expected_return for project in projects}
        session.add_all(
            Investment(
                investor_id=investor_id,
                project_id=project_id,
                amount=amount,
                expected_return=expected[project_id],
            )
            for investor_id, project_id, amount in INVESTMENTS
        )
        await session.commit()

        logger.info(
            "Seeded %d users, %d projects, %d investments",
            len(users),
            len(projects),
            len(INVESTMENTS),
        )


if __name__ == "__main__":
    setup_logging()
    asyncio.run(seed())
