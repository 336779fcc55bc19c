"""
Project domain model.

A farmer's crowdfunding campaign.  ``amount_raised`` only ever moves through
the conditional increment in ``ProjectRepository.increment_raised``, and the
CHECK constraints keep it inside ``[0, funding_goal]`` even if that path is
bypassed.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, Index
from sqlmodel import Field, SQLModel

from agrofund.models.mixins import timestamp_field


class ProjectCategory(str, Enum):
    CROPS = "crops"
    POULTRY = "poultry"
    LIVESTOCK = "livestock"
    PROCESSING = "processing"
    EQUIPMENT = "equipment"
    OTHER = "other"


class ProjectStatus(str, Enum):
    """Lifecycle: draft → active → funded → completed; cancelled from any open state."""

    DRAFT = "draft"
    ACTIVE = "active"
    FUNDED = "funded"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Project(SQLModel, table=True):
    """
    SQLModel table definition for projects.

    - ``ix_projects_status_created`` covers the marketplace browse query
      (``WHERE status = 'active' ORDER BY created_at DESC``).
    - Money columns use DECIMAL(20,2); ``expected_return`` is a percentage.
    """

    __tablename__ = "projects"  # type: ignore[assignment]

    __table_args__ = (
        Index("ix_projects_status_created", "status", "created_at"),
        CheckConstraint("funding_goal > 0", name="ck_projects_goal_positive"),
        CheckConstraint("amount_raised >= 0", name="ck_projects_raised_non_negative"),
        CheckConstraint("amount_raised <= funding_goal", name="ck_projects_raised_within_goal"),
        CheckConstraint("min_investment > 0", name="ck_projects_min_investment_positive"),
        CheckConstraint("duration_months > 0", name="ck_projects_duration_positive"),
        CheckConstraint("length(title) > 0", name="ck_projects_title_not_empty"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    farmer_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
        ondelete="RESTRICT",
    )
    title: str = Field(max_length=100)
    description: str = Field(max_length=1000)
    category: ProjectCategory = Field(index=True)
    location: str = Field(max_length=100)

    funding_goal: Decimal = Field(max_digits=20, decimal_places=2)
    amount_raised: Decimal = Field(default=Decimal("0"), max_digits=20, decimal_places=2)
    min_investment: Decimal = Field(default=Decimal("1000"), max_digits=20, decimal_places=2)
    max_investment: Optional[Decimal] = Field(default=None, max_digits=20, decimal_places=2)

    duration_months: int = Field(default=12)
    expected_return: Decimal = Field(max_digits=5, decimal_places=2)
    risk_level: RiskLevel = Field(default=RiskLevel.MEDIUM)
    status: ProjectStatus = Field(default=ProjectStatus.ACTIVE)

    image_url: Optional[str] = Field(default=None, max_length=500)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    created_at: datetime = timestamp_field()
    updated_at: datetime = timestamp_field()

    @property
    def remaining_amount(self) -> Decimal:
        return self.funding_goal - self.amount_raised

    def __repr__(self) -> str:
        return (
            f"<Project id={self.id} title='{self.title}' "
            f"raised=₦{self.amount_raised}/₦{self.funding_goal} status={self.status.value}>"
        )
