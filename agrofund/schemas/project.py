"""
Pydantic schemas for Project API request / response serialisation.

Separating schemas from SQLModel table models keeps the API contract
decoupled from the persistence layer.  Field order matters: the investment
bounds are checked against ``funding_goal``, so it is declared first.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    computed_field,
    field_serializer,
    field_validator,
)

from agrofund.models.project import ProjectCategory, ProjectStatus, RiskLevel
from agrofund.schemas.common import to_decimal
from agrofund.schemas.user import UserPublic

MIN_FUNDING_GOAL = Decimal("1000")
MAX_FUNDING_GOAL = Decimal("100000000")
MIN_PROJECT_INVESTMENT = Decimal("1000")

# Statuses an owner may set directly; ``funded`` is only reached by investing.
OWNER_SETTABLE_STATUSES = (
    ProjectStatus.DRAFT,
    ProjectStatus.ACTIVE,
    ProjectStatus.COMPLETED,
    ProjectStatus.CANCELLED,
)

_MONEY_FIELDS = ("funding_goal", "amount_raised", "min_investment", "max_investment")


def _check_title(v: str) -> str:
    v = v.strip()
    if len(v) < 5:
        raise ValueError("Title must be at least 5 characters")
    if len(v) > 100:
        raise ValueError("Title must be less than 100 characters")
    return v


def _check_description(v: str) -> str:
    v = v.strip()
    if len(v) < 20:
        raise ValueError("Description must be at least 20 characters")
    if len(v) > 1000:
        raise ValueError("Description must be less than 1000 characters")
    return v


def _check_location(v: str) -> str:
    v = v.strip()
    if len(v) < 2:
        raise ValueError("Location must be at least 2 characters")
    if len(v) > 100:
        raise ValueError("Location must be less than 100 characters")
    return v


def _check_funding_goal(v: Decimal) -> Decimal:
    if v < MIN_FUNDING_GOAL:
        raise ValueError("Funding goal must be at least ₦1,000")
    if v > MAX_FUNDING_GOAL:
        raise ValueError("Funding goal must be less than ₦100,000,000")
    return v


def _check_duration(v: int) -> int:
    if v < 1:
        raise ValueError("Duration must be at least 1 month")
    if v > 60:
        raise ValueError("Duration must be less than 60 months")
    return v


def _check_expected_return(v: Decimal) -> Decimal:
    if v < 1:
        raise ValueError("Expected return must be at least 1%")
    if v > 100:
        raise ValueError("Expected return must be less than 100%")
    return v


def _category_choice(v: Any) -> Any:
    if isinstance(v, ProjectCategory):
        return v
    if v not in [c.value for c in ProjectCategory]:
        raise ValueError("Please select a category")
    return v


def _owner_status(v: Any) -> Any:
    value = v.value if isinstance(v, ProjectStatus) else v
    if value not in [s.value for s in OWNER_SETTABLE_STATUSES]:
        raise ValueError("Status must be one of: draft, active, completed, cancelled")
    return v


class ProjectCreate(BaseModel):
    """
    Schema for ``POST /projects``.

    Projects publish immediately (``status=active``); pass ``status=draft``
    to save without listing it on the marketplace.
    """

    title: str = Field(..., examples=["Organic Rice Farming - Kebbi State"])
    description: str = Field(
        ...,
        examples=["Expanding a 10-hectare organic rice farm with improved irrigation."],
    )
    category: ProjectCategory = Field(..., examples=["crops"])
    funding_goal: Decimal = Field(..., examples=[500_000])
    duration_months: int = Field(default=12, examples=[12])
    expected_return: Decimal = Field(..., examples=[18])
    location: str = Field(..., examples=["Kebbi State"])
    risk_level: RiskLevel = RiskLevel.MEDIUM
    min_investment: Decimal = MIN_PROJECT_INVESTMENT
    max_investment: Optional[Decimal] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: ProjectStatus = ProjectStatus.ACTIVE

    @field_validator("funding_goal", "expected_return", "min_investment", "max_investment", mode="before")
    @classmethod
    def coerce_numbers(cls, v: Any) -> Any:
        return to_decimal(v)

    @field_validator("category", mode="before")
    @classmethod
    def validate_category(cls, v: Any) -> Any:
        return _category_choice(v)

    @field_validator("status", mode="before")
    @classmethod
    def validate_initial_status(cls, v: Any) -> Any:
        value = v.value if isinstance(v, ProjectStatus) else v
        if value not in (ProjectStatus.DRAFT.value, ProjectStatus.ACTIVE.value):
            raise ValueError("New projects must be draft or active")
        return v

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _check_title(v)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        return _check_description(v)

    @field_validator("location")
    @classmethod
    def validate_location(cls, v: str) -> str:
        return _check_location(v)

    @field_validator("funding_goal")
    @classmethod
    def validate_funding_goal(cls, v: Decimal) -> Decimal:
        return _check_funding_goal(v)

    @field_validator("duration_months")
    @classmethod
    def validate_duration(cls, v: int) -> int:
        return _check_duration(v)

    @field_validator("expected_return")
    @classmethod
    def validate_expected_return(cls, v: Decimal) -> Decimal:
        return _check_expected_return(v)

    @field_validator("min_investment")
    @classmethod
    def validate_min_investment(cls, v: Decimal, info: ValidationInfo) -> Decimal:
        if v < MIN_PROJECT_INVESTMENT:
            raise ValueError("Minimum investment is ₦1,000")
        goal = info.data.get("funding_goal")
        if goal is not None and v > goal:
            raise ValueError("Minimum investment cannot exceed the funding goal")
        return v

    @field_validator("max_investment")
    @classmethod
    def validate_max_investment(cls, v: Optional[Decimal], info: ValidationInfo) -> Optional[Decimal]:
        if v is None:
            return v
        minimum = info.data.get("min_investment")
        if minimum is not None and v < minimum:
            raise ValueError("Maximum investment cannot be less than the minimum investment")
        return v

    @field_validator("end_date")
    @classmethod
    def validate_end_date(cls, v: Optional[date], info: ValidationInfo) -> Optional[date]:
        start = info.data.get("start_date")
        if v is not None and start is not None and v < start:
            raise ValueError("End date cannot be before the start date")
        return v


class ProjectUpdate(BaseModel):
    """
    Schema for ``PATCH /projects/{project_id}``.

    Every field is optional; only fields present in the body are written.
    ``amount_raised`` is never client-writable.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[ProjectCategory] = None
    location: Optional[str] = None
    funding_goal: Optional[Decimal] = None
    duration_months: Optional[int] = None
    expected_return: Optional[Decimal] = None
    risk_level: Optional[RiskLevel] = None
    min_investment: Optional[Decimal] = None
    max_investment: Optional[Decimal] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[ProjectStatus] = None

    @field_validator("funding_goal", "expected_return", "min_investment", "max_investment", mode="before")
    @classmethod
    def coerce_numbers(cls, v: Any) -> Any:
        return to_decimal(v)

    @field_validator("category", mode="before")
    @classmethod
    def validate_category(cls, v: Any) -> Any:
        return _category_choice(v)

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v: Any) -> Any:
        return _owner_status(v)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("Title cannot be empty")
        return _check_title(v)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("Description cannot be empty")
        return _check_description(v)

    @field_validator("location")
    @classmethod
    def validate_location(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("Location cannot be empty")
        return _check_location(v)

    @field_validator("funding_goal")
    @classmethod
    def validate_funding_goal(cls, v: Optional[Decimal]) -> Decimal:
        if v is None:
            raise ValueError("Funding goal is required")
        return _check_funding_goal(v)

    @field_validator("duration_months")
    @classmethod
    def validate_duration(cls, v: Optional[int]) -> int:
        if v is None:
            raise ValueError("Duration is required")
        return _check_duration(v)

    @field_validator("expected_return")
    @classmethod
    def validate_expected_return(cls, v: Optional[Decimal]) -> Decimal:
        if v is None:
            raise ValueError("Expected return is required")
        return _check_expected_return(v)

    @field_validator("min_investment")
    @classmethod
    def validate_min_investment(cls, v: Optional[Decimal]) -> Decimal:
        if v is None or v < MIN_PROJECT_INVESTMENT:
            raise ValueError("Minimum investment is ₦1,000")
        return v


class ProjectResponse(BaseModel):
    """Schema returned by all project endpoints."""

    id: UUID
    farmer_id: UUID
    title: str
    description: str
    category: ProjectCategory
    location: str
    funding_goal: Decimal
    amount_raised: Decimal
    min_investment: Decimal
    max_investment: Optional[Decimal] = None
    duration_months: int
    expected_return: Decimal
    risk_level: RiskLevel
    status: ProjectStatus
    image_url: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    created_at: datetime
    updated_at: datetime

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remaining_amount(self) -> float:
        return float(self.funding_goal - self.amount_raised)

    @field_serializer(*_MONEY_FIELDS, "expected_return")
    @classmethod
    def serialize_decimal_as_number(cls, v: Optional[Decimal]) -> Optional[float]:
        """Money goes over the wire as a JSON number, not pydantic's default string."""
        return float(v) if v is not None else None

    model_config = ConfigDict(from_attributes=True)


class ProjectDetail(ProjectResponse):
    """A project joined with its farmer's public card."""

    farmer: Optional[UserPublic] = None
