"""
Pydantic schemas for Investment API request / response serialisation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from agrofund.core.config import settings
from agrofund.models.investment import InvestmentStatus
from agrofund.schemas.common import format_naira, to_decimal
from agrofund.schemas.project import ProjectResponse


class InvestmentForm(BaseModel):
    """
    Schema for ``POST /investments``.

    ``pending_payment`` records the stake as ``pending`` until a payment
    provider confirms it; otherwise it is ``active`` immediately.
    """

    project_id: UUID = Field(..., description="Project to invest in")
    amount: Decimal = Field(..., description="Amount in naira", examples=[50_000])
    accept_terms: bool = Field(default=False, description="Investor accepted the terms")
    pending_payment: bool = False

    @field_validator("project_id", mode="before")
    @classmethod
    def validate_project_id(cls, v: Any) -> Any:
        if isinstance(v, UUID):
            return v
        try:
            return UUID(str(v))
        except ValueError:
            raise ValueError("Invalid project ID")

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Any:
        return to_decimal(v)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if v < settings.MIN_INVESTMENT:
            raise ValueError(f"Minimum investment is {format_naira(settings.MIN_INVESTMENT)}")
        if v > settings.MAX_INVESTMENT:
            raise ValueError(f"Maximum investment is {format_naira(settings.MAX_INVESTMENT)}")
        return v

    @field_validator("accept_terms")
    @classmethod
    def validate_terms(cls, v: bool) -> bool:
        if not v:
            raise ValueError("You must accept the terms and conditions")
        return v


class InvestmentResponse(BaseModel):
    """Schema returned by investment endpoints."""

    id: UUID
    investor_id: UUID
    project_id: UUID
    amount: Decimal
    status: InvestmentStatus
    expected_return: Decimal
    actual_return: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime

    @field_serializer("amount", "expected_return", "actual_return")
    @classmethod
    def serialize_decimal_as_number(cls, v: Optional[Decimal]) -> Optional[float]:
        return float(v) if v is not None else None

    model_config = ConfigDict(from_attributes=True)


class InvestmentWithProject(InvestmentResponse):
    """An investor's portfolio row: the stake, its project and the farmer's name."""

    project: ProjectResponse
    farmer_name: Optional[str] = None


class InvestmentDetail(InvestmentResponse):
    project: ProjectResponse
    investor_name: str
    investor_email: str


class ProjectInvestment(InvestmentResponse):
    """A stake as seen on the farmer's project page."""

    investor_name: str
