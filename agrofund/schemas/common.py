"""
Common / shared Pydantic schemas used across multiple endpoints.

Defines the error envelopes (so OpenAPI documents the error contract, not
only the happy path) and the small helpers the entity schemas share.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from pydantic import BaseModel, Field


def to_decimal(value: Any) -> Any:
    """Coerce form input (``"50,000"``, ``50000``) to Decimal; leave junk for pydantic to reject."""
    if isinstance(value, str):
        cleaned = value.replace(",", "").replace("₦", "").strip()
        try:
            return Decimal(cleaned)
        except InvalidOperation:
            return value
    return value


def format_naira(amount: Decimal) -> str:
    """``Decimal("50000")`` → ``"₦50,000"``."""
    if amount == amount.to_integral_value():
        return f"₦{amount:,.0f}"
    return f"₦{amount:,.2f}"


def strip_or_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class ErrorResponse(BaseModel):
    """Standard error envelope returned by all non-validation error handlers."""

    error: bool = Field(default=True, description="Always ``true`` for errors")
    message: str = Field(
        ...,
        description="Human-readable error description",
        examples=["Investment amount exceeds remaining funding needed"],
    )


class ValidationErrorDetail(BaseModel):
    """Single field-level validation failure."""

    field: str = Field(
        ...,
        description="Dot-separated path to the invalid field",
        examples=["body -> funding_goal"],
    )
    message: str = Field(
        ...,
        description="Explanation of the validation failure",
        examples=["Funding goal must be at least ₦1,000"],
    )


class ValidationErrorResponse(BaseModel):
    """
    Response body for 422 Unprocessable Entity (validation failure).

    Includes a ``details`` array so clients can map errors to individual
    form fields in the UI.
    """

    error: bool = Field(default=True, description="Always ``true`` for errors")
    message: str = Field(
        default="Validation failed",
        description="Summary message",
    )
    details: List[ValidationErrorDetail] = Field(..., description="Per-field validation failures")
