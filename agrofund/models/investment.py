"""
Investment domain model.

One investor's stake in one project.  ``expected_return`` is copied from the
project at commit time so later edits to the project do not change the terms
an investor signed up for.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, Index
from sqlmodel import Field, SQLModel

from agrofund.models.mixins import timestamp_field


class InvestmentStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Investment(SQLModel, table=True):
    """
    SQLModel table definition for investments.

    ``ix_investments_investor_created`` covers the investor dashboard query
    (``WHERE investor_id = ? ORDER BY created_at DESC``).
    """

    __tablename__ = "investments"  # type: ignore[assignment]

    __table_args__ = (
        Index("ix_investments_investor_created", "investor_id", "created_at"),
        CheckConstraint("amount > 0", name="ck_investments_amount_positive"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    investor_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
        ondelete="RESTRICT",
    )
    project_id: uuid.UUID = Field(
        foreign_key="projects.id",
        index=True,
        ondelete="RESTRICT",
    )
    amount: Decimal = Field(max_digits=20, decimal_places=2)
    status: InvestmentStatus = Field(default=InvestmentStatus.ACTIVE)
    expected_return: Decimal = Field(max_digits=5, decimal_places=2)
    actual_return: Optional[Decimal] = Field(default=None, max_digits=20, decimal_places=2)

    created_at: datetime = timestamp_field()
    updated_at: datetime = timestamp_field()

    def __repr__(self) -> str:
        return (
            f"<Investment id={self.id} project={self.project_id} "
            f"investor={self.investor_id} amount=₦{self.amount}>"
        )
