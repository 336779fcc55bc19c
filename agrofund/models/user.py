"""
User domain model.

One table for all three roles.  Role-specific profile columns are nullable;
the API resolves a user into a role-specific principal at the auth boundary
(see ``agrofund.schemas.user``).
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint
from sqlmodel import Field, SQLModel

from agrofund.models.mixins import timestamp_field


class UserRole(str, Enum):
    """Marketplace roles."""

    FARMER = "farmer"
    INVESTOR = "investor"
    ADMIN = "admin"


class KYCStatus(str, Enum):
    """Identity-verification state of a user."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class User(SQLModel, table=True):
    """
    SQLModel table definition for users.

    - ``email`` has a unique index; duplicate sign-ups are rejected at DB level.
    - ``password_hash`` is a werkzeug PBKDF2/scrypt hash, never the password.
    """

    __tablename__ = "users"  # type: ignore[assignment]

    __table_args__ = (
        CheckConstraint("length(name) > 0", name="ck_users_name_not_empty"),
        CheckConstraint("length(email) > 0", name="ck_users_email_not_empty"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: str = Field(unique=True, index=True, max_length=320)
    name: str = Field(max_length=100)
    role: UserRole = Field(index=True)
    kyc_status: KYCStatus = Field(default=KYCStatus.PENDING)
    password_hash: str = Field(max_length=255)

    # ── Profile ──
    phone: Optional[str] = Field(default=None, max_length=30)
    location: Optional[str] = Field(default=None, max_length=100)
    avatar_url: Optional[str] = Field(default=None, max_length=500)
    bio: Optional[str] = Field(default=None, max_length=500)
    bank_name: Optional[str] = Field(default=None, max_length=100)
    bank_account: Optional[str] = Field(default=None, max_length=100)

    # ── Farmer profile ──
    farm_size: Optional[str] = Field(default=None, max_length=100)
    farming_experience: Optional[str] = Field(default=None, max_length=100)
    specialization: Optional[str] = Field(default=None, max_length=100)
    certifications: Optional[str] = Field(default=None, max_length=255)

    # ── Investor profile ──
    investment_focus: Optional[str] = Field(default=None, max_length=255)

    created_at: datetime = timestamp_field(index=True)
    updated_at: datetime = timestamp_field()

    def __repr__(self) -> str:
        return f"<User id={self.id} email='{self.email}' role={self.role.value}>"
