"""
Pydantic schemas for accounts, sessions and profiles.

The authenticated caller is resolved once, at the auth boundary, into one of
three principal types discriminated by ``role``.  Each carries only the
fields valid for that role, so endpoints never re-check a loose user dict.
"""

import re
from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Type, Union
from uuid import UUID

from email_validator import EmailNotValidError, validate_email
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from agrofund.models.user import KYCStatus, User, UserRole
from agrofund.schemas.common import strip_or_none

PASSWORD_PATTERN = re.compile(r"^(?=.*[A-Za-z])(?=.*\d).{8,100}$")
PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]+$")

SELF_SERVICE_ROLES = (UserRole.FARMER, UserRole.INVESTOR)


# ── Shared field checks ──


def normalize_email(value: str) -> str:
    try:
        return validate_email(value.strip(), check_deliverability=False).normalized
    except EmailNotValidError:
        raise ValueError("Please enter a valid email address")


def check_name(value: str) -> str:
    value = value.strip()
    if len(value) < 2:
        raise ValueError("Name must be at least 2 characters")
    if len(value) > 50:
        raise ValueError("Name must be less than 50 characters")
    return value


def check_password(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters")
    if len(value) > 100:
        raise ValueError("Password must be less than 100 characters")
    if not PASSWORD_PATTERN.match(value):
        raise ValueError("Password must contain at least one letter and one number")
    return value


def check_phone(value: Optional[str]) -> Optional[str]:
    value = strip_or_none(value)
    if value is None:
        return None
    if not PHONE_PATTERN.match(value):
        raise ValueError("Please enter a valid phone number")
    digits = sum(ch.isdigit() for ch in value)
    if digits < 10:
        raise ValueError("Phone number must be at least 10 digits")
    if digits > 15:
        raise ValueError("Phone number must be less than 15 digits")
    return value


Name = Annotated[str, AfterValidator(check_name)]
Email = Annotated[str, AfterValidator(normalize_email)]
Password = Annotated[str, AfterValidator(check_password)]
Phone = Annotated[Optional[str], AfterValidator(check_phone)]


# ── Forms ──


class SignUpForm(BaseModel):
    """Schema for ``POST /auth/signup``.  Admin accounts cannot self-register."""

    name: Name = Field(..., examples=["Musa Abdullahi"])
    email: Email = Field(..., examples=["musa@example.com"])
    password: Password = Field(..., examples=["harvest2024"])
    role: UserRole = Field(..., examples=["farmer"])

    @field_validator("role", mode="before")
    @classmethod
    def validate_role(cls, v: Any) -> Any:
        if isinstance(v, UserRole):
            v = v.value
        if v not in [role.value for role in SELF_SERVICE_ROLES]:
            raise ValueError("Please select your role")
        return v


class SignInForm(BaseModel):
    """Schema for ``POST /auth/login``."""

    email: Email
    password: str

    @field_validator("password")
    @classmethod
    def validate_password_present(cls, v: str) -> str:
        if not v:
            raise ValueError("Password is required")
        return v


class PasswordChangeForm(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: Password


class ProfileUpdate(BaseModel):
    """
    Schema for ``PATCH /users/me``.

    Partial update: only fields present in the body are written.  Farmer-
    and investor-specific fields are silently ignored for the other role.
    """

    name: Optional[str] = None
    phone: Phone = None
    location: Optional[str] = Field(default=None, max_length=100)
    bio: Optional[str] = None
    bank_name: Optional[str] = Field(default=None, max_length=100)
    bank_account: Optional[str] = Field(default=None, max_length=100)
    farm_size: Optional[str] = Field(default=None, max_length=100)
    farming_experience: Optional[str] = Field(default=None, max_length=100)
    specialization: Optional[str] = Field(default=None, max_length=100)
    certifications: Optional[str] = Field(default=None, max_length=255)
    investment_focus: Optional[str] = Field(default=None, max_length=255)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            raise ValueError("Name cannot be empty")
        return check_name(v)

    @field_validator("bio")
    @classmethod
    def validate_bio(cls, v: Optional[str]) -> Optional[str]:
        v = strip_or_none(v)
        if v is not None and len(v) > 500:
            raise ValueError("Bio must be less than 500 characters")
        return v


# ── Principals (resolved once per request) ──


class PrincipalBase(BaseModel):
    id: UUID
    email: str
    name: str
    kyc_status: KYCStatus
    phone: Optional[str] = None
    location: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FarmerPrincipal(PrincipalBase):
    role: Literal[UserRole.FARMER] = UserRole.FARMER
    bank_name: Optional[str] = None
    bank_account: Optional[str] = None
    farm_size: Optional[str] = None
    farming_experience: Optional[str] = None
    specialization: Optional[str] = None
    certifications: Optional[str] = None


class InvestorPrincipal(PrincipalBase):
    role: Literal[UserRole.INVESTOR] = UserRole.INVESTOR
    bank_name: Optional[str] = None
    bank_account: Optional[str] = None
    investment_focus: Optional[str] = None


class AdminPrincipal(PrincipalBase):
    role: Literal[UserRole.ADMIN] = UserRole.ADMIN


Principal = Annotated[
    Union[FarmerPrincipal, InvestorPrincipal, AdminPrincipal],
    Field(discriminator="role"),
]

_PRINCIPAL_TYPES: Dict[UserRole, Type[PrincipalBase]] = {
    UserRole.FARMER: FarmerPrincipal,
    UserRole.INVESTOR: InvestorPrincipal,
    UserRole.ADMIN: AdminPrincipal,
}

# Fields a user may change on their own profile, per role.
PROFILE_FIELDS: Dict[UserRole, frozenset] = {
    role: frozenset(model.model_fields) & frozenset(ProfileUpdate.model_fields)
    for role, model in _PRINCIPAL_TYPES.items()
}


def principal_from_user(user: User) -> PrincipalBase:
    """Resolve a ``users`` row into the principal type for its role."""
    return _PRINCIPAL_TYPES[user.role].model_validate(user)


class UserPublic(BaseModel):
    """A farmer's public card, shown alongside their projects."""

    id: UUID
    name: str
    location: Optional[str] = None
    avatar_url: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SessionResponse(BaseModel):
    """Returned by sign-up and sign-in."""

    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: Principal
