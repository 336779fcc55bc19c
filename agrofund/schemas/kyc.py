"""Pydantic schemas for KYC documents and their review."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agrofund.models.kyc import DocumentType, ReviewStatus


class KYCDocumentResponse(BaseModel):
    id: UUID
    user_id: UUID
    document_type: DocumentType
    document_url: str
    status: ReviewStatus
    rejection_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PendingKYCDocument(KYCDocumentResponse):
    """Admin review queue entry."""

    user_name: str
    user_email: str


class KYCReview(BaseModel):
    """Schema for ``PUT /kyc/documents/{document_id}/review``."""

    status: ReviewStatus = Field(..., examples=["approved"])
    rejection_reason: Optional[str] = Field(default=None, max_length=500)

    @field_validator("status", mode="before")
    @classmethod
    def validate_decision(cls, v: Any) -> Any:
        value = v.value if isinstance(v, ReviewStatus) else v
        if value not in (ReviewStatus.APPROVED.value, ReviewStatus.REJECTED.value):
            raise ValueError("Review decision must be approved or rejected")
        return v
