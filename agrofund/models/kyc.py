"""KYC document model: one uploaded identity document awaiting admin review."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from agrofund.models.mixins import timestamp_field


class DocumentType(str, Enum):
    ID_CARD = "id_card"
    PASSPORT = "passport"
    UTILITY_BILL = "utility_bill"
    BANK_STATEMENT = "bank_statement"
    FARM_DOCUMENT = "farm_document"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class KYCDocument(SQLModel, table=True):
    __tablename__ = "kyc_documents"  # type: ignore[assignment]

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    document_type: DocumentType
    document_url: str = Field(max_length=500)
    # Bucket-relative key; kept so the object can be removed with the row.
    storage_path: str = Field(max_length=500)
    status: ReviewStatus = Field(default=ReviewStatus.PENDING, index=True)
    rejection_reason: Optional[str] = Field(default=None, max_length=500)
    reviewed_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")

    created_at: datetime = timestamp_field()
    updated_at: datetime = timestamp_field()
