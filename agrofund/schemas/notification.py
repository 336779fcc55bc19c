"""Pydantic schemas for notifications and platform statistics."""

from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from agrofund.models.notification import NotificationCategory


class NotificationResponse(BaseModel):
    id: UUID
    user_id: UUID
    title: str
    message: str
    category: NotificationCategory
    action_url: Optional[str] = None
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PlatformStats(BaseModel):
    """Admin dashboard totals."""

    users_by_role: Dict[str, int]
    projects_by_status: Dict[str, int]
    total_raised: float
    total_investments: int
    pending_kyc_documents: int
