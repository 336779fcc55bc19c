"""In-app notification shown on a user's dashboard."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from agrofund.models.mixins import timestamp_field


class NotificationCategory(str, Enum):
    INVESTMENT = "investment"
    PROJECT = "project"
    KYC = "kyc"
    SYSTEM = "system"


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"  # type: ignore[assignment]

    __table_args__ = (Index("ix_notifications_user_created", "user_id", "created_at"),)

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    title: str = Field(max_length=200)
    message: str = Field(max_length=1000)
    category: NotificationCategory = Field(default=NotificationCategory.SYSTEM)
    action_url: Optional[str] = Field(default=None, max_length=500)
    is_read: bool = Field(default=False)

    created_at: datetime = timestamp_field()
