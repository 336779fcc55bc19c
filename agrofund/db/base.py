"""
Database model registry.

Importing this module ensures all table models are registered with
SQLModel's metadata, which is required before calling ``create_all()``.
It also maps the table names exposed to realtime subscribers onto models.
"""

from typing import Dict, Type

from sqlmodel import SQLModel

from agrofund.models import (
    Investment,
    KYCDocument,
    Notification,
    Project,
    User,
    UserSession,
)

# Tables readable through the realtime list endpoint; ``users`` and
# ``user_sessions`` are never exposed.
REALTIME_TABLES: Dict[str, Type[SQLModel]] = {
    "projects": Project,
    "investments": Investment,
    "notifications": Notification,
    "kyc_documents": KYCDocument,
}

__all__ = ["SQLModel", "REALTIME_TABLES", "User", "UserSession"]
