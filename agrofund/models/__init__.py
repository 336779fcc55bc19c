"""SQLModel table models — import here so metadata is populated."""

from agrofund.models.auth_session import UserSession  # noqa: F401
from agrofund.models.investment import Investment, InvestmentStatus  # noqa: F401
from agrofund.models.kyc import DocumentType, KYCDocument, ReviewStatus  # noqa: F401
from agrofund.models.notification import Notification, NotificationCategory  # noqa: F401
from agrofund.models.project import (  # noqa: F401
    Project,
    ProjectCategory,
    ProjectStatus,
    RiskLevel,
)
from agrofund.models.user import KYCStatus, User, UserRole  # noqa: F401
