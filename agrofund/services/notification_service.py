"""Notification reads and the admin dashboard totals."""

from typing import List
from uuid import UUID

from agrofund.core.results import data_access
from agrofund.models.kyc import ReviewStatus
from agrofund.models.notification import Notification
from agrofund.repositories.investment_repo import InvestmentRepository
from agrofund.repositories.kyc_repo import KYCRepository
from agrofund.repositories.notification_repo import NotificationRepository
from agrofund.repositories.project_repo import ProjectRepository
from agrofund.repositories.user_repo import UserRepository
from agrofund.schemas.notification import PlatformStats


class NotificationService:
    def __init__(self, notification_repo: NotificationRepository):
        self._repo = notification_repo

    @data_access("List notifications")
    async def list_notifications(self, user_id: UUID, limit: int = 50) -> List[Notification]:
        """Newest first."""
        return await self._repo.list_for_user(user_id, limit=limit)


class AdminService:
    def __init__(
        self,
        user_repo: UserRepository,
        project_repo: ProjectRepository,
        invest_repo: InvestmentRepository,
        kyc_repo: KYCRepository,
    ):
        self._user_repo = user_repo
        self._project_repo = project_repo
        self._invest_repo = invest_repo
        self._kyc_repo = kyc_repo

    @data_access("Platform stats")
    async def platform_stats(self) -> PlatformStats:
        return PlatformStats(
            users_by_role=await self._user_repo.count_by_role(),
            projects_by_status=await self._project_repo.count_by_status(),
            total_raised=float(await self._project_repo.total_raised()),
            total_investments=await self._invest_repo.count(),
            pending_kyc_documents=await self._kyc_repo.count(status=ReviewStatus.PENDING),
        )
