"""
Admin API endpoints.

- GET  /admin/stats  — Platform totals for the admin dashboard
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agrofund.api.deps import require_role
from agrofund.db.session import get_db
from agrofund.models.investment import Investment
from agrofund.models.kyc import KYCDocument
from agrofund.models.project import Project
from agrofund.models.user import User, UserRole
from agrofund.repositories.investment_repo import InvestmentRepository
from agrofund.repositories.kyc_repo import KYCRepository
from agrofund.repositories.project_repo import ProjectRepository
from agrofund.repositories.user_repo import UserRepository
from agrofund.schemas.common import ErrorResponse
from agrofund.schemas.notification import PlatformStats
from agrofund.schemas.user import PrincipalBase
from agrofund.services.notification_service import AdminService

router = APIRouter()


def _get_admin_service(db: AsyncSession = Depends(get_db)) -> AdminService:
    return AdminService(
        user_repo=UserRepository(User, db),
        project_repo=ProjectRepository(Project, db),
        invest_repo=InvestmentRepository(Investment, db),
        kyc_repo=KYCRepository(KYCDocument, db),
    )


@router.get(
    "/stats",
    response_model=PlatformStats,
    summary="Platform statistics",
    responses={403: {"model": ErrorResponse, "description": "Caller is not an admin"}},
)
async def platform_stats(
    admin: PrincipalBase = Depends(require_role(UserRole.ADMIN)),
    service: AdminService = Depends(_get_admin_service),
) -> PlatformStats:
    return (await service.platform_stats()).unwrap()
