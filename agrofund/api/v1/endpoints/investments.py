"""
Investment API endpoints.

- POST  /investments                  — Invest in a project (investors)
- GET   /investments                  — The signed-in investor's portfolio
- GET   /investments/{investment_id}  — One investment (investor, farmer or admin)
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from agrofund.api.deps import get_current_principal, require_role
from agrofund.core.cache import TTLCache, get_cache
from agrofund.db.session import get_db
from agrofund.models.investment import Investment
from agrofund.models.notification import Notification
from agrofund.models.project import Project
from agrofund.models.user import UserRole
from agrofund.repositories.investment_repo import InvestmentRepository
from agrofund.repositories.notification_repo import NotificationRepository
from agrofund.repositories.project_repo import ProjectRepository
from agrofund.schemas.common import ErrorResponse, ValidationErrorResponse
from agrofund.schemas.investment import (
    InvestmentDetail,
    InvestmentForm,
    InvestmentResponse,
    InvestmentWithProject,
)
from agrofund.schemas.user import PrincipalBase
from agrofund.services.investment_service import InvestmentService

router = APIRouter()


# ── Dependency injection ──


def _get_investment_service(
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
) -> InvestmentService:
    """
    Build an InvestmentService wired to the current request's DB session.

    All three repositories share the session: committing an investment
    writes the investment, the project total and two notifications at once.
    """
    return InvestmentService(
        invest_repo=InvestmentRepository(Investment, db),
        project_repo=ProjectRepository(Project, db),
        notification_repo=NotificationRepository(Notification, db),
        cache=cache,
    )


_investor = require_role(UserRole.INVESTOR)


# ── Endpoints ──


@router.post(
    "",
    response_model=InvestmentResponse,
    status_code=201,
    summary="Invest in a project",
    description=(
        "Commits ``amount`` to an active project. The amount must respect the "
        "project's minimum and maximum and may not exceed what remains of its "
        "goal. Reaching the goal marks the project *funded*."
    ),
    responses={
        403: {"model": ErrorResponse, "description": "Caller is not an investor"},
        404: {"model": ErrorResponse, "description": "Project not found"},
        422: {
            "model": ValidationErrorResponse,
            "description": "Validation error or business rule violation",
        },
    },
)
async def create_investment(
    form: InvestmentForm,
    investor: PrincipalBase = Depends(_investor),
    service: InvestmentService = Depends(_get_investment_service),
) -> InvestmentResponse:
    return (await service.commit_investment(investor, form)).unwrap()


@router.get(
    "",
    response_model=List[InvestmentWithProject],
    summary="List my investments",
    description="The signed-in investor's portfolio, newest first.",
    responses={403: {"model": ErrorResponse, "description": "Caller is not an investor"}},
)
async def list_investments(
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(100, ge=1, le=1000, description="Max records to return"),
    investor: PrincipalBase = Depends(_investor),
    service: InvestmentService = Depends(_get_investment_service),
) -> List[InvestmentWithProject]:
    return (await service.list_investments(investor.id, skip=skip, limit=limit)).unwrap()


@router.get(
    "/{investment_id}",
    response_model=InvestmentDetail,
    summary="Get an investment",
    responses={
        403: {"model": ErrorResponse, "description": "Not a party to this investment"},
        404: {"model": ErrorResponse, "description": "Investment not found"},
    },
)
async def get_investment(
    investment_id: UUID,
    viewer: PrincipalBase = Depends(get_current_principal),
    service: InvestmentService = Depends(_get_investment_service),
) -> InvestmentDetail:
    return (await service.get_investment(investment_id, viewer)).unwrap()
