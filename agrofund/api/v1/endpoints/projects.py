"""
Project API endpoints.

- GET     /projects                     — Browse projects (filterable)
- POST    /projects                     — List a new project (farmers)
- GET     /projects/{project_id}        — Project detail with farmer card
- PATCH   /projects/{project_id}        — Update an owned project
- DELETE  /projects/{project_id}        — Delete an owned project without investments
- POST    /projects/{project_id}/image  — Upload a cover image
- GET     /projects/{project_id}/investments — Stakes in a project (owner/admin)
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
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
from agrofund.schemas.investment import ProjectInvestment
from agrofund.schemas.project import ProjectCreate, ProjectDetail, ProjectResponse, ProjectUpdate
from agrofund.schemas.user import PrincipalBase
from agrofund.services.investment_service import InvestmentService
from agrofund.services.project_service import ProjectService
from agrofund.storage import LocalObjectStorage, get_storage

router = APIRouter()


# ── Dependency injection ──


def _get_project_service(
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
    storage: LocalObjectStorage = Depends(get_storage),
) -> ProjectService:
    """Build a ProjectService wired to the current request's DB session."""
    return ProjectService(
        project_repo=ProjectRepository(Project, db),
        invest_repo=InvestmentRepository(Investment, db),
        cache=cache,
        storage=storage,
    )


def _get_investment_service(
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_cache),
) -> InvestmentService:
    return InvestmentService(
        invest_repo=InvestmentRepository(Investment, db),
        project_repo=ProjectRepository(Project, db),
        notification_repo=NotificationRepository(Notification, db),
        cache=cache,
    )


_farmer = require_role(UserRole.FARMER)
_owner = require_role(UserRole.FARMER, UserRole.ADMIN)


# ── Endpoints ──


@router.get(
    "",
    response_model=List[ProjectDetail],
    summary="List projects",
    description=(
        "Newest first. ``category`` and ``status`` accept a value or ``all``; "
        "``farmer_id`` narrows to one farmer's listings."
    ),
    responses={422: {"model": ErrorResponse, "description": "Unknown category or status"}},
)
async def list_projects(
    category: Optional[str] = Query(None, description="Category filter or 'all'"),
    status: Optional[str] = Query(None, description="Status filter or 'all'"),
    farmer_id: Optional[UUID] = Query(None, description="Only this farmer's projects"),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(100, ge=1, le=1000, description="Max records to return"),
    service: ProjectService = Depends(_get_project_service),
) -> List[ProjectDetail]:
    result = await service.list_projects(
        category=category, status=status, farmer_id=farmer_id, skip=skip, limit=limit
    )
    return result.unwrap()


@router.post(
    "",
    response_model=ProjectResponse,
    status_code=201,
    summary="Create a project",
    description=(
        "Lists a new funding project for the signed-in farmer. It starts with "
        "nothing raised and, unless ``status`` is ``draft``, open for investment."
    ),
    responses={
        403: {"model": ErrorResponse, "description": "Caller is not a farmer"},
        422: {"model": ValidationErrorResponse, "description": "Validation error"},
    },
)
async def create_project(
    project: ProjectCreate,
    farmer: PrincipalBase = Depends(_farmer),
    service: ProjectService = Depends(_get_project_service),
) -> ProjectResponse:
    return (await service.create_project(farmer, project)).unwrap()


@router.get(
    "/{project_id}",
    response_model=ProjectDetail,
    summary="Get a project",
    responses={404: {"model": ErrorResponse, "description": "Project not found"}},
)
async def get_project(
    project_id: UUID,
    service: ProjectService = Depends(_get_project_service),
) -> ProjectDetail:
    return (await service.get_project(project_id)).unwrap()


@router.patch(
    "/{project_id}",
    response_model=ProjectResponse,
    summary="Update a project",
    description=(
        "Partial update by the owning farmer. The funding goal can never drop "
        "below the amount already raised, and ``funded`` cannot be set by hand."
    ),
    responses={
        403: {"model": ErrorResponse, "description": "Not the project's owner"},
        404: {"model": ErrorResponse, "description": "Project not found"},
        422: {
            "model": ValidationErrorResponse,
            "description": "Validation error or business rule violation",
        },
    },
)
async def update_project(
    project_id: UUID,
    changes: ProjectUpdate,
    owner: PrincipalBase = Depends(_owner),
    service: ProjectService = Depends(_get_project_service),
) -> ProjectResponse:
    return (await service.update_project(owner, project_id, changes)).unwrap()


@router.delete(
    "/{project_id}",
    status_code=204,
    summary="Delete a project",
    responses={
        403: {"model": ErrorResponse, "description": "Not the project's owner"},
        404: {"model": ErrorResponse, "description": "Project not found"},
        409: {"model": ErrorResponse, "description": "Project has investments"},
    },
)
async def delete_project(
    project_id: UUID,
    owner: PrincipalBase = Depends(_owner),
    service: ProjectService = Depends(_get_project_service),
) -> Response:
    (await service.delete_project(owner, project_id)).unwrap()
    return Response(status_code=204)


@router.post(
    "/{project_id}/image",
    response_model=ProjectResponse,
    summary="Upload a cover image",
    responses={
        403: {"model": ErrorResponse, "description": "Not the project's owner"},
        404: {"model": ErrorResponse, "description": "Project not found"},
        422: {"model": ErrorResponse, "description": "Not an image or too large"},
    },
)
async def upload_project_image(
    project_id: UUID,
    file: UploadFile = File(...),
    owner: PrincipalBase = Depends(_owner),
    service: ProjectService = Depends(_get_project_service),
) -> ProjectResponse:
    return (await service.attach_project_image(owner, project_id, file)).unwrap()


@router.get(
    "/{project_id}/investments",
    response_model=List[ProjectInvestment],
    summary="List a project's investments",
    description="Visible to the project's farmer and to admins.",
    responses={
        403: {"model": ErrorResponse, "description": "Not the project's owner"},
        404: {"model": ErrorResponse, "description": "Project not found"},
    },
)
async def list_project_investments(
    project_id: UUID,
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(100, ge=1, le=1000, description="Max records to return"),
    viewer: PrincipalBase = Depends(get_current_principal),
    service: InvestmentService = Depends(_get_investment_service),
) -> List[ProjectInvestment]:
    result = await service.list_project_investments(project_id, viewer, skip=skip, limit=limit)
    return result.unwrap()
