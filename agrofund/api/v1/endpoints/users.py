"""
Profile API endpoints for the signed-in user.

- GET    /users/me         — Full profile
- PATCH  /users/me         — Update profile fields allowed for the user's role
- POST   /users/me/avatar  — Upload a profile picture
"""

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from agrofund.api.deps import get_current_principal
from agrofund.db.session import get_db
from agrofund.models.user import User
from agrofund.repositories.user_repo import UserRepository
from agrofund.schemas.common import ErrorResponse, ValidationErrorResponse
from agrofund.schemas.user import Principal, PrincipalBase, ProfileUpdate
from agrofund.services.profile_service import ProfileService
from agrofund.storage import LocalObjectStorage, get_storage

router = APIRouter()


def _get_profile_service(
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
) -> ProfileService:
    return ProfileService(user_repo=UserRepository(User, db), storage=storage)


@router.get(
    "/me",
    response_model=Principal,
    summary="Get my profile",
    responses={401: {"model": ErrorResponse, "description": "Not signed in"}},
)
async def get_profile(
    principal: PrincipalBase = Depends(get_current_principal),
    service: ProfileService = Depends(_get_profile_service),
) -> PrincipalBase:
    return (await service.get_profile(principal.id)).unwrap()


@router.patch(
    "/me",
    response_model=Principal,
    summary="Update my profile",
    description=(
        "Only the fields provided are changed. Fields that do not apply to "
        "the caller's role (e.g. ``farm_size`` for an investor) are ignored."
    ),
    responses={
        401: {"model": ErrorResponse, "description": "Not signed in"},
        422: {"model": ValidationErrorResponse, "description": "Validation error"},
    },
)
async def update_profile(
    changes: ProfileUpdate,
    principal: PrincipalBase = Depends(get_current_principal),
    service: ProfileService = Depends(_get_profile_service),
) -> PrincipalBase:
    return (await service.update_profile(principal, changes)).unwrap()


@router.post(
    "/me/avatar",
    response_model=Principal,
    summary="Upload my avatar",
    description="Accepts an image up to 5MB.",
    responses={
        401: {"model": ErrorResponse, "description": "Not signed in"},
        422: {"model": ErrorResponse, "description": "Not an image or too large"},
    },
)
async def upload_avatar(
    file: UploadFile = File(...),
    principal: PrincipalBase = Depends(get_current_principal),
    service: ProfileService = Depends(_get_profile_service),
) -> PrincipalBase:
    return (await service.upload_avatar(principal, file)).unwrap()
