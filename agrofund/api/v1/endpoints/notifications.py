"""
Notification API endpoints.

- GET  /notifications  — The signed-in user's notifications, newest first
"""

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from agrofund.api.deps import get_current_principal
from agrofund.db.session import get_db
from agrofund.models.notification import Notification
from agrofund.repositories.notification_repo import NotificationRepository
from agrofund.schemas.common import ErrorResponse
from agrofund.schemas.notification import NotificationResponse
from agrofund.schemas.user import PrincipalBase
from agrofund.services.notification_service import NotificationService

router = APIRouter()


def _get_notification_service(db: AsyncSession = Depends(get_db)) -> NotificationService:
    return NotificationService(NotificationRepository(Notification, db))


@router.get(
    "",
    response_model=List[NotificationResponse],
    summary="List my notifications",
    responses={401: {"model": ErrorResponse, "description": "Not signed in"}},
)
async def list_notifications(
    limit: int = Query(50, ge=1, le=200, description="Max records to return"),
    user: PrincipalBase = Depends(get_current_principal),
    service: NotificationService = Depends(_get_notification_service),
) -> List[NotificationResponse]:
    return (await service.list_notifications(user.id, limit=limit)).unwrap()
