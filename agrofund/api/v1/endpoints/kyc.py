"""
KYC API endpoints.

- POST  /kyc/documents                       — Upload an identity document
- GET   /kyc/documents                       — The signed-in user's documents
- GET   /kyc/pending                         — Review queue (admins)
- PUT   /kyc/documents/{document_id}/review  — Approve or reject (admins)
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from agrofund.api.deps import get_current_principal, require_role
from agrofund.db.session import get_db
from agrofund.models.kyc import DocumentType, KYCDocument
from agrofund.models.notification import Notification
from agrofund.models.user import User, UserRole
from agrofund.repositories.kyc_repo import KYCRepository
from agrofund.repositories.notification_repo import NotificationRepository
from agrofund.repositories.user_repo import UserRepository
from agrofund.schemas.common import ErrorResponse, ValidationErrorResponse
from agrofund.schemas.kyc import KYCDocumentResponse, KYCReview, PendingKYCDocument
from agrofund.schemas.user import PrincipalBase
from agrofund.services.kyc_service import KYCService
from agrofund.storage import LocalObjectStorage, get_storage

router = APIRouter()


def _get_kyc_service(
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
) -> KYCService:
    return KYCService(
        kyc_repo=KYCRepository(KYCDocument, db),
        user_repo=UserRepository(User, db),
        notification_repo=NotificationRepository(Notification, db),
        storage=storage,
    )


_admin = require_role(UserRole.ADMIN)


@router.post(
    "/documents",
    response_model=KYCDocumentResponse,
    status_code=201,
    summary="Upload a KYC document",
    description=(
        "Multipart upload of an image or PDF (max 5MB). The document is "
        "queued for review with status *pending*."
    ),
    responses={
        401: {"model": ErrorResponse, "description": "Not signed in"},
        422: {"model": ValidationErrorResponse, "description": "Unsupported or oversized file"},
    },
)
async def upload_document(
    document_type: DocumentType = Form(...),
    file: UploadFile = File(...),
    user: PrincipalBase = Depends(get_current_principal),
    service: KYCService = Depends(_get_kyc_service),
) -> KYCDocumentResponse:
    return (await service.upload_document(user, document_type, file)).unwrap()


@router.get(
    "/documents",
    response_model=List[KYCDocumentResponse],
    summary="List my KYC documents",
    responses={401: {"model": ErrorResponse, "description": "Not signed in"}},
)
async def list_documents(
    user: PrincipalBase = Depends(get_current_principal),
    service: KYCService = Depends(_get_kyc_service),
) -> List[KYCDocumentResponse]:
    return (await service.list_documents(user.id)).unwrap()


@router.get(
    "/pending",
    response_model=List[PendingKYCDocument],
    summary="KYC review queue",
    description="Pending documents with their owner's name and email, oldest first.",
    responses={403: {"model": ErrorResponse, "description": "Caller is not an admin"}},
)
async def list_pending(
    admin: PrincipalBase = Depends(_admin),
    service: KYCService = Depends(_get_kyc_service),
) -> List[PendingKYCDocument]:
    return (await service.list_pending()).unwrap()


@router.put(
    "/documents/{document_id}/review",
    response_model=KYCDocumentResponse,
    summary="Review a KYC document",
    description=(
        "Approves or rejects one document and recomputes the owner's KYC "
        "status. The owner is notified when that status changes."
    ),
    responses={
        403: {"model": ErrorResponse, "description": "Caller is not an admin"},
        404: {"model": ErrorResponse, "description": "Document not found"},
        422: {"model": ValidationErrorResponse, "description": "Validation error"},
    },
)
async def review_document(
    document_id: UUID,
    review: KYCReview,
    admin: PrincipalBase = Depends(_admin),
    service: KYCService = Depends(_get_kyc_service),
) -> KYCDocumentResponse:
    return (await service.review_document(admin, document_id, review)).unwrap()
