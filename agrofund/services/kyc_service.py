"""
KYC service — identity documents and their review.

Uploads are stored at ``kyc-documents/{user_id}/{type}-{ts}-{filename}``
before the row is inserted; if the insert fails the stored object is removed
so no orphaned file is left behind.

Review outcome for the user:
- a rejected document sets the user's ``kyc_status`` to ``rejected``;
- an approval sets it to ``approved`` only once every document the user has
  submitted is approved.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import UploadFile

from agrofund.core.results import DataError, DataErrorKind, data_access
from agrofund.models.kyc import DocumentType, KYCDocument, ReviewStatus
from agrofund.models.mixins import utcnow
from agrofund.models.notification import Notification, NotificationCategory
from agrofund.models.user import KYCStatus, UserRole
from agrofund.repositories.kyc_repo import KYCRepository
from agrofund.repositories.notification_repo import NotificationRepository
from agrofund.repositories.user_repo import UserRepository
from agrofund.schemas.kyc import KYCReview, PendingKYCDocument
from agrofund.schemas.user import PrincipalBase
from agrofund.storage import (
    DOCUMENT_TYPES,
    KYC_BUCKET,
    LocalObjectStorage,
    StorageError,
    UploadRejected,
    read_upload,
    timestamped_name,
)

logger = logging.getLogger(__name__)

KYC_SETTINGS_URL = {
    UserRole.FARMER: "/dashboard/farmer/settings",
    UserRole.INVESTOR: "/dashboard/investor/settings",
}


def user_kyc_status(statuses: List[ReviewStatus]) -> KYCStatus:
    """Aggregate per-document review states into the user's KYC status."""
    if any(s == ReviewStatus.REJECTED for s in statuses):
        return KYCStatus.REJECTED
    if statuses and all(s == ReviewStatus.APPROVED for s in statuses):
        return KYCStatus.APPROVED
    return KYCStatus.PENDING


class KYCService:
    def __init__(
        self,
        kyc_repo: KYCRepository,
        user_repo: UserRepository,
        notification_repo: NotificationRepository,
        storage: LocalObjectStorage,
    ):
        self._repo = kyc_repo
        self._user_repo = user_repo
        self._notification_repo = notification_repo
        self._storage = storage

    @data_access("Upload KYC document")
    async def upload_document(
        self, user: PrincipalBase, document_type: DocumentType, upload: UploadFile
    ) -> KYCDocument:
        """Store the file, then record a ``pending`` document row."""
        try:
            data = await read_upload(upload, DOCUMENT_TYPES)
        except UploadRejected as exc:
            raise DataError.invalid(str(exc))

        path = f"{user.id}/{timestamped_name(document_type.value, upload.filename or 'document')}"
        try:
            url = await self._storage.upload(KYC_BUCKET, path, data)
        except StorageError:
            raise DataError(DataErrorKind.UNEXPECTED)

        document = KYCDocument(
            user_id=user.id,
            document_type=document_type,
            document_url=url,
            storage_path=path,
        )
        try:
            created = await self._repo.create(document)
        except Exception:
            logger.warning(
                "KYC insert failed for user %s; removing %s/%s", user.id, KYC_BUCKET, path
            )
            await self._storage.delete(KYC_BUCKET, path)
            raise
        logger.info(
            "User %s uploaded KYC %s (%s)",
            user.id,
            document_type.value,
            created.id,
            extra={"user_id": str(user.id)},
        )
        return created

    @data_access("List KYC documents")
    async def list_documents(self, user_id: UUID) -> List[KYCDocument]:
        return await self._repo.list_for_user(user_id)

    @data_access("List pending KYC documents")
    async def list_pending(self) -> List[PendingKYCDocument]:
        rows = await self._repo.list_pending()
        return [
            PendingKYCDocument(**doc.model_dump(), user_name=user.name, user_email=user.email)
            for doc, user in rows
        ]

    @data_access("Review KYC document")
    async def review_document(
        self, reviewer: PrincipalBase, document_id: UUID, review: KYCReview
    ) -> KYCDocument:
        """Approve or reject one document and recompute the owner's KYC status."""
        if reviewer.role != UserRole.ADMIN:
            raise DataError.forbidden("Only admins can review KYC documents")

        document = await self._repo.get(document_id)
        if document is None:
            raise DataError.not_found("Document not found")

        reason: Optional[str] = None
        if review.status == ReviewStatus.REJECTED:
            reason = review.rejection_reason or "Document could not be verified"
        document.status = review.status
        document.rejection_reason = reason
        document.reviewed_by = reviewer.id
        document.updated_at = utcnow()

        user = await self._user_repo.get(document.user_id)
        if user is None:
            raise DataError.not_found("User not found")

        try:
            await self._repo.add(document)
            statuses = await self._repo.statuses_for_user(user.id)
            new_status = user_kyc_status(statuses)
            status_changed = new_status != user.kyc_status
            user.kyc_status = new_status
            user.updated_at = utcnow()
            await self._user_repo.add(user)
            if status_changed and new_status != KYCStatus.PENDING:
                await self._notification_repo.add(
                    _kyc_notification(user.id, user.role, new_status, reason)
                )
            await self._repo.commit()
        except Exception:
            await self._repo.rollback()
            raise

        logger.info(
            "KYC document %s %s by %s; user %s is now %s",
            document.id,
            review.status.value,
            reviewer.id,
            user.id,
            user.kyc_status.value,
            extra={"user_id": str(user.id)},
        )
        return document


def _kyc_notification(
    user_id: UUID, role: UserRole, status: KYCStatus, reason: Optional[str]
) -> Notification:
    if status == KYCStatus.APPROVED:
        title = "Verification Approved"
        message = "Your identity documents have been verified"
    else:
        title = "Verification Rejected"
        message = f"Your identity document was rejected: {reason}"
    return Notification(
        user_id=user_id,
        title=title,
        message=message,
        category=NotificationCategory.KYC,
        action_url=KYC_SETTINGS_URL.get(role),
    )
