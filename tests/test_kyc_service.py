"""
Unit tests for KYCService and the KYC status aggregation, using mocked
repositories and storage.
"""

import io
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi import UploadFile
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.datastructures import Headers

from agrofund.core.results import DataErrorKind
from agrofund.models.kyc import DocumentType, KYCDocument, ReviewStatus
from agrofund.models.user import KYCStatus, UserRole
from agrofund.schemas.kyc import KYCReview
from agrofund.services.kyc_service import KYCService, user_kyc_status
from agrofund.storage import KYC_BUCKET

from .conftest import ADMIN_ID, FARMER_ID, make_principal, make_user, mock_repo


def _service(kyc_repo=None, user_repo=None, notification_repo=None, storage=None) -> KYCService:
    return KYCService(
        kyc_repo or mock_repo(),
        user_repo or mock_repo(),
        notification_repo or mock_repo(),
        storage or AsyncMock(),
    )


def _pdf() -> UploadFile:
    return UploadFile(
        file=io.BytesIO(b"%PDF-1.7"),
        filename="nin slip.pdf",
        headers=Headers({"content-type": "application/pdf"}),
    )


def _document(status: ReviewStatus = ReviewStatus.PENDING) -> KYCDocument:
    return KYCDocument(
        user_id=FARMER_ID,
        document_type=DocumentType.ID_CARD,
        document_url="/storage/kyc-documents/x.pdf",
        storage_path="x.pdf",
        status=status,
    )


class TestUserKYCStatus:
    @pytest.mark.parametrize(
        "statuses, expected",
        [
            ([], KYCStatus.PENDING),
            ([ReviewStatus.PENDING], KYCStatus.PENDING),
            ([ReviewStatus.APPROVED, ReviewStatus.PENDING], KYCStatus.PENDING),
            ([ReviewStatus.APPROVED, ReviewStatus.APPROVED], KYCStatus.APPROVED),
            ([ReviewStatus.APPROVED, ReviewStatus.REJECTED], KYCStatus.REJECTED),
        ],
    )
    def test_aggregation(self, statuses, expected):
        assert user_kyc_status(statuses) == expected


class TestUpload:
    @pytest.mark.asyncio
    async def test_path_and_row(self):
        repo, storage = mock_repo(), AsyncMock()
        storage.upload.return_value = "/storage/kyc-documents/doc.pdf"
        repo.create.side_effect = lambda document: document

        result = await _service(kyc_repo=repo, storage=storage).upload_document(
            make_principal(UserRole.FARMER), DocumentType.ID_CARD, _pdf()
        )

        document = result.unwrap()
        bucket, path, _ = storage.upload.await_args.args
        assert bucket == KYC_BUCKET
        assert path.startswith(f"{FARMER_ID}/id_card-")
        assert path.endswith("-nin_slip.pdf")
        assert document.storage_path == path
        assert document.status == ReviewStatus.PENDING

    @pytest.mark.asyncio
    async def test_failed_insert_removes_object(self):
        repo, storage = mock_repo(), AsyncMock()
        storage.upload.return_value = "/storage/kyc-documents/doc.pdf"
        repo.create.side_effect = IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed"))

        result = await _service(kyc_repo=repo, storage=storage).upload_document(
            make_principal(UserRole.FARMER), DocumentType.ID_CARD, _pdf()
        )

        assert result.error.kind == DataErrorKind.REFERENCE_MISSING
        path = storage.upload.await_args.args[1]
        storage.delete.assert_awaited_once_with(KYC_BUCKET, path)


class TestReview:
    @pytest.mark.asyncio
    async def test_missing_document(self):
        repo = mock_repo()
        repo.get.return_value = None
        result = await _service(kyc_repo=repo).review_document(
            make_principal(UserRole.ADMIN), FARMER_ID, KYCReview(status="approved")
        )
        assert result.error.message == "Document not found"

    @pytest.mark.asyncio
    async def test_rejection_defaults_reason_and_notifies(self):
        repo, users, notifications = mock_repo(), mock_repo(), mock_repo()
        document = _document()
        repo.get.return_value = document
        repo.statuses_for_user.return_value = [ReviewStatus.REJECTED]
        users.get.return_value = make_user(UserRole.INVESTOR, id=FARMER_ID)

        result = await _service(repo, users, notifications).review_document(
            make_principal(UserRole.ADMIN), document.id, KYCReview(status="rejected")
        )

        assert result.data.rejection_reason == "Document could not be verified"
        assert result.data.reviewed_by == ADMIN_ID
        (notice,) = notifications.add.await_args.args
        assert notice.title == "Verification Rejected"
        assert notice.action_url == "/dashboard/investor/settings"
        repo.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unchanged_status_sends_nothing(self):
        repo, users, notifications = mock_repo(), mock_repo(), mock_repo()
        repo.get.return_value = _document()
        repo.statuses_for_user.return_value = [ReviewStatus.APPROVED, ReviewStatus.PENDING]
        users.get.return_value = make_user(UserRole.FARMER)

        result = await _service(repo, users, notifications).review_document(
            make_principal(UserRole.ADMIN), FARMER_ID, KYCReview(status="approved")
        )

        assert result.ok
        notifications.add.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_failure_rolls_back(self):
        repo, users = mock_repo(), mock_repo()
        repo.get.return_value = _document()
        repo.statuses_for_user.side_effect = OperationalError("SELECT", {}, Exception("gone"))
        users.get.return_value = make_user(UserRole.FARMER)

        result = await _service(repo, users).review_document(
            make_principal(UserRole.ADMIN), FARMER_ID, KYCReview(status="approved")
        )

        assert result.error.kind == DataErrorKind.UNEXPECTED
        repo.rollback.assert_awaited_once()


class TestPendingQueue:
    @pytest.mark.asyncio
    async def test_joins_owner(self):
        repo = mock_repo()
        document = _document()
        document.created_at = document.updated_at = datetime(2025, 5, 1, tzinfo=timezone.utc)
        repo.list_pending.return_value = [(document, make_user(UserRole.FARMER))]

        (entry,) = (await _service(kyc_repo=repo).list_pending()).unwrap()

        assert entry.user_name == "Aminu Hassan"
        assert entry.user_email == "aminu@example.com"
        assert entry.document_type == DocumentType.ID_CARD
