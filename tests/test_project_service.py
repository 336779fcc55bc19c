"""
Unit tests for ProjectService with mocked repositories.

Covers listing filters and caching, ownership checks, the update
invariants and status transitions, deletion rules and cover images.
"""

import io
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from fastapi import UploadFile
from sqlalchemy.exc import OperationalError
from starlette.datastructures import Headers

from agrofund.core.cache import TTLCache
from agrofund.core.results import DataErrorKind
from agrofund.models.project import ProjectCategory, ProjectStatus
from agrofund.models.user import UserRole
from agrofund.schemas.project import ProjectCreate, ProjectUpdate
from agrofund.services.project_service import ProjectService
from agrofund.storage import PROJECT_IMAGES_BUCKET, StorageError

from .conftest import (
    FARMER_ID,
    OTHER_USER_ID,
    PROJECT_ID,
    make_principal,
    make_project,
    make_user,
    mock_repo,
)


def _service(project_repo=None, invest_repo=None, cache=None, storage=None) -> ProjectService:
    return ProjectService(
        project_repo or mock_repo(),
        invest_repo or mock_repo(),
        cache or TTLCache(ttl=30.0, max_size=100),
        storage or AsyncMock(),
    )


def _apply(project, data):
    for field, value in data.items():
        setattr(project, field, value)
    return project


def _update(**fields) -> ProjectUpdate:
    return ProjectUpdate(**fields)


def _image(content_type: str = "image/jpeg", data: bytes = b"\xff\xd8\xff") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(data), filename="rice field.jpg", headers=Headers({"content-type": content_type})
    )


# ────────────────────────────────────────────────────────────────────────────
# Queries
# ────────────────────────────────────────────────────────────────────────────


class TestListProjects:
    @pytest.mark.asyncio
    async def test_filters_are_parsed(self):
        repo = mock_repo()
        repo.list_with_farmer.return_value = [(make_project(), make_user())]

        result = await _service(project_repo=repo).list_projects(category="crops", status="all")

        (detail,) = result.unwrap()
        assert detail.farmer.name == "Aminu Hassan"
        kwargs = repo.list_with_farmer.await_args.kwargs
        assert kwargs["category"] == ProjectCategory.CROPS
        assert kwargs["status"] is None

    @pytest.mark.asyncio
    async def test_unknown_category(self):
        result = await _service().list_projects(category="fishing")
        assert result.error.kind == DataErrorKind.INVALID
        assert result.error.message == "Unknown category 'fishing'"

    @pytest.mark.asyncio
    async def test_second_call_is_cached(self, test_cache):
        repo = mock_repo()
        repo.list_with_farmer.return_value = []
        service = _service(project_repo=repo, cache=test_cache)

        await service.list_projects(status="active")
        await service.list_projects(status="active")

        repo.list_with_farmer.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_project(self):
        repo = mock_repo()
        repo.get_with_farmer.return_value = None
        result = await _service(project_repo=repo).get_project(PROJECT_ID)
        assert result.error.message == "Project not found"


# ────────────────────────────────────────────────────────────────────────────
# Commands
# ────────────────────────────────────────────────────────────────────────────


class TestCreateProject:
    def _form(self, **overrides) -> ProjectCreate:
        values = dict(
            title="Organic Rice Farming - Kebbi State",
            description="Sustainable rice farming using organic methods.",
            category="crops",
            funding_goal="500,000",
            expected_return=18,
            location="Kebbi State",
        )
        values.update(overrides)
        return ProjectCreate(**values)

    @pytest.mark.asyncio
    async def test_farmer_creates(self, test_cache):
        repo = mock_repo()
        repo.create.side_effect = lambda project: project
        test_cache.set("projects:list", ["stale"])

        result = await _service(project_repo=repo, cache=test_cache).create_project(
            make_principal(UserRole.FARMER), self._form()
        )

        project = result.unwrap()
        assert project.farmer_id == FARMER_ID
        assert project.amount_raised == Decimal("0")
        assert project.status == ProjectStatus.ACTIVE
        assert project.funding_goal == Decimal("500000")
        assert test_cache.get("projects:list") is None

    @pytest.mark.asyncio
    async def test_draft_requested(self):
        repo = mock_repo()
        repo.create.side_effect = lambda project: project
        result = await _service(project_repo=repo).create_project(
            make_principal(UserRole.FARMER), self._form(status="draft")
        )
        assert result.data.status == ProjectStatus.DRAFT

    @pytest.mark.asyncio
    async def test_investor_forbidden(self):
        repo = mock_repo()
        result = await _service(project_repo=repo).create_project(
            make_principal(UserRole.INVESTOR), self._form()
        )
        assert result.error.kind == DataErrorKind.FORBIDDEN
        repo.create.assert_not_awaited()


class TestUpdateProject:
    @pytest.fixture()
    def repo(self):
        repo = mock_repo()
        repo.get_for_update.return_value = make_project(amount_raised=Decimal("200000"))
        repo.update.side_effect = _apply
        return repo

    @pytest.mark.asyncio
    async def test_owner_updates(self, repo):
        result = await _service(project_repo=repo).update_project(
            make_principal(UserRole.FARMER), PROJECT_ID, _update(title="Organic Rice - Phase Two")
        )
        assert result.data.title == "Organic Rice - Phase Two"
        _, data = repo.update.await_args.args
        assert data == {"title": "Organic Rice - Phase Two"}
        repo.get_for_update.assert_awaited_once_with(PROJECT_ID)
        repo.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stranger_forbidden(self, repo):
        result = await _service(project_repo=repo).update_project(
            make_principal(UserRole.FARMER, id=OTHER_USER_ID), PROJECT_ID, _update(title="Mine now")
        )
        assert result.error.message == "You can only manage your own projects"

    @pytest.mark.asyncio
    async def test_admin_may_update(self, repo):
        result = await _service(project_repo=repo).update_project(
            make_principal(UserRole.ADMIN), PROJECT_ID, _update(status="cancelled")
        )
        assert result.ok

    @pytest.mark.asyncio
    async def test_goal_below_raised(self, repo):
        result = await _service(project_repo=repo).update_project(
            make_principal(UserRole.FARMER), PROJECT_ID, _update(funding_goal=150000)
        )
        assert result.error.message == "Funding goal cannot be less than the amount already raised"
        repo.update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_goal_lowered_to_raised_marks_funded(self, repo):
        repo.get_for_update.return_value = make_project(
            funding_goal=Decimal("500000"), amount_raised=Decimal("450000")
        )

        result = await _service(project_repo=repo).update_project(
            make_principal(UserRole.FARMER), PROJECT_ID, _update(funding_goal=450000)
        )

        project = result.unwrap()
        assert project.funding_goal == Decimal("450000")
        assert project.status == ProjectStatus.FUNDED
        _, data = repo.update.await_args.args
        assert data["status"] == ProjectStatus.FUNDED

    @pytest.mark.asyncio
    async def test_goal_lowered_on_cancel_keeps_requested_status(self, repo):
        repo.get_for_update.return_value = make_project(
            funding_goal=Decimal("500000"), amount_raised=Decimal("450000")
        )

        result = await _service(project_repo=repo).update_project(
            make_principal(UserRole.FARMER),
            PROJECT_ID,
            _update(funding_goal=450000, status="cancelled"),
        )

        assert result.data.status == ProjectStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_max_below_existing_min(self, repo):
        result = await _service(project_repo=repo).update_project(
            make_principal(UserRole.FARMER), PROJECT_ID, _update(max_investment=500)
        )
        assert result.error.kind == DataErrorKind.INVALID

    @pytest.mark.asyncio
    async def test_closed_project_cannot_reopen(self, repo):
        repo.get_for_update.return_value = make_project(status=ProjectStatus.COMPLETED)
        result = await _service(project_repo=repo).update_project(
            make_principal(UserRole.FARMER), PROJECT_ID, _update(status="active")
        )
        assert result.error.message == "Invalid status transition: 'completed' → 'active'"


class TestDeleteProject:
    @pytest.mark.asyncio
    async def test_without_investments(self, test_cache):
        repo, invest_repo = mock_repo(), mock_repo()
        repo.get.return_value = make_project()
        repo.delete.return_value = True
        invest_repo.count.return_value = 0

        result = await _service(repo, invest_repo, test_cache).delete_project(
            make_principal(UserRole.FARMER), PROJECT_ID
        )

        assert result.data is True
        repo.delete.assert_awaited_once_with(PROJECT_ID)
        invest_repo.count.assert_awaited_once_with(project_id=PROJECT_ID)

    @pytest.mark.asyncio
    async def test_with_investments_conflicts(self):
        repo, invest_repo = mock_repo(), mock_repo()
        repo.get.return_value = make_project()
        invest_repo.count.return_value = 3

        result = await _service(repo, invest_repo).delete_project(
            make_principal(UserRole.FARMER), PROJECT_ID
        )

        assert result.error.kind == DataErrorKind.CONFLICT
        repo.delete.assert_not_awaited()


class TestProjectImage:
    @pytest.mark.asyncio
    async def test_stores_and_links(self):
        repo, storage = mock_repo(), AsyncMock()
        repo.get.return_value = make_project()
        repo.update.side_effect = _apply
        storage.upload.return_value = "/storage/project-images/cover.jpg"

        result = await _service(project_repo=repo, storage=storage).attach_project_image(
            make_principal(UserRole.FARMER), PROJECT_ID, _image()
        )

        assert result.data.image_url == "/storage/project-images/cover.jpg"
        bucket, path, data = storage.upload.await_args.args
        assert bucket == PROJECT_IMAGES_BUCKET
        assert path.startswith(f"{PROJECT_ID}/cover-")
        assert path.endswith("-rice_field.jpg")
        assert data == b"\xff\xd8\xff"

    @pytest.mark.asyncio
    async def test_rejects_non_image(self):
        repo, storage = mock_repo(), AsyncMock()
        repo.get.return_value = make_project()

        result = await _service(project_repo=repo, storage=storage).attach_project_image(
            make_principal(UserRole.FARMER), PROJECT_ID, _image("application/pdf")
        )

        assert result.error.message == "Please upload an image file"
        storage.upload.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_storage_failure(self):
        repo, storage = mock_repo(), AsyncMock()
        repo.get.return_value = make_project()
        storage.upload.side_effect = StorageError("disk full")

        result = await _service(project_repo=repo, storage=storage).attach_project_image(
            make_principal(UserRole.FARMER), PROJECT_ID, _image()
        )

        assert result.error.kind == DataErrorKind.UNEXPECTED

    @pytest.mark.asyncio
    async def test_failed_update_removes_file(self):
        repo, storage = mock_repo(), AsyncMock()
        repo.get.return_value = make_project()
        repo.update.side_effect = OperationalError("UPDATE", {}, Exception("gone"))
        storage.upload.return_value = "/storage/project-images/x.jpg"

        result = await _service(project_repo=repo, storage=storage).attach_project_image(
            make_principal(UserRole.FARMER), PROJECT_ID, _image()
        )

        assert result.error.kind == DataErrorKind.UNEXPECTED
        path = storage.upload.await_args.args[1]
        storage.delete.assert_awaited_once_with(PROJECT_IMAGES_BUCKET, path)
