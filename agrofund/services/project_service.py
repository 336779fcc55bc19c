"""
Project service — business logic layer for project operations.

Every public method returns a ``DataResult``; rule violations are raised
internally as ``DataError`` and store errors are translated by
``data_access``.

Caching:
    ``list_projects`` and ``get_project`` are cached under ``projects:``.
    Every write invalidates the whole prefix.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import UploadFile

from agrofund.core.cache import TTLCache
from agrofund.core.results import DataError, DataErrorKind, data_access
from agrofund.models.project import Project, ProjectCategory, ProjectStatus
from agrofund.models.user import User, UserRole
from agrofund.repositories.investment_repo import InvestmentRepository
from agrofund.repositories.project_repo import ProjectRepository
from agrofund.schemas.project import ProjectCreate, ProjectDetail, ProjectUpdate
from agrofund.schemas.user import PrincipalBase, UserPublic
from agrofund.storage import (
    IMAGE_TYPES,
    PROJECT_IMAGES_BUCKET,
    LocalObjectStorage,
    StorageError,
    UploadRejected,
    read_upload,
    timestamped_name,
)

logger = logging.getLogger(__name__)


def _detail(project: Project, farmer: Optional[User]) -> ProjectDetail:
    detail = ProjectDetail.model_validate(project)
    if farmer is None:
        return detail
    return detail.model_copy(update={"farmer": UserPublic.model_validate(farmer)})


def _parse_choice(enum_cls, value: Optional[str], label: str):
    """``None``/``"all"`` → no filter; anything else must be an enum value."""
    if value is None or value == "all":
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise DataError.invalid(f"Unknown {label} '{value}'")


class ProjectService:
    """Encapsulates CRUD + business rules for :class:`Project`."""

    CACHE_PREFIX = "projects:"

    def __init__(
        self,
        project_repo: ProjectRepository,
        invest_repo: InvestmentRepository,
        cache: TTLCache,
        storage: Optional[LocalObjectStorage] = None,
    ):
        self._repo = project_repo
        self._invest_repo = invest_repo
        self._cache = cache
        self._storage = storage

    # ── Queries ──

    @data_access("List projects")
    async def list_projects(
        self,
        category: Optional[str] = None,
        status: Optional[str] = None,
        farmer_id: Optional[UUID] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[ProjectDetail]:
        """Projects joined with their farmer, newest first (cache-backed)."""
        category_filter = _parse_choice(ProjectCategory, category, "category")
        status_filter = _parse_choice(ProjectStatus, status, "status")

        cache_key = (
            f"{self.CACHE_PREFIX}list:{category_filter}:{status_filter}:{farmer_id}:{skip}:{limit}"
        )
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        rows = await self._repo.list_with_farmer(
            category=category_filter,
            status=status_filter,
            farmer_id=farmer_id,
            skip=skip,
            limit=limit,
        )
        projects = [_detail(project, farmer) for project, farmer in rows]
        self._cache.set(cache_key, projects)
        return projects

    @data_access("Get project")
    async def get_project(self, project_id: UUID) -> ProjectDetail:
        """A single project with its farmer's public card (cache-backed)."""
        cache_key = f"{self.CACHE_PREFIX}{project_id}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        row = await self._repo.get_with_farmer(project_id)
        if row is None:
            raise DataError.not_found("Project not found")
        project = _detail(*row)
        self._cache.set(cache_key, project)
        return project

    # ── Commands ──

    @data_access("Create project")
    async def create_project(self, farmer: PrincipalBase, project_in: ProjectCreate) -> Project:
        """
        List a new project for ``farmer``.

        It starts with ``amount_raised = 0`` and, unless a draft was
        requested, ``status = active``.
        """
        if farmer.role != UserRole.FARMER:
            raise DataError.forbidden("Only farmers can create projects")

        project = Project(**project_in.model_dump(), farmer_id=farmer.id)
        created = await self._repo.create(project)
        self._cache.invalidate(self.CACHE_PREFIX)
        logger.info(
            "Created project %s '%s' for farmer %s",
            created.id,
            created.title,
            farmer.id,
            extra={"project_id": str(created.id), "user_id": str(farmer.id)},
        )
        return created

    async def _owned(
        self, farmer: PrincipalBase, project_id: UUID, lock: bool = False
    ) -> Project:
        if lock:
            project = await self._repo.get_for_update(project_id)
        else:
            project = await self._repo.get(project_id)
        if project is None:
            raise DataError.not_found("Project not found")
        if farmer.role != UserRole.ADMIN and project.farmer_id != farmer.id:
            raise DataError.forbidden("You can only manage your own projects")
        return project

    @data_access("Update project")
    async def update_project(
        self, farmer: PrincipalBase, project_id: UUID, changes: ProjectUpdate
    ) -> Project:
        """
        Partial update by the owner; stamps ``updated_at``.

        The merged result must still satisfy the funding invariants:
        ``funding_goal >= amount_raised`` and ``min <= max <= goal``.  The row
        is locked for the write, so an investment cannot land in between; an
        active project whose goal drops to the amount raised becomes funded.
        """
        project = await self._owned(farmer, project_id, lock=True)
        data = changes.model_dump(exclude_unset=True)

        if "status" in data:
            _validate_status_transition(project.status, data["status"])

        goal = data.get("funding_goal", project.funding_goal)
        minimum = data.get("min_investment", project.min_investment)
        maximum = data.get("max_investment", project.max_investment)
        if goal < project.amount_raised:
            raise DataError.invalid("Funding goal cannot be less than the amount already raised")
        if minimum > goal:
            raise DataError.invalid("Minimum investment cannot exceed the funding goal")
        if maximum is not None and maximum < minimum:
            raise DataError.invalid("Maximum investment cannot be less than the minimum investment")

        status = data.get("status", project.status)
        if status == ProjectStatus.ACTIVE and goal <= project.amount_raised:
            data["status"] = ProjectStatus.FUNDED

        updated = await self._repo.update(project, data)
        self._cache.invalidate(self.CACHE_PREFIX)
        logger.info("Updated project %s (%s)", updated.id, ", ".join(sorted(data)) or "no fields")
        return updated

    @data_access("Delete project")
    async def delete_project(self, farmer: PrincipalBase, project_id: UUID) -> bool:
        """
        Delete a project that has not received any investment.

        Projects with investments are kept (the database also RESTRICTs the
        delete); cancel them instead.
        """
        project = await self._owned(farmer, project_id)
        if await self._invest_repo.count(project_id=project.id):
            raise DataError(
                DataErrorKind.CONFLICT,
                "Projects that have received investments cannot be deleted",
            )
        deleted = await self._repo.delete(project.id)
        self._cache.invalidate(self.CACHE_PREFIX)
        logger.info("Deleted project %s", project_id)
        return deleted

    @data_access("Attach project image")
    async def attach_project_image(
        self, farmer: PrincipalBase, project_id: UUID, upload: UploadFile
    ) -> Project:
        """Store a cover image (image/*, size-limited) and point ``image_url`` at it."""
        project = await self._owned(farmer, project_id)
        try:
            data = await read_upload(upload, IMAGE_TYPES)
        except UploadRejected as exc:
            raise DataError.invalid(str(exc))

        path = f"{project.id}/{timestamped_name('cover', upload.filename or 'image')}"
        try:
            url = await self._storage.upload(PROJECT_IMAGES_BUCKET, path, data)
        except StorageError:
            raise DataError(DataErrorKind.UNEXPECTED)

        try:
            updated = await self._repo.update(project, {"image_url": url})
        except Exception:
            await self._storage.delete(PROJECT_IMAGES_BUCKET, path)
            raise
        self._cache.invalidate(self.CACHE_PREFIX)
        return updated


# ── Status transition rules ──

# ``funded`` is reached only through an investment; owners may close it out.
_ALLOWED_TRANSITIONS: dict[ProjectStatus, set[ProjectStatus]] = {
    ProjectStatus.DRAFT: {ProjectStatus.DRAFT, ProjectStatus.ACTIVE, ProjectStatus.CANCELLED},
    ProjectStatus.ACTIVE: {
        ProjectStatus.ACTIVE,
        ProjectStatus.COMPLETED,
        ProjectStatus.CANCELLED,
    },
    ProjectStatus.FUNDED: {ProjectStatus.FUNDED, ProjectStatus.COMPLETED, ProjectStatus.CANCELLED},
    ProjectStatus.COMPLETED: {ProjectStatus.COMPLETED},
    ProjectStatus.CANCELLED: {ProjectStatus.CANCELLED},
}


def _validate_status_transition(current: ProjectStatus, requested: ProjectStatus) -> None:
    if requested not in _ALLOWED_TRANSITIONS.get(current, set()):
        raise DataError.invalid(
            f"Invalid status transition: '{current.value}' → '{requested.value}'"
        )
