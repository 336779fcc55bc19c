"""
Project repository — data-access layer for the ``projects`` table.

Adds the farmer join used by the marketplace views, a locking read for the
investment flow, and the conditional increment that keeps
``amount_raised <= funding_goal`` under concurrent investors.
"""

from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.future import select

from agrofund.models.mixins import utcnow
from agrofund.models.project import Project, ProjectCategory, ProjectStatus
from agrofund.models.user import User
from agrofund.repositories.base import BaseRepository


class ProjectRepository(BaseRepository[Project]):
    """Concrete repository for :class:`Project` entities."""

    async def list_with_farmer(
        self,
        category: Optional[ProjectCategory] = None,
        status: Optional[ProjectStatus] = None,
        farmer_id: Optional[UUID] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Tuple[Project, User]]:
        """
        Projects joined with their farmer, newest first.

        ``None`` filters are not applied.  ``ix_projects_status_created``
        serves the default marketplace query (active projects by date).
        """

        async def _list() -> List[Tuple[Project, User]]:
            stmt = select(Project, User).join(User, User.id == Project.farmer_id)
            if category is not None:
                stmt = stmt.where(Project.category == category)
            if status is not None:
                stmt = stmt.where(Project.status == status)
            if farmer_id is not None:
                stmt = stmt.where(Project.farmer_id == farmer_id)
            stmt = stmt.order_by(Project.created_at.desc(), Project.id).offset(skip).limit(limit)
            result = await self.db.execute(stmt)
            return [(project, farmer) for project, farmer in result.all()]

        return await self._execute_with_circuit_breaker(_list)

    async def get_with_farmer(self, project_id: UUID) -> Optional[Tuple[Project, User]]:
        async def _get() -> Optional[Tuple[Project, User]]:
            stmt = (
                select(Project, User)
                .join(User, User.id == Project.farmer_id)
                .where(Project.id == project_id)
            )
            row = (await self.db.execute(stmt)).first()
            return (row[0], row[1]) if row is not None else None

        return await self._execute_with_circuit_breaker(_get)

    async def get_for_update(self, project_id: UUID) -> Optional[Project]:
        """
        Fresh snapshot of a project, row-locked until the transaction ends.

        SQLite ignores ``FOR UPDATE``; its single writer serialises anyway.
        """

        async def _get() -> Optional[Project]:
            stmt = (
                select(Project)
                .where(Project.id == project_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            return (await self.db.execute(stmt)).scalars().first()

        return await self._execute_with_circuit_breaker(_get)

    async def increment_raised(self, project_id: UUID, amount: Decimal) -> Optional[Decimal]:
        """
        Atomically add ``amount`` to ``amount_raised`` if it still fits the goal.

        Returns the new total, or ``None`` when no row qualified (the project
        is gone or a concurrent investment consumed the remaining room).
        Does not commit.
        """

        async def _increment() -> Optional[Decimal]:
            stmt = (
                update(Project)
                .where(
                    Project.id == project_id,
                    Project.amount_raised + amount <= Project.funding_goal,
                )
                .values(amount_raised=Project.amount_raised + amount, updated_at=utcnow())
                .returning(Project.amount_raised)
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(stmt)
            return result.scalar_one_or_none()

        return await self._execute_with_circuit_breaker(_increment)

    async def set_status(self, project_id: UUID, status: ProjectStatus) -> None:
        """Bulk status change inside the current transaction (no commit)."""

        async def _set() -> None:
            stmt = (
                update(Project)
                .where(Project.id == project_id)
                .values(status=status, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(stmt)

        await self._execute_with_circuit_breaker(_set)

    async def refresh(self, project: Project) -> Project:
        await self._execute_with_circuit_breaker(self.db.refresh, project)
        return project

    async def count_by_status(self) -> Dict[str, int]:
        async def _count() -> Dict[str, int]:
            stmt = select(Project.status, func.count()).group_by(Project.status)
            result = await self.db.execute(stmt)
            return {status.value: count for status, count in result.all()}

        return await self._execute_with_circuit_breaker(_count)

    async def total_raised(self) -> Decimal:
        async def _total() -> Decimal:
            stmt = select(func.coalesce(func.sum(Project.amount_raised), 0))
            result = await self.db.execute(stmt)
            return Decimal(str(result.scalar_one()))

        return await self._execute_with_circuit_breaker(_total)
