"""
Investment repository — data-access layer for the ``investments`` table.

The joined reads back the investor portfolio, the investment detail page and
the farmer's per-project investor list.
"""

from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.future import select
from sqlalchemy.orm import aliased

from agrofund.models.investment import Investment
from agrofund.models.project import Project
from agrofund.models.user import User
from agrofund.repositories.base import BaseRepository


class InvestmentRepository(BaseRepository[Investment]):
    """Concrete repository for :class:`Investment` entities."""

    async def list_for_investor(
        self, investor_id: UUID, skip: int = 0, limit: int = 100
    ) -> List[Tuple[Investment, Project, str]]:
        """
        An investor's stakes with their project and the farmer's name, newest first.

        Served by ``ix_investments_investor_created``.
        """

        async def _list() -> List[Tuple[Investment, Project, str]]:
            farmer = aliased(User)
            stmt = (
                select(Investment, Project, farmer.name)
                .join(Project, Project.id == Investment.project_id)
                .join(farmer, farmer.id == Project.farmer_id)
                .where(Investment.investor_id == investor_id)
                .order_by(Investment.created_at.desc(), Investment.id)
                .offset(skip)
                .limit(limit)
            )
            result = await self.db.execute(stmt)
            return [(inv, project, name) for inv, project, name in result.all()]

        return await self._execute_with_circuit_breaker(_list)

    async def get_detail(self, investment_id: UUID) -> Optional[Tuple[Investment, Project, User]]:
        """An investment with its project and its investor."""

        async def _get() -> Optional[Tuple[Investment, Project, User]]:
            stmt = (
                select(Investment, Project, User)
                .join(Project, Project.id == Investment.project_id)
                .join(User, User.id == Investment.investor_id)
                .where(Investment.id == investment_id)
            )
            row = (await self.db.execute(stmt)).first()
            return (row[0], row[1], row[2]) if row is not None else None

        return await self._execute_with_circuit_breaker(_get)

    async def list_for_project(
        self, project_id: UUID, skip: int = 0, limit: int = 100
    ) -> List[Tuple[Investment, str]]:
        async def _list() -> List[Tuple[Investment, str]]:
            stmt = (
                select(Investment, User.name)
                .join(User, User.id == Investment.investor_id)
                .where(Investment.project_id == project_id)
                .order_by(Investment.created_at.desc(), Investment.id)
                .offset(skip)
                .limit(limit)
            )
            result = await self.db.execute(stmt)
            return [(inv, name) for inv, name in result.all()]

        return await self._execute_with_circuit_breaker(_list)
