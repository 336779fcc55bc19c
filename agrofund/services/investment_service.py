"""
Investment service — business logic layer for investments.

The core operation is :meth:`InvestmentService.commit_investment`: one
database transaction that locks the project row, validates the amount
against a fresh snapshot, inserts the investment, atomically increments the
project's raised total (flipping it to ``funded`` at the goal) and notifies
both parties.  Any failure rolls back every write; change events for the
new rows reach realtime subscribers only after the commit.

Caching:
    Portfolio reads are cached under ``investments:``; a committed
    investment invalidates ``investments:`` and ``projects:``.
"""

import logging
from typing import List
from uuid import UUID

from agrofund.core.cache import TTLCache
from agrofund.core.results import DataError, data_access
from agrofund.db.changes import record_change, row_snapshot
from agrofund.models.investment import Investment, InvestmentStatus
from agrofund.models.notification import Notification, NotificationCategory
from agrofund.models.project import ProjectStatus
from agrofund.models.user import UserRole
from agrofund.realtime.feed import EventType
from agrofund.repositories.investment_repo import InvestmentRepository
from agrofund.repositories.notification_repo import NotificationRepository
from agrofund.repositories.project_repo import ProjectRepository
from agrofund.schemas.common import format_naira
from agrofund.schemas.investment import (
    InvestmentDetail,
    InvestmentForm,
    InvestmentWithProject,
    ProjectInvestment,
)
from agrofund.schemas.project import ProjectResponse
from agrofund.schemas.user import PrincipalBase
from agrofund.validation import check_investment_amount

logger = logging.getLogger(__name__)

EXCEEDS_REMAINING = "Investment amount exceeds remaining funding needed"
FARMER_PROJECTS_URL = "/dashboard/farmer/my-projects"
INVESTOR_PORTFOLIO_URL = "/dashboard/investor/my-investments"


class InvestmentService:
    """
    Investment commits and portfolio reads.

    All repositories must share one session: the commit spans all three.
    """

    CACHE_PREFIX = "investments:"
    PROJECTS_CACHE_PREFIX = "projects:"

    def __init__(
        self,
        invest_repo: InvestmentRepository,
        project_repo: ProjectRepository,
        notification_repo: NotificationRepository,
        cache: TTLCache,
    ):
        self._invest_repo = invest_repo
        self._project_repo = project_repo
        self._notification_repo = notification_repo
        self._cache = cache

    # ── Queries ──

    @data_access("List investments")
    async def list_investments(
        self, investor_id: UUID, skip: int = 0, limit: int = 100
    ) -> List[InvestmentWithProject]:
        """An investor's portfolio, newest first (cache-backed)."""
        cache_key = f"{self.CACHE_PREFIX}investor:{investor_id}:{skip}:{limit}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        rows = await self._invest_repo.list_for_investor(investor_id, skip=skip, limit=limit)
        items = [
            InvestmentWithProject(
                **investment.model_dump(),
                project=ProjectResponse.model_validate(project),
                farmer_name=farmer_name,
            )
            for investment, project, farmer_name in rows
        ]
        self._cache.set(cache_key, items)
        return items

    @data_access("Get investment")
    async def get_investment(self, investment_id: UUID, viewer: PrincipalBase) -> InvestmentDetail:
        """
        One investment with its project and investor.

        Visible to the investor, the project's farmer and admins.
        """
        row = await self._invest_repo.get_detail(investment_id)
        if row is None:
            raise DataError.not_found("Investment not found")
        investment, project, investor = row
        if viewer.role != UserRole.ADMIN and viewer.id not in (investor.id, project.farmer_id):
            raise DataError.forbidden()
        return InvestmentDetail(
            **investment.model_dump(),
            project=ProjectResponse.model_validate(project),
            investor_name=investor.name,
            investor_email=investor.email,
        )

    @data_access("List project investments")
    async def list_project_investments(
        self, project_id: UUID, viewer: PrincipalBase, skip: int = 0, limit: int = 100
    ) -> List[ProjectInvestment]:
        """Stakes in one project; only its farmer and admins may look."""
        project = await self._project_repo.get(project_id)
        if project is None:
            raise DataError.not_found("Project not found")
        if viewer.role != UserRole.ADMIN and viewer.id != project.farmer_id:
            raise DataError.forbidden()
        rows = await self._invest_repo.list_for_project(project_id, skip=skip, limit=limit)
        return [
            ProjectInvestment(**investment.model_dump(), investor_name=name)
            for investment, name in rows
        ]

    # ── Commands ──

    @data_access("Commit investment")
    async def commit_investment(self, investor: PrincipalBase, form: InvestmentForm) -> Investment:
        """
        Invest ``form.amount`` in ``form.project_id`` on behalf of ``investor``.

        Sequence (one transaction):
        1. Lock and re-read the project.
        2. Reject without writing if it is missing, not active, or the
           amount breaks its minimum/maximum or exceeds what remains.
        3. Insert the investment (``active``, or ``pending`` when
           ``pending_payment``) with the project's expected return.
        4. Conditionally increment ``amount_raised``; no qualifying row means
           a concurrent investment took the remaining room → reject.
           Reaching the goal sets ``status = funded``.
        5. Notify the farmer and the investor.
        6. Commit.
        """
        if investor.role != UserRole.INVESTOR:
            raise DataError.forbidden("Only investors can invest in projects")
        if not form.accept_terms:
            raise DataError.invalid("You must accept the terms and conditions")

        db = self._invest_repo.db
        try:
            # 1 ─ Fresh, locked snapshot
            project = await self._project_repo.get_for_update(form.project_id)
            if project is None:
                raise DataError.not_found("Project not found")

            # 2 ─ Business rules against the snapshot
            problem = check_investment_amount(form.amount, project)
            if problem:
                raise DataError.invalid(problem)
            previous = row_snapshot(project)

            # 3 ─ Investment row
            investment = await self._invest_repo.add(
                Investment(
                    investor_id=investor.id,
                    project_id=project.id,
                    amount=form.amount,
                    status=(
                        InvestmentStatus.PENDING if form.pending_payment else InvestmentStatus.ACTIVE
                    ),
                    expected_return=project.expected_return,
                )
            )

            # 4 ─ Atomic increment guarded by the goal
            new_total = await self._project_repo.increment_raised(project.id, form.amount)
            if new_total is None:
                raise DataError.invalid(EXCEEDS_REMAINING)
            if new_total >= project.funding_goal:
                await self._project_repo.set_status(project.id, ProjectStatus.FUNDED)
            await self._project_repo.refresh(project)
            record_change(
                db, EventType.UPDATE, "projects", new=row_snapshot(project), old=previous
            )

            # 5 ─ Notifications
            amount = format_naira(form.amount)
            await self._notification_repo.add(
                Notification(
                    user_id=project.farmer_id,
                    title="New Investment Received",
                    message=f"{investor.name} invested {amount} in {project.title}",
                    category=NotificationCategory.INVESTMENT,
                    action_url=FARMER_PROJECTS_URL,
                )
            )
            await self._notification_repo.add(
                Notification(
                    user_id=investor.id,
                    title="Investment Confirmed",
                    message=f"Your investment of {amount} in {project.title} has been confirmed",
                    category=NotificationCategory.INVESTMENT,
                    action_url=INVESTOR_PORTFOLIO_URL,
                )
            )

            # 6 ─ Commit once
            await self._invest_repo.commit()
        except Exception:
            await self._invest_repo.rollback()
            raise

        self._cache.invalidate(self.CACHE_PREFIX, self.PROJECTS_CACHE_PREFIX)
        logger.info(
            "Committed investment %s: investor %s → project %s (%s, raised %s/%s, %s)",
            investment.id,
            investor.id,
            project.id,
            amount,
            project.amount_raised,
            project.funding_goal,
            project.status.value,
            extra={"user_id": str(investor.id), "project_id": str(project.id)},
        )
        return investment
