"""
Unit tests for InvestmentService — business logic layer.

All repository calls are mocked.  Tests cover:
- commit_investment: exact fill flips the project to funded, amount beyond
  what remains, below the minimum, concurrent increment losing the race,
  role and terms checks, non-active and missing projects, pending payment
- portfolio reads: cached list, visibility of a single investment
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from agrofund.core.results import DataErrorKind
from agrofund.db.changes import PENDING_KEY
from agrofund.models.investment import InvestmentStatus
from agrofund.models.notification import NotificationCategory
from agrofund.models.project import ProjectStatus
from agrofund.models.user import UserRole
from agrofund.realtime.feed import EventType
from agrofund.schemas.investment import InvestmentForm
from agrofund.services.investment_service import EXCEEDS_REMAINING, InvestmentService

from .conftest import (
    FARMER_ID,
    INVESTOR_ID,
    OTHER_USER_ID,
    PROJECT_ID,
    make_investment,
    make_principal,
    make_project,
    make_user,
    mock_repo,
)

# ────────────────────────────────────────────────────────────────────────────
# Fixtures
# ────────────────────────────────────────────────────────────────────────────


@pytest.fixture()
def invest_repo():
    repo = mock_repo()
    repo.add.side_effect = lambda obj: obj
    return repo


@pytest.fixture()
def project_repo(invest_repo):
    return mock_repo(invest_repo.db)


@pytest.fixture()
def notification_repo(invest_repo):
    repo = mock_repo(invest_repo.db)
    repo.add.side_effect = lambda obj: obj
    return repo


@pytest.fixture()
def service(invest_repo, project_repo, notification_repo, test_cache):
    return InvestmentService(invest_repo, project_repo, notification_repo, test_cache)


@pytest.fixture()
def investor():
    return make_principal(UserRole.INVESTOR)


def _form(amount: str, **kwargs) -> InvestmentForm:
    """Build a form without schema validation so the service rules are what is tested."""
    values = {"project_id": PROJECT_ID, "accept_terms": True, "pending_payment": False}
    values.update(kwargs)
    return InvestmentForm.model_construct(amount=Decimal(amount), **values)


def _refresh_to(total: Decimal, status: ProjectStatus | None = None):
    """Side effect emulating a re-read of the project after the atomic increment."""

    def _refresh(project):
        project.amount_raised = total
        if status is not None:
            project.status = status
        return project

    return _refresh


# ────────────────────────────────────────────────────────────────────────────
# commit_investment — success paths
# ────────────────────────────────────────────────────────────────────────────


class TestCommitInvestmentSuccess:
    @pytest.mark.asyncio
    async def test_exact_fill_marks_project_funded(
        self, service, invest_repo, project_repo, investor
    ):
        project = make_project(funding_goal=Decimal("500000"), amount_raised=Decimal("450000"))
        project_repo.get_for_update.return_value = project
        project_repo.increment_raised.return_value = Decimal("500000")
        project_repo.refresh.side_effect = _refresh_to(Decimal("500000"), ProjectStatus.FUNDED)

        result = await service.commit_investment(investor, _form("50000"))

        assert result.ok
        assert result.data.amount == Decimal("50000")
        assert result.data.status == InvestmentStatus.ACTIVE
        assert result.data.expected_return == project.expected_return
        project_repo.increment_raised.assert_awaited_once_with(PROJECT_ID, Decimal("50000"))
        project_repo.set_status.assert_awaited_once_with(PROJECT_ID, ProjectStatus.FUNDED)
        invest_repo.commit.assert_awaited_once()
        invest_repo.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_partial_fill_keeps_project_active(self, service, project_repo, investor):
        project_repo.get_for_update.return_value = make_project(amount_raised=Decimal("350000"))
        project_repo.increment_raised.return_value = Decimal("400000")
        project_repo.refresh.side_effect = _refresh_to(Decimal("400000"))

        result = await service.commit_investment(investor, _form("50000"))

        assert result.ok
        project_repo.set_status.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_notifies_farmer_and_investor(
        self, service, project_repo, notification_repo, investor
    ):
        project_repo.get_for_update.return_value = make_project()
        project_repo.increment_raised.return_value = Decimal("50000")
        project_repo.refresh.side_effect = _refresh_to(Decimal("50000"))

        await service.commit_investment(investor, _form("50000"))

        sent = [call.args[0] for call in notification_repo.add.await_args_list]
        assert [n.user_id for n in sent] == [FARMER_ID, INVESTOR_ID]
        assert sent[0].title == "New Investment Received"
        assert sent[0].message == (
            "Chidi Eze invested ₦50,000 in Organic Rice Farming - Kebbi State"
        )
        assert sent[0].action_url == "/dashboard/farmer/my-projects"
        assert sent[1].title == "Investment Confirmed"
        assert sent[1].action_url == "/dashboard/investor/my-investments"
        assert all(n.category == NotificationCategory.INVESTMENT for n in sent)

    @pytest.mark.asyncio
    async def test_records_project_update_for_realtime(
        self, service, invest_repo, project_repo, investor
    ):
        project_repo.get_for_update.return_value = make_project(amount_raised=Decimal("100000"))
        project_repo.increment_raised.return_value = Decimal("150000")
        project_repo.refresh.side_effect = _refresh_to(Decimal("150000"))

        await service.commit_investment(investor, _form("50000"))

        (change,) = invest_repo.db.info[PENDING_KEY]
        assert change.event_type == EventType.UPDATE
        assert change.table == "projects"
        assert change.old["amount_raised"] == "100000"
        assert change.new["amount_raised"] == "150000"

    @pytest.mark.asyncio
    async def test_pending_payment_records_pending_investment(
        self, service, project_repo, investor
    ):
        project_repo.get_for_update.return_value = make_project()
        project_repo.increment_raised.return_value = Decimal("50000")
        project_repo.refresh.side_effect = _refresh_to(Decimal("50000"))

        result = await service.commit_investment(investor, _form("50000", pending_payment=True))

        assert result.data.status == InvestmentStatus.PENDING

    @pytest.mark.asyncio
    async def test_invalidates_project_and_portfolio_cache(
        self, service, project_repo, investor, test_cache
    ):
        test_cache.set("projects:list:None:None:None:0:100", ["stale"])
        test_cache.set(f"investments:investor:{INVESTOR_ID}:0:100", ["stale"])
        project_repo.get_for_update.return_value = make_project()
        project_repo.increment_raised.return_value = Decimal("50000")
        project_repo.refresh.side_effect = _refresh_to(Decimal("50000"))

        await service.commit_investment(investor, _form("50000"))

        assert test_cache.get("projects:list:None:None:None:0:100") is None
        assert test_cache.get(f"investments:investor:{INVESTOR_ID}:0:100") is None


# ────────────────────────────────────────────────────────────────────────────
# commit_investment — rejections
# ────────────────────────────────────────────────────────────────────────────


class TestCommitInvestmentRejected:
    @pytest.mark.asyncio
    async def test_amount_beyond_remaining_is_rejected_without_writes(
        self, service, invest_repo, project_repo, investor
    ):
        project_repo.get_for_update.return_value = make_project(
            funding_goal=Decimal("500000"), amount_raised=Decimal("450000")
        )

        result = await service.commit_investment(investor, _form("60000"))

        assert not result.ok
        assert result.error.kind == DataErrorKind.INVALID
        assert result.error.message == EXCEEDS_REMAINING
        invest_repo.add.assert_not_awaited()
        project_repo.increment_raised.assert_not_awaited()
        invest_repo.commit.assert_not_awaited()
        invest_repo.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_below_minimum_is_rejected(self, service, invest_repo, project_repo, investor):
        project_repo.get_for_update.return_value = make_project()

        result = await service.commit_investment(investor, _form("500"))

        assert result.error.message == "Minimum investment is ₦1,000"
        invest_repo.add.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_project_minimum_overrides_global_floor(self, service, project_repo, investor):
        project_repo.get_for_update.return_value = make_project(min_investment=Decimal("20000"))

        result = await service.commit_investment(investor, _form("10000"))

        assert result.error.message == "Minimum investment is ₦20,000"

    @pytest.mark.asyncio
    async def test_project_maximum_is_enforced(self, service, project_repo, investor):
        project_repo.get_for_update.return_value = make_project(max_investment=Decimal("100000"))

        result = await service.commit_investment(investor, _form("150000"))

        assert result.error.message == "Maximum investment is ₦100,000"

    @pytest.mark.asyncio
    async def test_losing_a_concurrent_race_rolls_back(
        self, service, invest_repo, project_repo, notification_repo, investor
    ):
        """The snapshot allowed it, but another investment took the room first."""
        project_repo.get_for_update.return_value = make_project(amount_raised=Decimal("450000"))
        project_repo.increment_raised.return_value = None

        result = await service.commit_investment(investor, _form("50000"))

        assert result.error.kind == DataErrorKind.INVALID
        assert result.error.message == EXCEEDS_REMAINING
        invest_repo.add.assert_awaited_once()
        notification_repo.add.assert_not_awaited()
        invest_repo.commit.assert_not_awaited()
        invest_repo.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_only_investors_may_invest(self, service, project_repo):
        farmer = make_principal(UserRole.FARMER)

        result = await service.commit_investment(farmer, _form("50000"))

        assert result.error.kind == DataErrorKind.FORBIDDEN
        assert result.error.message == "Only investors can invest in projects"
        project_repo.get_for_update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_terms_must_be_accepted(self, service, project_repo, investor):
        result = await service.commit_investment(investor, _form("50000", accept_terms=False))

        assert result.error.message == "You must accept the terms and conditions"
        project_repo.get_for_update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_active_project_is_rejected(self, service, project_repo, investor):
        project_repo.get_for_update.return_value = make_project(status=ProjectStatus.FUNDED)

        result = await service.commit_investment(investor, _form("50000"))

        assert result.error.message == "Project is not accepting investments"

    @pytest.mark.asyncio
    async def test_missing_project_is_not_found(self, service, project_repo, investor):
        project_repo.get_for_update.return_value = None

        result = await service.commit_investment(investor, _form("50000"))

        assert result.error.kind == DataErrorKind.NOT_FOUND
        assert result.error.message == "Project not found"

    @pytest.mark.asyncio
    async def test_store_outage_is_reported_as_unexpected(
        self, service, invest_repo, project_repo, investor
    ):
        project_repo.get_for_update.side_effect = ConnectionError("database unreachable")

        result = await service.commit_investment(investor, _form("50000"))

        assert result.error.kind == DataErrorKind.UNEXPECTED
        invest_repo.rollback.assert_awaited_once()


# ────────────────────────────────────────────────────────────────────────────
# Portfolio reads
# ────────────────────────────────────────────────────────────────────────────


class TestInvestmentReads:
    @pytest.mark.asyncio
    async def test_list_investments_is_cached(self, service, invest_repo):
        invest_repo.list_for_investor.return_value = [
            (make_investment(), make_project(), "Aminu Hassan")
        ]

        first = await service.list_investments(INVESTOR_ID)
        second = await service.list_investments(INVESTOR_ID)

        assert first.data == second.data
        assert first.data[0].farmer_name == "Aminu Hassan"
        assert first.data[0].project.title == "Organic Rice Farming - Kebbi State"
        invest_repo.list_for_investor.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_investment_visible_to_project_farmer(self, service, invest_repo):
        invest_repo.get_detail.return_value = (
            make_investment(),
            make_project(),
            make_user(UserRole.INVESTOR),
        )

        result = await service.get_investment(uuid4(), make_principal(UserRole.FARMER))

        assert result.ok
        assert result.data.investor_email == "chidi@example.com"

    @pytest.mark.asyncio
    async def test_investment_hidden_from_strangers(self, service, invest_repo):
        invest_repo.get_detail.return_value = (
            make_investment(),
            make_project(),
            make_user(UserRole.INVESTOR),
        )
        stranger = make_principal(UserRole.INVESTOR, id=OTHER_USER_ID, email="x@example.com")

        result = await service.get_investment(uuid4(), stranger)

        assert result.error.kind == DataErrorKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_project_investments_only_for_owner(self, service, project_repo, invest_repo):
        project_repo.get.return_value = make_project()
        invest_repo.list_for_project.return_value = [(make_investment(), "Chidi Eze")]

        owner_view = await service.list_project_investments(
            PROJECT_ID, make_principal(UserRole.FARMER)
        )
        investor_view = await service.list_project_investments(
            PROJECT_ID, make_principal(UserRole.INVESTOR)
        )

        assert owner_view.data[0].investor_name == "Chidi Eze"
        assert investor_view.error.kind == DataErrorKind.FORBIDDEN
