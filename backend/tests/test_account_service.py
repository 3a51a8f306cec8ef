"""
Snapcheck Backend — Account Service Tests
===========================================

What:  AccountService rules against a real SQLite database.
How:   Rows are created with the `factory` fixture; time-dependent methods
       receive a fixed NOW. Stripe is patched at the service boundary.

What we test:
    ✅ Plan resolution (forced, purchase, free fallback)
    ✅ Consumption period and private screenshot counting
    ✅ Consumption ratio and the 10% grace threshold
    ✅ Purchase status decision table
    ✅ Read/write permissions and get_writable_account errors
    ✅ Account type invariant (exactly one of user and team)
    ✅ Account update rules (reserved slug, duplicate slug, name clearing)
    ✅ Trial termination through Stripe
    ✅ Avatar and full response assembly
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.exceptions import (
    BillingServiceError,
    ForbiddenError,
    InvariantError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from app.models import UNLIMITED, Account, Purchase
from app.schemas.account import Permission, PurchaseStatus, UpdateAccountInput
from app.services.account_service import AVATAR_COLORS, AccountService
from app.services.stripe_service import StripeService

NOW = datetime(2024, 3, 20, 12, 0, tzinfo=timezone.utc)
MONTH_START = datetime(2024, 3, 1, tzinfo=timezone.utc)


@pytest.fixture
def service():
    return AccountService()


# ══════════════════════════════════════════════════════════════════════════
# Plan resolution
# ══════════════════════════════════════════════════════════════════════════

class TestGetPlan:

    @pytest.mark.asyncio
    async def test_falls_back_to_free_plan(self, service, db_session, factory):
        free = await factory.plan(name="free", screenshots_limit_per_month=5000)
        account = await factory.team_account()

        assert (await service.get_plan(db_session, account, NOW)).id == free.id

    @pytest.mark.asyncio
    async def test_no_plan_at_all(self, service, db_session, factory):
        account = await factory.team_account()
        assert await service.get_plan(db_session, account, NOW) is None
        assert await service.get_screenshots_monthly_limit(db_session, account, NOW) is None

    @pytest.mark.asyncio
    async def test_forced_plan_wins(self, service, db_session, factory):
        forced = await factory.plan(name="enterprise", screenshots_limit_per_month=UNLIMITED)
        pro = await factory.plan(name="pro")
        account = await factory.team_account(forced_plan_id=forced.id)
        await factory.purchase(account, pro, start_date=NOW - timedelta(days=40))

        assert (await service.get_plan(db_session, account, NOW)).id == forced.id

    @pytest.mark.asyncio
    async def test_active_purchase_with_highest_limit(self, service, db_session, factory):
        small = await factory.plan(name="starter", screenshots_limit_per_month=1000)
        big = await factory.plan(name="pro", screenshots_limit_per_month=50000)
        account = await factory.team_account()
        await factory.purchase(account, small, start_date=NOW - timedelta(days=60))
        await factory.purchase(account, big, start_date=NOW - timedelta(days=10))

        purchase = await service.get_active_purchase(db_session, account, NOW)
        assert purchase.plan_id == big.id
        assert (await service.get_plan(db_session, account, NOW)).name == "pro"

    @pytest.mark.asyncio
    async def test_ignores_ended_and_future_purchases(self, service, db_session, factory):
        pro = await factory.plan(name="pro")
        account = await factory.team_account()
        await factory.purchase(
            account, pro,
            start_date=NOW - timedelta(days=90),
            end_date=NOW - timedelta(days=1),
        )
        await factory.purchase(account, pro, start_date=NOW + timedelta(days=1))

        assert await service.get_active_purchase(db_session, account, NOW) is None

    @pytest.mark.asyncio
    async def test_purchase_ending_later_is_active(self, service, db_session, factory):
        pro = await factory.plan(name="pro")
        account = await factory.team_account()
        purchase = await factory.purchase(
            account, pro,
            start_date=NOW - timedelta(days=20),
            end_date=NOW + timedelta(days=10),
        )

        assert (await service.get_active_purchase(db_session, account, NOW)).id == purchase.id

    @pytest.mark.asyncio
    async def test_paid_and_usage_based_flags(self, service, db_session, factory):
        await factory.plan(name="free", screenshots_limit_per_month=5000)
        metered = await factory.plan(name="pro", usage_based=True)
        free_account = await factory.team_account()
        paid_account = await factory.team_account()
        await factory.purchase(paid_account, metered, start_date=NOW - timedelta(days=3))

        assert await service.has_paid_plan(db_session, free_account, NOW) is False
        assert await service.has_usage_based_plan(db_session, free_account, NOW) is False
        assert await service.has_paid_plan(db_session, paid_account, NOW) is True
        assert await service.has_usage_based_plan(db_session, paid_account, NOW) is True

    @pytest.mark.asyncio
    async def test_old_paid_purchase_is_latest_ended_non_free(self, service, db_session, factory):
        free = await factory.plan(name="free", screenshots_limit_per_month=5000)
        pro = await factory.plan(name="pro")
        account = await factory.team_account()
        older = await factory.purchase(
            account, pro, start_date=NOW - timedelta(days=200), end_date=NOW - timedelta(days=100)
        )
        latest = await factory.purchase(
            account, pro, start_date=NOW - timedelta(days=90), end_date=NOW - timedelta(days=30)
        )
        await factory.purchase(
            account, free, start_date=NOW - timedelta(days=29), end_date=NOW - timedelta(days=2)
        )

        result = await service.get_old_paid_purchase(db_session, account, NOW)
        assert result.id == latest.id
        assert result.id != older.id


# ══════════════════════════════════════════════════════════════════════════
# Consumption
# ══════════════════════════════════════════════════════════════════════════

class TestConsumption:

    @pytest.mark.asyncio
    async def test_period_without_purchase_is_calendar_month(self, service, db_session, factory):
        account = await factory.team_account()

        assert await service.get_current_consumption_start_date(db_session, account, NOW) == MONTH_START
        assert await service.get_current_consumption_end_date(db_session, account, NOW) == datetime(
            2024, 4, 1, tzinfo=timezone.utc
        )

    @pytest.mark.asyncio
    async def test_period_follows_purchase_anniversary(self, service, db_session, factory):
        pro = await factory.plan(name="pro")
        account = await factory.team_account()
        await factory.purchase(account, pro, start_date=datetime(2024, 1, 25, tzinfo=timezone.utc))

        start = await service.get_current_consumption_start_date(db_session, account, NOW)
        end = await service.get_current_consumption_end_date(db_session, account, NOW)
        assert start == datetime(2024, 2, 25, tzinfo=timezone.utc)
        assert end == datetime(2024, 3, 25, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_forced_plan_uses_calendar_month(self, service, db_session, factory):
        forced = await factory.plan(name="enterprise")
        account = await factory.team_account(forced_plan_id=forced.id)
        await factory.purchase(account, forced, start_date=datetime(2024, 1, 25, tzinfo=timezone.utc))

        assert await service.get_current_consumption_start_date(db_session, account, NOW) == MONTH_START

    @pytest.mark.asyncio
    async def test_counts_private_screenshots_of_the_period(self, service, db_session, factory):
        account = await factory.team_account()
        other_account = await factory.team_account()
        private_repo = await factory.github_repository(private=True)
        public_repo = await factory.github_repository(private=False)

        private_project = await factory.project(account, private=True)
        inherited_private = await factory.project(account, github_repository_id=private_repo.id)
        inherited_public = await factory.project(account, github_repository_id=public_repo.id)
        public_project = await factory.project(account, private=False)
        unlinked = await factory.project(account)
        foreign_project = await factory.project(other_account, private=True)

        this_month = NOW - timedelta(days=2)
        await factory.screenshots(private_project, 3, created_at=this_month)
        await factory.screenshots(private_project, 4, created_at=MONTH_START - timedelta(days=1))
        await factory.screenshots(inherited_private, 2, created_at=this_month)
        await factory.screenshots(inherited_public, 5, created_at=this_month)
        await factory.screenshots(public_project, 6, created_at=this_month)
        await factory.screenshots(unlinked, 7, created_at=this_month)
        await factory.screenshots(foreign_project, 8, created_at=this_month)

        assert await service.get_screenshots_current_consumption(db_session, account, NOW) == 5

    @pytest.mark.asyncio
    async def test_ratio_without_plan_is_none(self, service, db_session, factory):
        account = await factory.team_account()
        assert await service.get_screenshots_consumption_ratio(db_session, account, NOW) is None
        assert await service.has_exceeded_screenshots_monthly_limit(db_session, account, NOW) is False

    @pytest.mark.asyncio
    async def test_ratio_with_zero_limit_is_none(self, service, db_session, factory):
        await factory.plan(name="free", screenshots_limit_per_month=0)
        account = await factory.team_account()
        assert await service.get_screenshots_consumption_ratio(db_session, account, NOW) is None

    @pytest.mark.asyncio
    async def test_unlimited_plan_ratio_is_zero(self, service, db_session, factory):
        unlimited = await factory.plan(name="enterprise", screenshots_limit_per_month=UNLIMITED)
        account = await factory.team_account(forced_plan_id=unlimited.id)
        project = await factory.project(account, private=True)
        await factory.screenshots(project, 3, created_at=NOW - timedelta(hours=1))

        assert await service.get_screenshots_consumption_ratio(db_session, account, NOW) == 0
        assert await service.has_exceeded_screenshots_monthly_limit(db_session, account, NOW) is False

    @pytest.mark.asyncio
    async def test_ratio_and_grace_threshold(self, service, db_session, factory):
        await factory.plan(name="free", screenshots_limit_per_month=10)
        account = await factory.team_account()
        project = await factory.project(account, private=True)
        await factory.screenshots(project, 10, created_at=NOW - timedelta(hours=1))

        assert await service.get_screenshots_consumption_ratio(db_session, account, NOW) == 1.0
        assert await service.has_exceeded_screenshots_monthly_limit(db_session, account, NOW) is False

        await factory.screenshots(project, 1, created_at=NOW - timedelta(hours=1))
        assert await service.get_screenshots_consumption_ratio(db_session, account, NOW) == pytest.approx(1.1)
        assert await service.has_exceeded_screenshots_monthly_limit(db_session, account, NOW) is True


# ══════════════════════════════════════════════════════════════════════════
# Purchase status
# ══════════════════════════════════════════════════════════════════════════

class TestPurchaseStatus:

    @pytest.mark.asyncio
    async def test_user_account_is_none(self, service, db_session, factory):
        user = await factory.user()
        account = await factory.user_account(user)
        assert await service.get_purchase_status(db_session, account, NOW) == PurchaseStatus.NONE

    @pytest.mark.asyncio
    async def test_forced(self, service, db_session, factory):
        plan = await factory.plan(name="enterprise")
        account = await factory.team_account(forced_plan_id=plan.id)
        assert await service.get_purchase_status(db_session, account, NOW) == PurchaseStatus.FORCED

    @pytest.mark.asyncio
    async def test_missing(self, service, db_session, factory):
        account = await factory.team_account()
        assert await service.get_purchase_status(db_session, account, NOW) == PurchaseStatus.MISSING

    @pytest.mark.asyncio
    async def test_trial(self, service, db_session, factory):
        plan = await factory.plan(name="pro")
        account = await factory.team_account()
        await factory.purchase(
            account, plan,
            source=Purchase.SOURCE_STRIPE,
            start_date=NOW - timedelta(days=3),
            trial_end_date=NOW + timedelta(days=11),
        )
        assert await service.get_purchase_status(db_session, account, NOW) == PurchaseStatus.TRIAL

    @pytest.mark.asyncio
    async def test_trial_canceled(self, service, db_session, factory):
        plan = await factory.plan(name="pro")
        account = await factory.team_account()
        await factory.purchase(
            account, plan,
            source=Purchase.SOURCE_STRIPE,
            start_date=NOW - timedelta(days=3),
            trial_end_date=NOW + timedelta(days=11),
            end_date=NOW + timedelta(days=11),
        )
        assert await service.get_purchase_status(db_session, account, NOW) == PurchaseStatus.TRIAL_CANCELED

    @pytest.mark.asyncio
    async def test_payment_method_missing(self, service, db_session, factory):
        plan = await factory.plan(name="pro")
        account = await factory.team_account()
        await factory.purchase(
            account, plan,
            source=Purchase.SOURCE_STRIPE,
            start_date=NOW - timedelta(days=30),
            payment_method_filled=False,
        )
        assert (
            await service.get_purchase_status(db_session, account, NOW)
            == PurchaseStatus.PAYMENT_METHOD_MISSING
        )

    @pytest.mark.asyncio
    async def test_active(self, service, db_session, factory):
        plan = await factory.plan(name="pro")
        account = await factory.team_account()
        await factory.purchase(
            account, plan,
            source=Purchase.SOURCE_STRIPE,
            start_date=NOW - timedelta(days=30),
            payment_method_filled=True,
        )
        assert await service.get_purchase_status(db_session, account, NOW) == PurchaseStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_github_purchase_is_active(self, service, db_session, factory):
        plan = await factory.plan(name="pro")
        account = await factory.team_account()
        await factory.purchase(
            account, plan,
            source=Purchase.SOURCE_GITHUB,
            start_date=NOW - timedelta(days=30),
        )
        assert await service.get_purchase_status(db_session, account, NOW) == PurchaseStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_trial_expired(self, service, db_session, factory):
        plan = await factory.plan(name="pro")
        account = await factory.team_account()
        await factory.purchase(
            account, plan,
            source=Purchase.SOURCE_STRIPE,
            start_date=NOW - timedelta(days=20),
            trial_end_date=NOW - timedelta(days=6),
            end_date=NOW - timedelta(days=6),
        )
        assert await service.get_purchase_status(db_session, account, NOW) == PurchaseStatus.TRIAL_EXPIRED

    @pytest.mark.asyncio
    async def test_canceled(self, service, db_session, factory):
        plan = await factory.plan(name="pro")
        account = await factory.team_account()
        await factory.purchase(
            account, plan,
            source=Purchase.SOURCE_STRIPE,
            start_date=NOW - timedelta(days=120),
            trial_end_date=NOW - timedelta(days=106),
            end_date=NOW - timedelta(days=10),
            payment_method_filled=True,
        )
        assert await service.get_purchase_status(db_session, account, NOW) == PurchaseStatus.CANCELED


# ══════════════════════════════════════════════════════════════════════════
# Permissions
# ══════════════════════════════════════════════════════════════════════════

class TestPermissions:

    @pytest.mark.asyncio
    async def test_user_account(self, service, db_session, factory):
        owner = await factory.user()
        stranger = await factory.user()
        account = await factory.user_account(owner)

        assert await service.get_permissions(db_session, account, owner) == [
            Permission.READ, Permission.WRITE
        ]
        assert await service.check_read_permission(db_session, account, stranger) is False
        assert await service.get_permissions(db_session, account, None) == []

    @pytest.mark.asyncio
    async def test_team_account(self, service, db_session, factory):
        owner = await factory.user()
        member = await factory.user()
        stranger = await factory.user()
        account = await factory.team_account(owner=owner, members=[member])

        assert await service.check_write_permission(db_session, account, owner) is True
        assert await service.check_read_permission(db_session, account, member) is True
        assert await service.check_write_permission(db_session, account, member) is False
        assert await service.get_permissions(db_session, account, member) == [Permission.READ]
        assert await service.check_read_permission(db_session, account, stranger) is False

    @pytest.mark.asyncio
    async def test_readable_account_hides_unreadable(self, service, db_session, factory):
        owner = await factory.user()
        stranger = await factory.user()
        account = await factory.team_account(owner=owner, slug="acme")

        assert (await service.get_readable_account(db_session, owner, slug="acme")).id == account.id
        with pytest.raises(NotFoundError):
            await service.get_readable_account(db_session, stranger, slug="acme")
        with pytest.raises(NotFoundError):
            await service.get_readable_account(db_session, None, slug="acme")
        with pytest.raises(NotFoundError):
            await service.get_readable_account(db_session, owner, account_id=account.id + 1000)

    @pytest.mark.asyncio
    async def test_writable_account_errors(self, service, db_session, factory):
        owner = await factory.user()
        member = await factory.user()
        account = await factory.team_account(owner=owner, members=[member])

        with pytest.raises(UnauthorizedError):
            await service.get_writable_account(db_session, account.id, None)
        with pytest.raises(NotFoundError):
            await service.get_writable_account(db_session, account.id + 1000, owner)
        with pytest.raises(ForbiddenError):
            await service.get_writable_account(db_session, account.id, member)
        assert (await service.get_writable_account(db_session, account.id, owner)).id == account.id


class TestAccountType:

    def test_user_and_team(self):
        assert Account(user_id=1).type == Account.USER
        assert Account(team_id=1).type == Account.TEAM

    @pytest.mark.parametrize("user_id, team_id", [(1, 2), (None, None)])
    def test_incoherent_owner_raises(self, user_id, team_id):
        with pytest.raises(InvariantError, match="Invariant incoherent account type"):
            Account(user_id=user_id, team_id=team_id).type

    @pytest.mark.asyncio
    async def test_permission_check_surfaces_invariant(self, service, db_session, factory):
        user = await factory.user()
        with pytest.raises(InvariantError):
            await service.check_read_permission(db_session, Account(user_id=user.id, team_id=1), user)


# ══════════════════════════════════════════════════════════════════════════
# Mutations
# ══════════════════════════════════════════════════════════════════════════

class TestUpdateAccount:

    @pytest.mark.asyncio
    async def test_reserved_slug(self, service, db_session, factory):
        user = await factory.user()
        account = await factory.user_account(user)

        with pytest.raises(ValidationError) as exc_info:
            await service.update_account(
                db_session, account.id, user, UpdateAccountInput(slug="checkout-success")
            )
        assert exc_info.value.message == "Slug is reserved for internal usage"
        assert exc_info.value.field == "slug"

    @pytest.mark.asyncio
    async def test_duplicate_slug(self, service, db_session, factory):
        user = await factory.user()
        account = await factory.user_account(user)
        await factory.team_account(slug="taken")

        with pytest.raises(ValidationError) as exc_info:
            await service.update_account(db_session, account.id, user, UpdateAccountInput(slug="taken"))
        assert exc_info.value.message == "Slug already exists"

    @pytest.mark.asyncio
    async def test_same_slug_is_accepted(self, service, db_session, factory):
        user = await factory.user()
        account = await factory.user_account(user, slug="mine")

        updated = await service.update_account(
            db_session, account.id, user, UpdateAccountInput(slug="mine", name="Me")
        )
        assert updated.slug == "mine"
        assert updated.name == "Me"

    @pytest.mark.asyncio
    async def test_name_only_touched_when_sent(self, service, db_session, factory):
        user = await factory.user()
        account = await factory.user_account(user, name="Keep me")

        updated = await service.update_account(
            db_session, account.id, user, UpdateAccountInput(slug="renamed")
        )
        assert updated.slug == "renamed"
        assert updated.name == "Keep me"

        cleared = await service.update_account(
            db_session, account.id, user, UpdateAccountInput.model_validate({"name": None})
        )
        assert cleared.name is None

    @pytest.mark.asyncio
    async def test_member_cannot_update_team(self, service, db_session, factory):
        owner = await factory.user()
        member = await factory.user()
        account = await factory.team_account(owner=owner, members=[member])

        with pytest.raises(ForbiddenError):
            await service.update_account(db_session, account.id, member, UpdateAccountInput(name="x"))


class TestTerminateTrial:

    @pytest.fixture
    def mock_stripe(self):
        with patch("app.services.account_service.stripe_service") as mock:
            mock.timestamp_to_date = StripeService.timestamp_to_date
            yield mock

    @pytest.mark.asyncio
    async def test_ends_trial_and_stores_new_end(self, service, db_session, factory, mock_stripe):
        owner = await factory.user()
        plan = await factory.plan(name="pro")
        account = await factory.team_account(owner=owner, stripe_customer_id="cus_123")
        purchase = await factory.purchase(
            account, plan,
            source=Purchase.SOURCE_STRIPE,
            start_date=NOW - timedelta(days=2),
            trial_end_date=NOW + timedelta(days=12),
        )
        trial_end = int(NOW.timestamp())
        mock_stripe.get_customer_subscription = AsyncMock(
            side_effect=[{"id": "sub_1", "trial_end": None}, {"id": "sub_1", "trial_end": trial_end}]
        )
        mock_stripe.terminate_trial = AsyncMock()

        result = await service.terminate_trial(db_session, account.id, owner, NOW)

        assert result.id == account.id
        mock_stripe.terminate_trial.assert_awaited_once_with("sub_1")
        assert purchase.trial_end_date == NOW

    @pytest.mark.asyncio
    async def test_without_trial_does_nothing(self, service, db_session, factory, mock_stripe):
        owner = await factory.user()
        plan = await factory.plan(name="pro")
        account = await factory.team_account(owner=owner, stripe_customer_id="cus_123")
        await factory.purchase(account, plan, start_date=NOW - timedelta(days=2))
        mock_stripe.get_customer_subscription = AsyncMock()

        await service.terminate_trial(db_session, account.id, owner, NOW)

        mock_stripe.get_customer_subscription.assert_not_called()

    @pytest.mark.asyncio
    async def test_requires_stripe_customer(self, service, db_session, factory, mock_stripe):
        owner = await factory.user()
        plan = await factory.plan(name="pro")
        account = await factory.team_account(owner=owner)
        await factory.purchase(
            account, plan,
            start_date=NOW - timedelta(days=2),
            trial_end_date=NOW + timedelta(days=12),
        )

        with pytest.raises(BillingServiceError) as exc_info:
            await service.terminate_trial(db_session, account.id, owner, NOW)
        assert exc_info.value.message == "No stripe customer id"


# ══════════════════════════════════════════════════════════════════════════
# Presentation
# ══════════════════════════════════════════════════════════════════════════

class TestPresentation:

    @pytest.mark.asyncio
    async def test_avatar_with_github_account(self, service, db_session, factory):
        github_account = await factory.github_account(login="acme-inc")
        account = await factory.team_account(name="acme", github_account_id=github_account.id)

        avatar = await service.get_avatar(db_session, account, size=64)

        assert avatar.url == "https://github.com/acme-inc.png?size=64"
        assert avatar.initial == "A"
        assert avatar.color == AVATAR_COLORS[account.id % len(AVATAR_COLORS)]

    @pytest.mark.asyncio
    async def test_avatar_without_github_uses_slug(self, service, db_session, factory):
        account = await factory.team_account(slug="zeta")

        avatar = await service.get_avatar(db_session, account)

        assert avatar.url is None
        assert avatar.initial == "Z"

    @pytest.mark.asyncio
    async def test_response_requires_user(self, service, db_session, factory):
        account = await factory.team_account()
        with pytest.raises(UnauthorizedError):
            await service.build_account_response(db_session, account, None)

    @pytest.mark.asyncio
    async def test_full_response(self, service, db_session, factory):
        owner = await factory.user()
        await factory.plan(name="free", screenshots_limit_per_month=10)
        account = await factory.team_account(owner=owner, slug="acme", name="Acme")
        project = await factory.project(account, private=True)
        await factory.screenshots(project, 4, created_at=NOW - timedelta(days=1))

        response = await service.build_account_response(db_session, account, owner, now=NOW)

        assert response.id == str(account.id)
        assert response.type == "team"
        assert response.plan.name == "free"
        assert response.has_paid_plan is False
        assert response.current_month_used_screenshots == 4
        assert response.consumption_ratio == pytest.approx(0.4)
        assert response.period_start_date == MONTH_START
        assert response.purchase_status == PurchaseStatus.MISSING
        assert response.permissions == [Permission.READ, Permission.WRITE]
        assert Purchase.decode_stripe_client_reference_id(response.stripe_client_reference_id) == {
            "accountId": str(account.id),
            "purchaserId": str(owner.id),
        }
