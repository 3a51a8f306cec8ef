"""
Snapcheck Backend — Account Service (Plans, Quotas, Permissions)
=================================================================

What:  Business rules attached to accounts: which plan applies, how many
       private screenshots were consumed in the current period, billing
       status, read/write permissions, and the account mutations.
How:   Stateless service; every method receives the database session and
       the account. Time-dependent methods accept `now` for determinism.
Who:   Called by the account/project/build routes and by ProjectService.

Plan resolution:
    forced plan (set by staff)            → that plan
    active purchase (highest limit first) → the purchase's plan
    otherwise                             → the "free" plan (if it exists)

Consumption period:
    forced plan or no dated purchase → current calendar month (UTC)
    otherwise                        → monthly anniversary of the purchase start

Quota:
    ratio = private screenshots this period / plan limit
    limit 0 or missing → no ratio; limit -1 → ratio 0
    limit exceeded once ratio >= 1.1 (10% grace)
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import utcnow
from app.exceptions import (
    BillingServiceError,
    DatabaseError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from app.models import (
    FREE_PLAN_NAME,
    UNLIMITED,
    Account,
    GithubAccount,
    GithubRepository,
    Plan,
    Project,
    Purchase,
    Screenshot,
    ScreenshotBucket,
    TeamUser,
    User,
)
from app.schemas.account import (
    AccountAvatar,
    AccountResponse,
    GithubAccountResponse,
    Permission,
    PlanResponse,
    PurchaseResponse,
    PurchaseStatus,
    UpdateAccountInput,
)
from app.services.stripe_service import stripe_service

logger = logging.getLogger(__name__)

# Slugs used by first-level frontend routes
RESERVED_SLUGS = frozenset([
    "auth",
    "checkout-success",
    "login",
    "vercel",
    "invite",
    "teams",
])

AVATAR_COLORS = [
    "#2a3b4c",
    "#10418e",
    "#4527a0",
    "#8ca1ee",
    "#65b7d7",
    "#65b793",
    "#00796b",
    "#9c1258",
    "#c20006",
    "#ff3d44",
    "#ffb83d",
    "#f58f00",
]

EXCEEDED_RATIO_THRESHOLD = 1.1


def start_of_month(now: datetime) -> datetime:
    """First instant of `now`'s month, in UTC."""
    now = now.astimezone(timezone.utc)
    return datetime(now.year, now.month, 1, tzinfo=timezone.utc)


def get_avatar_color(account_id: int) -> str:
    return AVATAR_COLORS[int(account_id) % len(AVATAR_COLORS)]


class AccountService:
    """
    Account rules: plan, quota, purchase status, permissions, mutations.

    Error Handling Strategy:
        Unreadable accounts are reported as missing (NotFoundError); write
        operations distinguish anonymous callers (UnauthorizedError) from
        callers without permission (ForbiddenError). SQLAlchemy failures on
        the mutation paths are wrapped in DatabaseError.
    """

    # ══════════════════════════════════════════════════════════════════════
    # Lookups
    # ══════════════════════════════════════════════════════════════════════

    async def get_account_by_slug(self, db: AsyncSession, slug: str) -> Optional[Account]:
        result = await db.execute(select(Account).where(Account.slug == slug))
        return result.scalar_one_or_none()

    async def get_account_by_id(self, db: AsyncSession, account_id: int) -> Optional[Account]:
        return await db.get(Account, account_id)

    async def get_github_account(
        self, db: AsyncSession, account: Account
    ) -> Optional[GithubAccount]:
        if not account.github_account_id:
            return None
        return await db.get(GithubAccount, account.github_account_id)

    # ══════════════════════════════════════════════════════════════════════
    # Plan & Purchases
    # ══════════════════════════════════════════════════════════════════════

    async def get_active_purchase(
        self,
        db: AsyncSession,
        account: Account,
        now: Optional[datetime] = None,
    ) -> Optional[Purchase]:
        """
        The purchase currently in effect for the account.

        Query plan:
            SELECT purchases.* FROM purchases JOIN plans ON plans.id = purchases.plan_id
            WHERE account_id = :id AND start_date < :now
              AND (end_date IS NULL OR end_date >= :now)
            ORDER BY plans.screenshots_limit_per_month DESC LIMIT 1

        When purchases overlap (e.g. upgrade during a period), the one with
        the highest screenshot limit wins.
        """
        if not account.id:
            return None
        now = now or utcnow()
        result = await db.execute(
            select(Purchase)
            .join(Plan, Plan.id == Purchase.plan_id)
            .where(Purchase.account_id == account.id)
            .where(Purchase.start_date < now)
            .where(or_(Purchase.end_date.is_(None), Purchase.end_date >= now))
            .order_by(Plan.screenshots_limit_per_month.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def get_free_plan(self, db: AsyncSession) -> Optional[Plan]:
        result = await db.execute(
            select(Plan).where(Plan.name == FREE_PLAN_NAME).order_by(Plan.id).limit(1)
        )
        return result.scalars().first()

    async def get_plan(
        self,
        db: AsyncSession,
        account: Account,
        now: Optional[datetime] = None,
    ) -> Optional[Plan]:
        """Forced plan, else the active purchase's plan, else the free plan."""
        if account.forced_plan_id:
            return await db.get(Plan, account.forced_plan_id)

        active_purchase = await self.get_active_purchase(db, account, now)
        if active_purchase:
            return active_purchase.plan

        return await self.get_free_plan(db)

    async def get_screenshots_monthly_limit(
        self,
        db: AsyncSession,
        account: Account,
        now: Optional[datetime] = None,
    ) -> Optional[int]:
        plan = await self.get_plan(db, account, now)
        return plan.screenshots_limit_per_month if plan else None

    async def has_paid_plan(
        self, db: AsyncSession, account: Account, now: Optional[datetime] = None
    ) -> bool:
        plan = await self.get_plan(db, account, now)
        return plan is not None and not plan.is_free

    async def has_usage_based_plan(
        self, db: AsyncSession, account: Account, now: Optional[datetime] = None
    ) -> bool:
        plan = await self.get_plan(db, account, now)
        return bool(plan and plan.usage_based)

    async def get_old_paid_purchase(
        self,
        db: AsyncSession,
        account: Account,
        now: Optional[datetime] = None,
    ) -> Optional[Purchase]:
        """Most recently ended purchase of a non-free plan."""
        now = now or utcnow()
        result = await db.execute(
            select(Purchase)
            .join(Plan, Plan.id == Purchase.plan_id)
            .where(Purchase.account_id == account.id)
            .where(Plan.name != FREE_PLAN_NAME)
            .where(Purchase.end_date < now)
            .order_by(Purchase.end_date.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def get_purchase_status(
        self,
        db: AsyncSession,
        account: Account,
        now: Optional[datetime] = None,
    ) -> PurchaseStatus:
        """
        Billing state shown on the account settings page.

        Decision table:
            personal account                        → none
            forced plan                             → forced
            active, trial running, no end date      → trial
            active, trial running, end date set     → trialCanceled
            active Stripe purchase, no payment      → paymentMethodMissing
            active                                  → active
            last purchase ended during its trial    → trialExpired
            last purchase ended                     → canceled
            never purchased                         → missing
        """
        now = now or utcnow()

        if account.type == Account.USER:
            return PurchaseStatus.NONE

        if account.forced_plan_id:
            return PurchaseStatus.FORCED

        purchase = await self.get_active_purchase(db, account, now)
        if purchase:
            if purchase.is_trialing(now):
                if purchase.end_date is not None:
                    return PurchaseStatus.TRIAL_CANCELED
                return PurchaseStatus.TRIAL
            if purchase.source == Purchase.SOURCE_STRIPE and not purchase.payment_method_filled:
                return PurchaseStatus.PAYMENT_METHOD_MISSING
            return PurchaseStatus.ACTIVE

        result = await db.execute(
            select(Purchase)
            .where(Purchase.account_id == account.id)
            .where(Purchase.end_date < now)
            .order_by(Purchase.end_date.desc())
            .limit(1)
        )
        last_purchase = result.scalars().first()
        if last_purchase is None:
            return PurchaseStatus.MISSING

        if (
            last_purchase.trial_end_date is not None
            and last_purchase.trial_end_date >= last_purchase.end_date
        ):
            return PurchaseStatus.TRIAL_EXPIRED
        return PurchaseStatus.CANCELED

    # ══════════════════════════════════════════════════════════════════════
    # Consumption
    # ══════════════════════════════════════════════════════════════════════

    async def get_current_consumption_start_date(
        self,
        db: AsyncSession,
        account: Account,
        now: Optional[datetime] = None,
    ) -> datetime:
        now = now or utcnow()
        purchase = await self.get_active_purchase(db, account, now)
        if account.forced_plan_id or purchase is None or purchase.start_date is None:
            return start_of_month(now)
        return purchase.get_last_reset_date(now)

    async def get_current_consumption_end_date(
        self,
        db: AsyncSession,
        account: Account,
        now: Optional[datetime] = None,
    ) -> datetime:
        start_date = await self.get_current_consumption_start_date(db, account, now)
        return start_date + relativedelta(months=1)

    async def get_screenshots_current_consumption(
        self,
        db: AsyncSession,
        account: Account,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Private screenshots uploaded by the account's projects this period.

        A project counts when it is private, or when its privacy is unset
        and its GitHub repository is private.

        Query plan:
            SELECT count(screenshots.id) FROM screenshots
            JOIN screenshot_buckets ON ... JOIN projects ON ...
            LEFT JOIN github_repositories ON ...
            WHERE screenshots.created_at >= :start AND projects.account_id = :id
              AND (projects.private IS true
                   OR (projects.private IS NULL AND github_repositories.private IS true))
        """
        start_date = await self.get_current_consumption_start_date(db, account, now)
        result = await db.execute(
            select(func.count(Screenshot.id))
            .join(ScreenshotBucket, ScreenshotBucket.id == Screenshot.screenshot_bucket_id)
            .join(Project, Project.id == ScreenshotBucket.project_id)
            .outerjoin(GithubRepository, GithubRepository.id == Project.github_repository_id)
            .where(Screenshot.created_at >= start_date)
            .where(Project.account_id == account.id)
            .where(
                or_(
                    Project.private.is_(True),
                    and_(Project.private.is_(None), GithubRepository.private.is_(True)),
                )
            )
        )
        return result.scalar() or 0

    async def get_screenshots_consumption_ratio(
        self,
        db: AsyncSession,
        account: Account,
        now: Optional[datetime] = None,
    ) -> Optional[float]:
        limit = await self.get_screenshots_monthly_limit(db, account, now)
        if not limit:
            return None
        if limit == UNLIMITED:
            return 0.0
        consumption = await self.get_screenshots_current_consumption(db, account, now)
        return consumption / limit

    async def has_exceeded_screenshots_monthly_limit(
        self,
        db: AsyncSession,
        account: Account,
        now: Optional[datetime] = None,
    ) -> bool:
        ratio = await self.get_screenshots_consumption_ratio(db, account, now)
        if not ratio:
            return False
        return ratio >= EXCEEDED_RATIO_THRESHOLD

    # ══════════════════════════════════════════════════════════════════════
    # Permissions
    # ══════════════════════════════════════════════════════════════════════

    async def _get_team_membership(
        self, db: AsyncSession, team_id: int, user: User
    ) -> Optional[TeamUser]:
        result = await db.execute(
            select(TeamUser)
            .where(TeamUser.team_id == team_id)
            .where(TeamUser.user_id == user.id)
        )
        return result.scalar_one_or_none()

    async def check_read_permission(
        self, db: AsyncSession, account: Account, user: Optional[User]
    ) -> bool:
        if user is None:
            return False
        if account.type == Account.USER:
            return account.user_id == user.id
        membership = await self._get_team_membership(db, account.team_id, user)
        return membership is not None

    async def check_write_permission(
        self, db: AsyncSession, account: Account, user: Optional[User]
    ) -> bool:
        if user is None:
            return False
        if account.type == Account.USER:
            return account.user_id == user.id
        membership = await self._get_team_membership(db, account.team_id, user)
        return membership is not None and membership.user_level == TeamUser.OWNER

    async def get_permissions(
        self, db: AsyncSession, account: Account, user: Optional[User]
    ) -> List[Permission]:
        if user is None:
            return []
        if await self.check_write_permission(db, account, user):
            return [Permission.READ, Permission.WRITE]
        return [Permission.READ]

    async def get_readable_account(
        self,
        db: AsyncSession,
        user: Optional[User],
        slug: Optional[str] = None,
        account_id: Optional[int] = None,
    ) -> Account:
        """
        Fetch an account by slug or id, if the caller may read it.

        Raises:
            NotFoundError: anonymous caller, unknown account, or no read permission.
        """
        identifier = slug if slug is not None else str(account_id)
        if user is None:
            raise NotFoundError(resource="account", resource_id=identifier)

        if slug is not None:
            account = await self.get_account_by_slug(db, slug)
        else:
            account = await self.get_account_by_id(db, account_id)

        if account is None or not await self.check_read_permission(db, account, user):
            raise NotFoundError(resource="account", resource_id=identifier)
        return account

    async def get_writable_account(
        self, db: AsyncSession, account_id: int, user: Optional[User]
    ) -> Account:
        """
        Raises:
            UnauthorizedError: no authenticated user
            NotFoundError: unknown account
            ForbiddenError: the user may not write the account
        """
        if user is None:
            raise UnauthorizedError()
        account = await self.get_account_by_id(db, account_id)
        if account is None:
            raise NotFoundError(resource="account", resource_id=str(account_id))
        if not await self.check_write_permission(db, account, user):
            raise ForbiddenError()
        return account

    # ══════════════════════════════════════════════════════════════════════
    # Mutations
    # ══════════════════════════════════════════════════════════════════════

    async def update_account(
        self,
        db: AsyncSession,
        account_id: int,
        user: Optional[User],
        data: UpdateAccountInput,
    ) -> Account:
        """
        Rename an account and/or change its slug.

        Raises:
            ValidationError: slug reserved or already used (field="slug")
            UnauthorizedError / NotFoundError / ForbiddenError: see get_writable_account
        """
        account = await self.get_writable_account(db, account_id, user)
        fields = data.model_fields_set

        try:
            if "slug" in fields and data.slug and data.slug != account.slug:
                if data.slug in RESERVED_SLUGS:
                    raise ValidationError(
                        message="Slug is reserved for internal usage", field="slug"
                    )
                existing = await self.get_account_by_slug(db, data.slug)
                if existing is not None:
                    raise ValidationError(message="Slug already exists", field="slug")
                account.slug = data.slug

            if "name" in fields:
                account.name = data.name

            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error updating account %s: %s", account_id, str(e))
            raise DatabaseError(
                message="Could not update the account. Please try again.",
                context={"account_id": account_id},
            )

        logger.info("Account %s updated (fields=%s)", account_id, sorted(fields))
        return account

    async def terminate_trial(
        self,
        db: AsyncSession,
        account_id: int,
        user: Optional[User],
        now: Optional[datetime] = None,
    ) -> Account:
        """
        End the running trial of the account's Stripe subscription.

        Workflow:
            1. Resolve the active purchase; nothing to do without a running trial
            2. Look up the customer's subscription and end its trial now
            3. Re-read the subscription and store its new trial end date

        Raises:
            BillingServiceError: no Stripe customer, no subscription, or Stripe failure
            CircuitBreakerOpenError: Stripe has been failing repeatedly
        """
        now = now or utcnow()
        account = await self.get_writable_account(db, account_id, user)
        purchase = await self.get_active_purchase(db, account, now)

        if purchase is None or purchase.trial_end_date is None or purchase.trial_end_date < now:
            return account

        if not account.stripe_customer_id:
            raise BillingServiceError(
                message="No stripe customer id",
                context={"account_id": account_id},
            )

        subscription = await stripe_service.get_customer_subscription(account.stripe_customer_id)
        await stripe_service.terminate_trial(subscription["id"])
        updated_subscription = await stripe_service.get_customer_subscription(
            account.stripe_customer_id
        )

        trial_end = updated_subscription.get("trial_end")
        purchase.trial_end_date = (
            stripe_service.timestamp_to_date(trial_end) if trial_end else now
        )
        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error saving trial end of purchase %s: %s", purchase.id, str(e))
            raise DatabaseError(
                message="Trial ended but could not be recorded. Please contact support.",
                context={"purchase_id": purchase.id},
            )

        logger.info("Trial terminated for account %s (purchase %s)", account_id, purchase.id)
        return account

    # ══════════════════════════════════════════════════════════════════════
    # Presentation
    # ══════════════════════════════════════════════════════════════════════

    async def get_avatar(
        self,
        db: AsyncSession,
        account: Account,
        size: Optional[int] = None,
    ) -> AccountAvatar:
        github_account = await self.get_github_account(db, account)
        initial = ((account.name or account.slug)[:1] or "x").upper()
        url = None
        if github_account:
            url = f"{settings.github_url}/{github_account.login}.png"
            if size:
                url = f"{url}?size={size}"
        return AccountAvatar(url=url, initial=initial, color=get_avatar_color(account.id))

    async def build_account_response(
        self,
        db: AsyncSession,
        account: Account,
        user: Optional[User],
        avatar_size: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> AccountResponse:
        """
        Assemble the full account representation.

        Raises:
            UnauthorizedError: anonymous caller (the Stripe reference embeds the purchaser)
        """
        if user is None:
            raise UnauthorizedError()
        now = now or utcnow()

        plan = await self.get_plan(db, account, now)
        purchase = await self.get_active_purchase(db, account, now)
        old_paid_purchase = await self.get_old_paid_purchase(db, account, now)
        github_account = await self.get_github_account(db, account)

        return AccountResponse(
            id=str(account.id),
            type=account.type,
            slug=account.slug,
            name=account.name,
            stripe_customer_id=account.stripe_customer_id,
            stripe_client_reference_id=Purchase.encode_stripe_client_reference_id(
                account_id=account.id, purchaser_id=user.id
            ),
            has_usage_based_plan=bool(plan and plan.usage_based),
            has_paid_plan=plan is not None and not plan.is_free,
            consumption_ratio=await self.get_screenshots_consumption_ratio(db, account, now),
            current_month_used_screenshots=await self.get_screenshots_current_consumption(
                db, account, now
            ),
            screenshots_limit_per_month=plan.screenshots_limit_per_month if plan else None,
            has_exceeded_screenshots_monthly_limit=await self.has_exceeded_screenshots_monthly_limit(
                db, account, now
            ),
            plan=to_plan_response(plan),
            period_start_date=await self.get_current_consumption_start_date(db, account, now),
            period_end_date=await self.get_current_consumption_end_date(db, account, now),
            purchase=to_purchase_response(purchase),
            purchase_status=await self.get_purchase_status(db, account, now),
            old_paid_purchase=to_purchase_response(old_paid_purchase),
            permissions=await self.get_permissions(db, account, user),
            gh_account=(
                GithubAccountResponse(
                    id=str(github_account.id),
                    login=github_account.login,
                    name=github_account.name,
                    type=github_account.type,
                )
                if github_account
                else None
            ),
            avatar=await self.get_avatar(db, account, size=avatar_size),
        )


def to_plan_response(plan: Optional[Plan]) -> Optional[PlanResponse]:
    if plan is None:
        return None
    return PlanResponse(
        id=str(plan.id),
        name=plan.name,
        screenshots_limit_per_month=plan.screenshots_limit_per_month,
        usage_based=plan.usage_based,
        fine_grained_access_control_included=plan.fine_grained_access_control_included,
    )


def to_purchase_response(purchase: Optional[Purchase]) -> Optional[PurchaseResponse]:
    if purchase is None:
        return None
    return PurchaseResponse(
        id=str(purchase.id),
        source=purchase.source,
        start_date=purchase.start_date,
        end_date=purchase.end_date,
        trial_end_date=purchase.trial_end_date,
        payment_method_filled=purchase.payment_method_filled,
        plan=to_plan_response(purchase.plan),
    )


# ── Singleton Instance ────────────────────────────────────────────────────
account_service = AccountService()
