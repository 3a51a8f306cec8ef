"""
Snapcheck Backend — Account Request/Response Schemas
======================================================

What:  Pydantic models defining the account API contract.
How:   Routes build these from ORM rows plus the values computed by
       AccountService (plan, quota, purchase status, permissions).

Ids are rendered as strings: identities are 64-bit and would lose
precision in JavaScript clients.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class PurchaseStatus(str, Enum):
    """Billing state of an account, as shown on the settings page."""

    # Returned on personal account
    NONE = "none"

    # Active purchase
    ACTIVE = "active"
    # Active purchase. A forced plan is set
    FORCED = "forced"
    # Trial in progress: the subscription will start at the end of period
    TRIAL = "trial"
    # Trial in progress: the subscription will end at the end of period
    TRIAL_CANCELED = "trialCanceled"
    # Missing payment method: the subscription will end at the end of period
    PAYMENT_METHOD_MISSING = "paymentMethodMissing"

    # No active purchase
    MISSING = "missing"
    # No active purchase: the trial has ended
    TRIAL_EXPIRED = "trialExpired"
    # No active purchase: the subscription has been canceled
    CANCELED = "canceled"


class Permission(str, Enum):
    READ = "read"
    WRITE = "write"


class PlanResponse(BaseModel):
    id: str
    name: str
    screenshots_limit_per_month: int
    usage_based: bool
    fine_grained_access_control_included: bool


class PurchaseResponse(BaseModel):
    id: str
    source: str
    start_date: datetime
    end_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    payment_method_filled: bool
    plan: Optional[PlanResponse] = None


class GithubAccountResponse(BaseModel):
    id: str
    login: str
    name: Optional[str] = None
    type: str


class AccountAvatar(BaseModel):
    """
    url: GitHub avatar URL, null when the account is not linked to GitHub
    initial: first letter of name (or slug), uppercased
    color: stable background color derived from the account id
    """
    url: Optional[str] = None
    initial: str
    color: str


class AccountResponse(BaseModel):
    """
    What:  Full representation of a personal or team account.
    Who:   Returned by GET /api/accounts/{slug}, GET /api/accounts/by-id/{id},
           GET /api/teams/{id} and the account mutations.
    """
    id: str
    type: str = Field(description="Account type: user, team")
    slug: str
    name: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    stripe_client_reference_id: str = Field(
        description="Reference passed to Stripe Checkout to link the purchase back"
    )
    has_usage_based_plan: bool
    has_paid_plan: bool
    consumption_ratio: Optional[float] = Field(
        default=None,
        description="Used / allowed screenshots this period (null without limit)",
    )
    current_month_used_screenshots: int
    screenshots_limit_per_month: Optional[int] = None
    has_exceeded_screenshots_monthly_limit: bool
    plan: Optional[PlanResponse] = None
    period_start_date: Optional[datetime] = None
    period_end_date: Optional[datetime] = None
    purchase: Optional[PurchaseResponse] = None
    purchase_status: PurchaseStatus
    old_paid_purchase: Optional[PurchaseResponse] = None
    permissions: List[Permission]
    gh_account: Optional[GithubAccountResponse] = None
    avatar: AccountAvatar


class UpdateAccountInput(BaseModel):
    """
    Partial update of an account.

    Fields left out of the request body are not touched; `"name": null`
    explicitly clears the display name.
    """
    name: Optional[str] = Field(default=None, max_length=255)
    slug: Optional[str] = Field(default=None, min_length=1, max_length=255)
