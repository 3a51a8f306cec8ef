"""
Snapcheck Backend — Purchase Model
====================================

What:  ORM model for the `purchases` table: an account's subscription to a
       plan, bought through GitHub Marketplace or Stripe.
How:   A purchase is active while start_date < now <= end_date (open-ended
       when end_date is NULL). A purchase may be in trial until trial_end_date.

Billing periods:
    Purchased plans reset monthly on the anniversary of start_date:
        start_date = 2024-01-31 → resets on Feb 29, Mar 31, Apr 30, ...
    (day of month clipped to the length of the month)
"""

import base64
import json
from datetime import datetime
from typing import Any, Dict, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, BigIntId, UTCDateTime, utcnow
from app.models.plan import Plan


class Purchase(Base):
    """A subscription of an account to a plan."""

    __tablename__ = "purchases"

    SOURCE_GITHUB = "github"
    SOURCE_STRIPE = "stripe"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plan_id: Mapped[int] = mapped_column(ForeignKey("plans.id"), nullable=False)
    purchaser_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    source: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SOURCE_GITHUB,
        comment="Where the purchase was made: github, stripe",
    )
    start_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    end_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    trial_end_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    payment_method_filled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    # selectin: loaded eagerly with a second query, safe in async sessions
    plan: Mapped[Plan] = relationship(Plan, lazy="selectin")

    def is_trialing(self, now: Optional[datetime] = None) -> bool:
        """True while trial_end_date is in the future."""
        now = now or utcnow()
        return self.trial_end_date is not None and self.trial_end_date > now

    def get_last_reset_date(self, now: Optional[datetime] = None) -> datetime:
        """
        Latest monthly anniversary of start_date that is not after `now`.

        Examples (now = 2024-03-20):
            start 2024-01-10 → 2024-03-10
            start 2024-01-25 → 2024-02-25
            start 2024-03-25 → 2024-03-25 (never before start_date)
        """
        now = now or utcnow()
        start = self.start_date
        months = (now.year - start.year) * 12 + (now.month - start.month)
        if months <= 0:
            return start
        candidate = start + relativedelta(months=months)
        if candidate > now:
            candidate = start + relativedelta(months=months - 1)
        return candidate

    # ── Stripe checkout reference ─────────────────────────────────────────
    # Stripe's client_reference_id accepts [A-Za-z0-9_-] only: URL-safe
    # base64 without padding fits.

    @staticmethod
    def encode_stripe_client_reference_id(account_id: int, purchaser_id: int) -> str:
        payload = json.dumps(
            {"accountId": str(account_id), "purchaserId": str(purchaser_id)},
            separators=(",", ":"),
        )
        return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii").rstrip("=")

    @staticmethod
    def decode_stripe_client_reference_id(reference_id: str) -> Dict[str, Any]:
        padding = "=" * (-len(reference_id) % 4)
        raw = base64.urlsafe_b64decode(reference_id + padding)
        return json.loads(raw.decode("utf-8"))

    def __repr__(self) -> str:
        return (
            f"<Purchase(id={self.id}, account_id={self.account_id}, "
            f"plan_id={self.plan_id}, source='{self.source}')>"
        )
