"""
Snapcheck Backend — Account Model
===================================

What:  ORM model representing the `accounts` table.
How:   An account is either personal (bound to a user) or a team account
       (bound to a team). Projects, purchases and quotas hang off accounts.
Who:   Used by AccountService for plan/quota computation and permission checks.

Table Design:
    - slug: unique URL segment (e.g. /acme), required
    - forced_plan_id: plan set manually by staff; overrides purchases and
      switches the consumption period to calendar months
    - stripe_customer_id: set once the account has been checked out on Stripe
    - user_id XOR team_id: enforced by CHECK constraint and by `type`
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, BigIntId, UTCDateTime, utcnow
from app.exceptions import InvariantError


class Account(Base):
    """A personal or team account."""

    __tablename__ = "accounts"

    USER = "user"
    TEAM = "team"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=True, unique=True
    )
    team_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("teams.id", ondelete="CASCADE"), nullable=True, unique=True
    )
    forced_plan_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("plans.id"), nullable=True
    )
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    github_account_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("github_accounts.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL AND team_id IS NOT NULL) OR "
            "(user_id IS NOT NULL AND team_id IS NULL)",
            name="ck_accounts_owner",
        ),
    )

    @property
    def type(self) -> str:
        """
        'user' for personal accounts, 'team' for team accounts.

        Raises:
            InvariantError: the row references both a user and a team, or neither.
        """
        if self.user_id and self.team_id:
            raise InvariantError("Invariant incoherent account type", context={"account_id": self.id})
        if self.user_id:
            return self.USER
        if self.team_id:
            return self.TEAM
        raise InvariantError("Invariant incoherent account type", context={"account_id": self.id})

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, slug='{self.slug}')>"
