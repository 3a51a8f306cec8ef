"""
Snapcheck Backend — Plan Model
================================

What:  ORM model for the `plans` table (free, starter, pro, ...).
How:   `screenshots_limit_per_month` caps private screenshots per billing
       period; UNLIMITED (-1) disables the cap.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, BigIntId, UTCDateTime, utcnow

UNLIMITED = -1
FREE_PLAN_NAME = "free"


class Plan(Base):
    """A subscription plan."""

    __tablename__ = "plans"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    screenshots_limit_per_month: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Private screenshots allowed per period, -1 for unlimited",
    )
    usage_based: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    fine_grained_access_control_included: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    github_plan_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    stripe_product_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    @property
    def is_free(self) -> bool:
        return self.name == FREE_PLAN_NAME

    def __repr__(self) -> str:
        return (
            f"<Plan(id={self.id}, name='{self.name}', "
            f"limit={self.screenshots_limit_per_month})>"
        )
