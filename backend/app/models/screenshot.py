"""
Snapcheck Backend — Screenshot Models
=======================================

What:  ORM models for screenshot buckets, screenshots and screenshot diffs.
How:   CI uploads a bucket of screenshots per commit. A build compares a
       compare bucket against a base bucket; the pairing of screenshots by
       name is stored as ScreenshotDiff rows.

Screenshot.s3_id is the content key of the stored image: two screenshots
with the same key are byte-identical.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, BigIntId, UTCDateTime, utcnow


class ScreenshotBucket(Base):
    """A set of screenshots uploaded for one commit."""

    __tablename__ = "screenshot_buckets"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="default")
    branch: Mapped[str] = mapped_column(String(255), nullable=False)
    commit: Mapped[str] = mapped_column(String(40), nullable=False)
    complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class Screenshot(Base):
    """A single uploaded screenshot."""

    __tablename__ = "screenshots"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    screenshot_bucket_id: Mapped[int] = mapped_column(
        ForeignKey("screenshot_buckets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(1024), nullable=False)
    s3_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    # Consumption queries filter on created_at for one account's buckets
    __table_args__ = (
        Index("idx_screenshots_created_at", "created_at"),
    )


class ScreenshotDiff(Base):
    """The pairing of a compare screenshot with its base counterpart in a build."""

    __tablename__ = "screenshot_diffs"

    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"
    UNCHANGED = "unchanged"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    build_id: Mapped[int] = mapped_column(
        ForeignKey("builds.id", ondelete="CASCADE"), nullable=False, index=True
    )
    base_screenshot_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("screenshots.id"), nullable=True
    )
    compare_screenshot_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("screenshots.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Pairing result: added, removed, changed, unchanged",
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
