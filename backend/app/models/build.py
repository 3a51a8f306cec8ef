"""
Snapcheck Backend — Build Model
=================================

What:  ORM model for the `builds` table.
How:   A build is created when CI finishes uploading a compare bucket. It
       starts with job_status='pending' and is processed by the build job.

Job lifecycle:
    pending → progress → complete
                       ↘ error
    aborted: set externally, never picked up again
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, BigIntId, UTCDateTime, utcnow


class Build(Base):
    """A comparison of a compare bucket against a base bucket."""

    __tablename__ = "builds"

    PENDING = "pending"
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"
    ABORTED = "aborted"

    TYPE_REFERENCE = "reference"
    TYPE_CHECK = "check"
    TYPE_ORPHAN = "orphan"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="default")
    job_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PENDING,
        comment="Processing state: pending, progress, complete, error, aborted",
    )
    type: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="Build type: reference, check, orphan",
    )
    base_screenshot_bucket_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("screenshot_buckets.id"), nullable=True
    )
    compare_screenshot_bucket_id: Mapped[int] = mapped_column(
        ForeignKey("screenshot_buckets.id"), nullable=False
    )
    batch_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_batch: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("project_id", "number", name="uq_builds_project_number"),
        # The enqueue script scans pending builds of the last hour
        Index("idx_builds_job_status_created_at", "job_status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Build(id={self.id}, project_id={self.project_id}, "
            f"number={self.number}, job_status='{self.job_status}')>"
        )
