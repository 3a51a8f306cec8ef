"""
Snapcheck Backend — Build Schemas
===================================

What:  Build summary returned by
       GET /api/projects/{account_slug}/{project_name}/builds/{number}.

Status values:
    pending, progress, error, aborted: job not (successfully) finished
    reference:    reference build, nothing to compare against
    diffDetected: at least one screenshot added, removed or changed
    stable:       every screenshot unchanged
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ScreenshotBucketSummary(BaseModel):
    id: str
    branch: str
    commit: str


class BuildSummary(BaseModel):
    id: str
    number: int
    name: str
    type: Optional[str] = None
    status: str = Field(description="Derived build status")
    batch_count: Optional[int] = None
    total_batch: Optional[int] = None
    created_at: datetime
    compare_screenshot_bucket: ScreenshotBucketSummary
