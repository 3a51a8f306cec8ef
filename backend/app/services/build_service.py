"""
Snapcheck Backend — Build Service
===================================

What:  Build lookup and the status shown to users.
How:   While the job has not completed, the status is the job status. Once
       complete, it is derived from the build type and its screenshot diffs.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError
from app.models import Build, Project, ScreenshotBucket, ScreenshotDiff
from app.schemas.build import BuildSummary, ScreenshotBucketSummary

logger = logging.getLogger(__name__)

STATUS_REFERENCE = "reference"
STATUS_DIFF_DETECTED = "diffDetected"
STATUS_STABLE = "stable"


class BuildService:

    async def get_build(self, db: AsyncSession, project: Project, number: int) -> Build:
        result = await db.execute(
            select(Build)
            .where(Build.project_id == project.id)
            .where(Build.number == number)
        )
        build = result.scalar_one_or_none()
        if build is None:
            raise NotFoundError(resource="build", resource_id=f"{project.name}#{number}")
        return build

    async def get_status(self, db: AsyncSession, build: Build) -> str:
        if build.job_status != Build.COMPLETE:
            return build.job_status
        if build.type == Build.TYPE_REFERENCE:
            return STATUS_REFERENCE

        result = await db.execute(
            select(ScreenshotDiff.id)
            .where(ScreenshotDiff.build_id == build.id)
            .where(ScreenshotDiff.status != ScreenshotDiff.UNCHANGED)
            .limit(1)
        )
        if result.scalar_one_or_none() is not None:
            return STATUS_DIFF_DETECTED
        return STATUS_STABLE

    async def get_summary(self, db: AsyncSession, build: Build) -> BuildSummary:
        bucket = await db.get(ScreenshotBucket, build.compare_screenshot_bucket_id)
        return BuildSummary(
            id=str(build.id),
            number=build.number,
            name=build.name,
            type=build.type,
            status=await self.get_status(db, build),
            batch_count=build.batch_count,
            total_batch=build.total_batch,
            created_at=build.created_at,
            compare_screenshot_bucket=ScreenshotBucketSummary(
                id=str(bucket.id),
                branch=bucket.branch,
                commit=bucket.commit,
            ),
        )


# ── Singleton Instance ────────────────────────────────────────────────────
build_service = BuildService()
