"""
Snapcheck Backend — Re-enqueue Pending Builds
===============================================

What:  Pushes every recent pending build back on the build queue.
When:  After a redis flush or a worker outage; run by hand or by cron
       (`snapcheck-queue-pending-builds`).

Only builds created within `pending_build_max_age_minutes` are considered:
older pending builds are stale and are left for manual inspection.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import async_session_factory, dispose_engine, utcnow
from app.jobs.build_job import BuildJob
from app.logging_config import setup_logging
from app.models import Build

logger = logging.getLogger(__name__)


async def queue_pending_builds(
    db: AsyncSession,
    job: BuildJob,
    now: Optional[datetime] = None,
) -> int:
    """Push recent pending builds, newest first. Returns the number pushed."""
    now = now or utcnow()
    since = now - timedelta(minutes=settings.pending_build_max_age_minutes)

    result = await db.execute(
        select(Build.id)
        .where(Build.job_status == Build.PENDING)
        .where(Build.created_at > since)
        .order_by(Build.id.desc())
    )
    build_ids = list(result.scalars().all())

    await asyncio.gather(*(job.push(build_id) for build_id in build_ids))

    logger.info("%d builds pushed in queue", len(build_ids))
    return len(build_ids)


async def _run() -> None:
    job = BuildJob()
    try:
        async with async_session_factory() as db:
            await queue_pending_builds(db, job)
    finally:
        await job.close()
        await dispose_engine()


def main() -> None:
    setup_logging()
    asyncio.run(_run())


if __name__ == "__main__":
    main()
