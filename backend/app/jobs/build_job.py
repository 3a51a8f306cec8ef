"""
Snapcheck Backend — Build Job
===============================

What:  Queue of build ids and the processing of one build.
How:   Build ids are pushed on a redis list (LPUSH) and consumed by workers
       (BRPOP), so the oldest id is processed first. Each build is handled
       in its own database session.

Processing a build:
    1. Skip unless job_status is pending
    2. job_status = progress
    3. Pair compare screenshots with base screenshots by name:
           only in compare          → added
           only in base             → removed
           both, same s3_id         → unchanged
           both, different s3_id    → changed
    4. job_status = complete

A failing build is rolled back, then marked error in a fresh session.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import async_session_factory, dispose_engine
from app.logging_config import setup_logging
from app.models import Build, Screenshot, ScreenshotDiff

logger = logging.getLogger(__name__)


class BuildJob:
    """Redis-backed queue of builds to process."""

    # Seconds to wait before polling again after a redis error
    pop_error_delay = 5.0

    def __init__(self, redis_client=None, queue_name: Optional[str] = None):
        self._redis = redis_client
        self.queue_name = queue_name or settings.build_queue_name

    @property
    def redis(self):
        if self._redis is None:
            self._redis = aioredis.from_url(settings.redis_url, decode_responses=True)
        return self._redis

    async def push(self, build_id: int) -> None:
        await self.redis.lpush(self.queue_name, str(build_id))
        logger.debug("Build %s pushed on %s", build_id, self.queue_name)

    async def pop(self, timeout: Optional[int] = None) -> Optional[int]:
        """Next build id, or None when the queue stayed empty for `timeout` seconds."""
        item = await self.redis.brpop(
            [self.queue_name],
            timeout=timeout if timeout is not None else settings.build_queue_poll_timeout,
        )
        if item is None:
            return None
        _, value = item
        return int(value)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    # ══════════════════════════════════════════════════════════════════════
    # Processing
    # ══════════════════════════════════════════════════════════════════════

    async def process(self, db: AsyncSession, build_id: int) -> Optional[Build]:
        """Process one build. Exceptions propagate to the caller."""
        build = await db.get(Build, build_id)
        if build is None:
            logger.warning("Build %s not found, skipping", build_id)
            return None

        if build.job_status != Build.PENDING:
            logger.info("Build %s is %s, skipping", build_id, build.job_status)
            return build

        build.job_status = Build.PROGRESS
        await db.flush()

        diffs = await self.compare_screenshots(db, build)
        db.add_all(diffs)

        build.job_status = Build.COMPLETE
        await db.flush()

        logger.info("Build %s complete (%d screenshot diffs)", build_id, len(diffs))
        return build

    async def compare_screenshots(self, db: AsyncSession, build: Build) -> List[ScreenshotDiff]:
        compare_screenshots = await self._get_bucket_screenshots(
            db, build.compare_screenshot_bucket_id
        )
        base_by_name: Dict[str, Screenshot] = {}
        if build.base_screenshot_bucket_id:
            for screenshot in await self._get_bucket_screenshots(
                db, build.base_screenshot_bucket_id
            ):
                base_by_name[screenshot.name] = screenshot

        diffs = []
        for screenshot in compare_screenshots:
            base = base_by_name.pop(screenshot.name, None)
            if base is None:
                status = ScreenshotDiff.ADDED
            elif base.s3_id == screenshot.s3_id:
                status = ScreenshotDiff.UNCHANGED
            else:
                status = ScreenshotDiff.CHANGED
            diffs.append(
                ScreenshotDiff(
                    build_id=build.id,
                    base_screenshot_id=base.id if base else None,
                    compare_screenshot_id=screenshot.id,
                    status=status,
                )
            )

        for base in base_by_name.values():
            diffs.append(
                ScreenshotDiff(
                    build_id=build.id,
                    base_screenshot_id=base.id,
                    compare_screenshot_id=None,
                    status=ScreenshotDiff.REMOVED,
                )
            )
        return diffs

    async def _get_bucket_screenshots(self, db: AsyncSession, bucket_id: int) -> List[Screenshot]:
        result = await db.execute(
            select(Screenshot)
            .where(Screenshot.screenshot_bucket_id == bucket_id)
            .order_by(Screenshot.name)
        )
        return list(result.scalars().all())

    # ══════════════════════════════════════════════════════════════════════
    # Worker loop
    # ══════════════════════════════════════════════════════════════════════

    async def handle(self, session_factory: Callable[[], AsyncSession], build_id: int) -> None:
        """Process a build in its own transaction; mark it error when that fails."""
        try:
            async with session_factory() as db:
                try:
                    await self.process(db, build_id)
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise
            return
        except Exception:
            logger.exception("Build %s failed", build_id)

        try:
            async with session_factory() as db:
                build = await db.get(Build, build_id)
                if build is not None:
                    build.job_status = Build.ERROR
                    await db.commit()
        except Exception:
            logger.exception("Could not mark build %s as error", build_id)

    async def run(
        self,
        session_factory: Callable[[], AsyncSession],
        max_jobs: Optional[int] = None,
    ) -> int:
        """Consume the queue until `max_jobs` builds were handled (forever by default)."""
        handled = 0
        logger.info("Build worker listening on %s", self.queue_name)
        while max_jobs is None or handled < max_jobs:
            try:
                build_id = await self.pop()
            except RedisError:
                logger.exception("Could not read from %s", self.queue_name)
                await asyncio.sleep(self.pop_error_delay)
                continue
            if build_id is None:
                continue
            await self.handle(session_factory, build_id)
            handled += 1
        return handled


async def _work() -> None:
    job = BuildJob()
    try:
        await job.run(async_session_factory)
    finally:
        await job.close()
        await dispose_engine()


def main() -> None:
    setup_logging()
    try:
        asyncio.run(_work())
    except KeyboardInterrupt:
        logger.info("Build worker stopped")


if __name__ == "__main__":
    main()
