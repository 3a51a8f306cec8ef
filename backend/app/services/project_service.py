"""
Snapcheck Backend — Project Service
=====================================

What:  Paginated project listing of an account, with per-project privacy and
       screenshot consumption for the account's current period.
Who:   Called by the projects and builds routes.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError
from app.models import Account, GithubRepository, Project, Screenshot, ScreenshotBucket
from app.schemas.common import PageInfo
from app.schemas.project import ProjectConnection, ProjectItem
from app.services.account_service import account_service

logger = logging.getLogger(__name__)


class ProjectService:
    """Project queries scoped to one account."""

    async def get_project(self, db: AsyncSession, account: Account, name: str) -> Project:
        result = await db.execute(
            select(Project)
            .where(Project.account_id == account.id)
            .where(Project.name == name)
        )
        project = result.scalar_one_or_none()
        if project is None:
            raise NotFoundError(resource="project", resource_id=f"{account.slug}/{name}")
        return project

    async def is_public(self, db: AsyncSession, project: Project) -> bool:
        """An explicit flag wins; otherwise the GitHub repository decides."""
        if project.private is not None:
            return not project.private
        if project.github_repository_id:
            repository = await db.get(GithubRepository, project.github_repository_id)
            if repository is not None:
                return not repository.private
        return True

    async def get_screenshots_consumption(
        self, db: AsyncSession, project: Project, since: datetime
    ) -> int:
        result = await db.execute(
            select(func.count(Screenshot.id))
            .join(ScreenshotBucket, ScreenshotBucket.id == Screenshot.screenshot_bucket_id)
            .where(ScreenshotBucket.project_id == project.id)
            .where(Screenshot.created_at >= since)
        )
        return result.scalar() or 0

    async def list_projects(
        self,
        db: AsyncSession,
        account: Account,
        after: int = 0,
        first: int = 30,
        now: Optional[datetime] = None,
    ) -> ProjectConnection:
        """
        One page of the account's projects, oldest first.

        has_next_page is true while `after + first` is below the total.
        """
        total_result = await db.execute(
            select(func.count(Project.id)).where(Project.account_id == account.id)
        )
        total_count = total_result.scalar() or 0

        result = await db.execute(
            select(Project)
            .where(Project.account_id == account.id)
            .order_by(Project.id.asc())
            .offset(after)
            .limit(first)
        )
        projects = result.scalars().all()

        since = await account_service.get_current_consumption_start_date(db, account, now)
        edges = []
        for project in projects:
            edges.append(
                ProjectItem(
                    id=str(project.id),
                    name=project.name,
                    public=await self.is_public(db, project),
                    reference_branch=project.reference_branch,
                    current_month_used_screenshots=await self.get_screenshots_consumption(
                        db, project, since
                    ),
                )
            )

        logger.debug(
            "Listed %d/%d projects for account %s (after=%d)",
            len(edges),
            total_count,
            account.id,
            after,
        )
        return ProjectConnection(
            page_info=PageInfo(total_count=total_count, has_next_page=after + first < total_count),
            edges=edges,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
project_service = ProjectService()
