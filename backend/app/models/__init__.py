"""
Snapcheck Backend — ORM Models
================================

Importing this package registers every table on `Base.metadata`
(required by Alembic autogenerate and by `create_all` in tests).
"""

from app.models.user import Team, TeamUser, User
from app.models.github import GithubAccount, GithubRepository
from app.models.plan import FREE_PLAN_NAME, UNLIMITED, Plan
from app.models.account import Account
from app.models.purchase import Purchase
from app.models.project import Project
from app.models.screenshot import Screenshot, ScreenshotBucket, ScreenshotDiff
from app.models.build import Build

__all__ = [
    "Account",
    "Build",
    "FREE_PLAN_NAME",
    "GithubAccount",
    "GithubRepository",
    "Plan",
    "Project",
    "Purchase",
    "Screenshot",
    "ScreenshotBucket",
    "ScreenshotDiff",
    "Team",
    "TeamUser",
    "UNLIMITED",
    "User",
]
