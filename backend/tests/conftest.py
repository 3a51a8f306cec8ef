"""
Snapcheck Backend — Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the test suite.
How:   Services run against a real SQLite database (aiosqlite) created in a
       per-test temporary directory; Stripe and redis are mocked.

Fixture Hierarchy:
    db_engine → session_factory → db_session → factory
                                └──────────→ test_client (routes use session_factory)
    mock_db_session: AsyncMock session for tests that only check calls
"""

import os

# Settings are read at import time: configure the environment first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["STRIPE_API_KEY"] = "sk_test_not_real"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_REQUESTS"] = "100000"

import itertools
from datetime import datetime
from typing import Iterable, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.database import Base, get_db_session
from app.models import (
    Account,
    Build,
    GithubAccount,
    GithubRepository,
    Plan,
    Project,
    Purchase,
    Screenshot,
    ScreenshotBucket,
    Team,
    TeamUser,
    User,
)


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'snapcheck.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_db_session():
    """
    AsyncMock standing in for AsyncSession.

    Usage:
        mock_db_session.execute.return_value.scalars.return_value.all.return_value = [1, 2]
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


# ══════════════════════════════════════════════════════════════════════════
# Model Factory
# ══════════════════════════════════════════════════════════════════════════

class ModelFactory:
    """Creates and flushes rows with sensible defaults."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._seq = itertools.count(1)

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.flush()
        return obj

    async def user(self, **kwargs) -> User:
        n = next(self._seq)
        kwargs.setdefault("email", f"user{n}@example.com")
        kwargs.setdefault("access_token", f"token-{n}")
        return await self._save(User(**kwargs))

    async def user_account(self, user: User, **kwargs) -> Account:
        kwargs.setdefault("slug", f"user-{user.id}")
        return await self._save(Account(user_id=user.id, **kwargs))

    async def team_account(
        self,
        owner: Optional[User] = None,
        members: Iterable[User] = (),
        **kwargs,
    ) -> Account:
        team = await self._save(Team())
        if owner is not None:
            await self._save(TeamUser(team_id=team.id, user_id=owner.id, user_level=TeamUser.OWNER))
        for member in members:
            await self._save(TeamUser(team_id=team.id, user_id=member.id, user_level=TeamUser.MEMBER))
        kwargs.setdefault("slug", f"team-{team.id}")
        return await self._save(Account(team_id=team.id, **kwargs))

    async def plan(self, name: str = "pro", screenshots_limit_per_month: int = 100, **kwargs) -> Plan:
        return await self._save(
            Plan(name=name, screenshots_limit_per_month=screenshots_limit_per_month, **kwargs)
        )

    async def purchase(self, account: Account, plan: Plan, start_date: datetime, **kwargs) -> Purchase:
        return await self._save(
            Purchase(account_id=account.id, plan=plan, start_date=start_date, **kwargs)
        )

    async def github_account(self, login: str = "acme", **kwargs) -> GithubAccount:
        kwargs.setdefault("type", "organization")
        return await self._save(GithubAccount(login=login, **kwargs))

    async def github_repository(self, private: bool, **kwargs) -> GithubRepository:
        kwargs.setdefault("name", f"repo-{next(self._seq)}")
        return await self._save(GithubRepository(private=private, **kwargs))

    async def project(self, account: Account, **kwargs) -> Project:
        n = next(self._seq)
        kwargs.setdefault("name", f"project-{n}")
        kwargs.setdefault("token", f"project-token-{n}")
        return await self._save(Project(account_id=account.id, **kwargs))

    async def bucket(self, project: Project, **kwargs) -> ScreenshotBucket:
        kwargs.setdefault("branch", "main")
        kwargs.setdefault("commit", "a" * 40)
        return await self._save(ScreenshotBucket(project_id=project.id, **kwargs))

    async def screenshot(self, bucket: ScreenshotBucket, name: str, s3_id: str = None, **kwargs) -> Screenshot:
        return await self._save(
            Screenshot(screenshot_bucket_id=bucket.id, name=name, s3_id=s3_id or f"s3-{name}", **kwargs)
        )

    async def screenshots(self, project: Project, count: int, created_at: datetime) -> None:
        bucket = await self.bucket(project)
        for i in range(count):
            await self.screenshot(bucket, f"shot-{i}.png", created_at=created_at)

    async def build(
        self,
        project: Project,
        compare_bucket: ScreenshotBucket,
        base_bucket: Optional[ScreenshotBucket] = None,
        **kwargs,
    ) -> Build:
        kwargs.setdefault("number", next(self._seq))
        return await self._save(
            Build(
                project_id=project.id,
                compare_screenshot_bucket_id=compare_bucket.id,
                base_screenshot_bucket_id=base_bucket.id if base_bucket else None,
                **kwargs,
            )
        )


@pytest.fixture
def factory(db_session):
    return ModelFactory(db_session)


# ══════════════════════════════════════════════════════════════════════════
# HTTP Client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(session_factory):
    """
    HTTPX AsyncClient talking to the app through ASGITransport.

    Routes get sessions on the test database; data created through
    `factory` must be committed before the request.
    """
    from app.main import app

    async def override_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()