"""
Snapcheck Backend — Project and Build Route Handlers
======================================================

Endpoints:
    GET /api/accounts/{slug}/projects?after=0&first=30
    GET /api/projects/{account_slug}/{project_name}/builds/{number}
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_user
from app.database import get_db_session
from app.models import User
from app.schemas.build import BuildSummary
from app.schemas.common import ErrorResponse
from app.schemas.project import ProjectConnection
from app.services.account_service import account_service
from app.services.build_service import build_service
from app.services.project_service import project_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Projects"])


@router.get(
    "/accounts/{slug}/projects",
    response_model=ProjectConnection,
    responses={404: {"model": ErrorResponse}},
    summary="List an account's projects",
)
async def list_projects(
    slug: str,
    after: int = Query(default=0, ge=0, description="Number of projects to skip"),
    first: int = Query(default=30, ge=1, le=100, description="Page size"),
    db: AsyncSession = Depends(get_db_session),
    user: Optional[User] = Depends(get_current_user),
) -> ProjectConnection:
    account = await account_service.get_readable_account(db, user, slug=slug)
    return await project_service.list_projects(db, account, after=after, first=first)


@router.get(
    "/projects/{account_slug}/{project_name}/builds/{number}",
    response_model=BuildSummary,
    responses={404: {"model": ErrorResponse}},
    summary="Get a build of a project",
)
async def get_build(
    account_slug: str,
    project_name: str,
    number: int,
    db: AsyncSession = Depends(get_db_session),
    user: Optional[User] = Depends(get_current_user),
) -> BuildSummary:
    account = await account_service.get_readable_account(db, user, slug=account_slug)
    project = await project_service.get_project(db, account, project_name)
    build = await build_service.get_build(db, project, number)
    return await build_service.get_summary(db, build)
