"""
Snapcheck Backend — Account Route Handlers
============================================

What:  Read and mutate personal and team accounts.
How:   Resolve the caller, delegate to AccountService, return AccountResponse.

Endpoints:
    GET   /api/accounts/{slug}                   account by slug
    GET   /api/accounts/by-id/{account_id}       account by id
    GET   /api/teams/{account_id}                team account by id
    PATCH /api/accounts/{account_id}             rename / change slug
    POST  /api/accounts/{account_id}/terminate-trial

Accounts the caller cannot read are reported as 404, never 403, so that
slugs of private teams do not leak.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_user
from app.database import get_db_session
from app.exceptions import NotFoundError
from app.models import Account, User
from app.schemas.account import AccountResponse, UpdateAccountInput
from app.schemas.common import ErrorResponse
from app.services.account_service import account_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Accounts"])

AvatarSize = Query(
    default=None,
    ge=1,
    le=1024,
    description="Pixel size requested from the GitHub avatar service",
)


@router.get(
    "/accounts/by-id/{account_id}",
    response_model=AccountResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get an account by id",
)
async def get_account_by_id(
    account_id: int,
    avatar_size: Optional[int] = AvatarSize,
    db: AsyncSession = Depends(get_db_session),
    user: Optional[User] = Depends(get_current_user),
) -> AccountResponse:
    account = await account_service.get_readable_account(db, user, account_id=account_id)
    return await account_service.build_account_response(db, account, user, avatar_size)


@router.get(
    "/accounts/{slug}",
    response_model=AccountResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get an account by slug",
)
async def get_account(
    slug: str,
    avatar_size: Optional[int] = AvatarSize,
    db: AsyncSession = Depends(get_db_session),
    user: Optional[User] = Depends(get_current_user),
) -> AccountResponse:
    account = await account_service.get_readable_account(db, user, slug=slug)
    return await account_service.build_account_response(db, account, user, avatar_size)


@router.get(
    "/teams/{account_id}",
    response_model=AccountResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get a team account by id",
)
async def get_team(
    account_id: int,
    avatar_size: Optional[int] = AvatarSize,
    db: AsyncSession = Depends(get_db_session),
    user: Optional[User] = Depends(get_current_user),
) -> AccountResponse:
    account = await account_service.get_readable_account(db, user, account_id=account_id)
    if account.type != Account.TEAM:
        raise NotFoundError(resource="team", resource_id=str(account_id))
    return await account_service.build_account_response(db, account, user, avatar_size)


@router.patch(
    "/accounts/{account_id}",
    response_model=AccountResponse,
    responses={
        400: {"description": "Slug reserved or already used", "model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Update an account's name or slug",
)
async def update_account(
    account_id: int,
    data: UpdateAccountInput,
    db: AsyncSession = Depends(get_db_session),
    user: Optional[User] = Depends(get_current_user),
) -> AccountResponse:
    account = await account_service.update_account(db, account_id, user, data)
    return await account_service.build_account_response(db, account, user)


@router.post(
    "/accounts/{account_id}/terminate-trial",
    response_model=AccountResponse,
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        503: {"description": "Stripe unavailable", "model": ErrorResponse},
    },
    summary="End the running trial and start billing now",
)
async def terminate_trial(
    account_id: int,
    db: AsyncSession = Depends(get_db_session),
    user: Optional[User] = Depends(get_current_user),
) -> AccountResponse:
    account = await account_service.terminate_trial(db, account_id, user)
    return await account_service.build_account_response(db, account, user)
