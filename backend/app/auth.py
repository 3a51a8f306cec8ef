"""
Snapcheck Backend — Request Authentication
============================================

What:  FastAPI dependency resolving the calling user.
How:   Reads `Authorization: Bearer <token>` and looks the token up in
       users.access_token. A missing or unknown token yields an anonymous
       request (None); each operation decides what anonymous callers may do.
"""

import logging
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.models import User

logger = logging.getLogger(__name__)


def parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user(
    authorization: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db_session),
) -> Optional[User]:
    token = parse_bearer_token(authorization)
    if token is None:
        return None

    result = await db.execute(select(User).where(User.access_token == token))
    user = result.scalar_one_or_none()
    if user is None:
        logger.info("Request with unknown access token treated as anonymous")
    return user
