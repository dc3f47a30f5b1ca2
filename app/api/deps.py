"""
FastAPI Dependencies

Provides dependency injection for database sessions and tenant resolution.

SECURITY NOTES:
- JWT payloads are never logged
- Every audience operation is scoped to the merchant resolved here
"""

from typing import Annotated
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select
from jose import JWTError, jwt
import logging

from app.database import get_db, get_session_factory
from app.config import settings
from app.exceptions import NotFoundError, UnauthorizedError
from app.models.merchant import Merchant

logger = logging.getLogger(__name__)


# HTTP Bearer for JWT
security = HTTPBearer(auto_error=False)


async def get_current_merchant(
    db: Annotated[AsyncSession, Depends(get_db)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> Merchant:
    """
    Resolve the calling tenant from a Bearer JWT.

    The `sub` claim is the merchant's auth user id. A valid token with no
    matching merchant is a 404, not a 401.
    """
    if credentials is None:
        raise UnauthorizedError()

    try:
        payload = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        # SECURITY: Don't log token decode errors with details
        logger.warning("JWT validation failed")
        raise UnauthorizedError()

    auth_user_id = payload.get("sub")
    if not auth_user_id:
        raise UnauthorizedError()

    result = await db.execute(select(Merchant).where(Merchant.auth_user_id == str(auth_user_id)))
    merchant = result.scalar_one_or_none()

    if merchant is None:
        raise NotFoundError("Merchant", str(auth_user_id))

    logger.debug("Merchant resolved", extra={"merchant_id": merchant.id})
    return merchant


# Type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
CurrentMerchant = Annotated[Merchant, Depends(get_current_merchant)]
