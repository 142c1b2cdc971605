import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import async_session
from .models import STAFF_ROLES, User, UserRole
from .utils.auth import decode_access_token

logger = logging.getLogger(__name__)

_BEARER = {"WWW-Authenticate": "Bearer"}


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: UserRole

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail, headers=_BEARER)


async def _principal_from_header(authorization: str, session: AsyncSession) -> Principal:
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise _unauthorized("Bearer token required")
    settings = get_settings()
    try:
        claims = decode_access_token(token, secret=settings.auth_secret, algorithms=[settings.auth_algorithm])
    except ValueError as exc:
        raise _unauthorized("invalid token") from exc

    try:
        found = await session.scalar(select(User.id).where(User.id == claims.user_id))
    except SQLAlchemyError as exc:
        logger.exception("user lookup failed")
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="user lookup failed") from exc
    # Routers open their own transaction on this session.
    await session.rollback()
    if found is None:
        raise _unauthorized("user not found")
    return Principal(user_id=claims.user_id, role=claims.role)


async def get_current_principal(
    authorization: Optional[str] = Header(default=None),
    session: AsyncSession = Depends(get_session),
) -> Principal:
    if authorization is None:
        raise _unauthorized("Bearer token required")
    return await _principal_from_header(authorization, session)


async def get_optional_principal(
    authorization: Optional[str] = Header(default=None),
    session: AsyncSession = Depends(get_session),
) -> Optional[Principal]:
    """Anonymous callers get None; a present but bad token is still rejected."""
    if authorization is None:
        return None
    return await _principal_from_header(authorization, session)


async def require_staff(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_staff:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="staff role required")
    return principal
