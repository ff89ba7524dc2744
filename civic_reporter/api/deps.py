from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from civic_reporter.core.config import settings
from civic_reporter.core.errors import AuthenticationError, AuthorizationError, RateLimitError
from civic_reporter.core.security import decode_access_token
from civic_reporter.crud.user import get_user
from civic_reporter.db.session import get_db
from civic_reporter.models import User
from civic_reporter.schemas.user import TokenPayload
from civic_reporter.services import rate_limit
from civic_reporter.services.actor import Actor

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/login", auto_error=False)


def get_token(request: Request, bearer: Optional[str] = Depends(oauth2_scheme)) -> Optional[str]:
    """
    Read the credential from the Authorization header, falling back to the session cookie.
    """
    return bearer or request.cookies.get(settings.AUTH_COOKIE_NAME)


async def get_current_user(
    db: AsyncSession = Depends(get_db), token: Optional[str] = Depends(get_token)
) -> User:
    if not token:
        raise AuthenticationError("Not authenticated, please log in")
    try:
        token_data = TokenPayload(**decode_access_token(token))
    except PydanticValidationError:
        raise AuthenticationError("Invalid or expired token")
    user = await get_user(db, id=token_data.sub)
    if not user:
        raise AuthenticationError("User no longer exists")
    return user


async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    # The user row is reloaded on every request, so deactivation takes effect immediately.
    if not current_user.is_active:
        raise AuthenticationError("Account is deactivated")
    return current_user


async def get_current_actor(current_user: User = Depends(get_current_active_user)) -> Actor:
    return Actor.from_user(current_user)


async def get_current_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise AuthorizationError("Admin access required")
    return actor


async def get_optional_actor(
    db: AsyncSession = Depends(get_db), token: Optional[str] = Depends(get_token)
) -> Optional[Actor]:
    """The viewer when a valid credential is present, otherwise None."""
    if not token:
        return None
    try:
        user = await get_current_active_user(await get_current_user(db=db, token=token))
    except AuthenticationError:
        return None
    return Actor.from_user(user)


def client_id(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def auth_rate_limit(request: Request) -> None:
    allowed = await rate_limit.allow(
        "auth",
        client_id(request),
        limit=settings.AUTH_RATE_LIMIT_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    )
    if not allowed:
        raise RateLimitError("Too many authentication attempts, please try again later")
