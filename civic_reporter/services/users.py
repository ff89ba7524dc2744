"""Account administration: listing, activation, roles and deletion."""
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from civic_reporter.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from civic_reporter.core.logging import get_logger
from civic_reporter.crud import report as report_crud
from civic_reporter.crud import user as crud
from civic_reporter.models import Report, User, UserRole
from civic_reporter.schemas import UserCreate
from civic_reporter.schemas.user import UserStats
from civic_reporter.services.actor import Actor
from civic_reporter.services.media import MediaStore
from civic_reporter.services.queries import PageResult, page_window, user_stats

logger = get_logger("civic_reporter.users")

RECENT_REPORTS = 5


def _require_admin(actor: Optional[Actor]) -> None:
    if actor is None or not actor.is_admin:
        raise AuthorizationError("Admin access required")


async def _load(db: AsyncSession, user_id: int) -> User:
    user = await crud.get_user(db, id=user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


async def register_user(db: AsyncSession, user_in: UserCreate) -> User:
    if await crud.get_user_by_email(db, email=user_in.email):
        raise ConflictError("Email already registered")
    return await crud.create_user(db, obj_in=user_in)


async def list_users(
    db: AsyncSession, actor: Optional[Actor], search: Optional[str] = None, page: int = 1, limit: int = 20
) -> PageResult[User]:
    _require_admin(actor)
    skip, page, limit = page_window(page, limit)
    items, total = await crud.get_users(db, skip=skip, limit=limit, search=search)
    return PageResult(items=items, total=total, page=page, limit=limit)


async def get_user_detail(
    db: AsyncSession, actor: Optional[Actor], user_id: int
) -> Tuple[User, UserStats, List[Report]]:
    """The user, their report statistics and their most recent reports."""
    _require_admin(actor)
    user = await _load(db, user_id)
    stats = await user_stats(db, user_id)
    recent, _ = await report_crud.get_user_reports(db, user_id=user_id, skip=0, limit=RECENT_REPORTS)
    return user, stats, recent


async def set_user_active(db: AsyncSession, actor: Optional[Actor], user_id: int, is_active: bool) -> User:
    _require_admin(actor)
    if actor.id == user_id:
        raise ValidationError("You cannot change your own account status")
    user = await _load(db, user_id)
    user = await crud.update_user(db, user, is_active=is_active)
    logger.info(f"User status changed: user_id={user_id}, is_active={is_active}, admin_id={actor.id}")
    return user


async def set_user_role(db: AsyncSession, actor: Optional[Actor], user_id: int, role: UserRole) -> User:
    _require_admin(actor)
    if actor.id == user_id:
        raise ValidationError("You cannot change your own role")
    role = UserRole(role)
    user = await _load(db, user_id)
    user = await crud.update_user(db, user, role=role)
    logger.info(f"User role changed: user_id={user_id}, role={role.value}, admin_id={actor.id}")
    return user


async def delete_user(
    db: AsyncSession, actor: Optional[Actor], user_id: int, media_store: Optional[MediaStore] = None
) -> User:
    """Delete an account and its reports; stored media are cleaned up best-effort."""
    _require_admin(actor)
    if actor.id == user_id:
        raise ValidationError("You cannot delete your own account")
    user = await _load(db, user_id)
    media_keys = await report_crud.get_user_media_keys(db, user_id)
    user = await crud.delete_user(db, user)
    logger.info(f"User deleted: user_id={user_id}, admin_id={actor.id}")

    if media_store is not None and media_keys:
        await media_store.delete_many(media_keys)
    return user
