from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from civic_reporter.core.errors import ConflictError
from civic_reporter.core.security import get_password_hash, verify_password
from civic_reporter.models import User, UserRole
from civic_reporter.schemas import UserCreate


async def get_user(db: AsyncSession, id: int) -> Optional[User]:
    """
    Get a user by ID.
    """
    result = await db.execute(select(User).filter(User.id == id))
    return result.scalars().first()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    """
    Get a user by email. Emails are stored lower-cased.
    """
    result = await db.execute(select(User).filter(User.email == email.lower()))
    return result.scalars().first()


async def get_users(
    db: AsyncSession, skip: int = 0, limit: int = 100, search: Optional[str] = None
) -> Tuple[List[User], int]:
    """
    Get users, newest first, optionally matching a name/email search term.
    Returns the page and the total number of matches.
    """
    query = select(User)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern)))

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(User.created_at.desc(), User.id.asc()).offset(skip).limit(limit)
    )
    return list(result.scalars().all()), total


async def create_user(db: AsyncSession, obj_in: UserCreate, role: UserRole = UserRole.USER) -> User:
    """
    Create a new user. A duplicate email raises ConflictError, including when a
    concurrent registration wins the unique constraint.
    """
    db_obj = User(
        name=obj_in.name,
        email=obj_in.email.lower(),
        hashed_password=get_password_hash(obj_in.password),
        role=role,
        is_active=True,
    )
    db.add(db_obj)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Email already registered")
    await db.refresh(db_obj)
    return db_obj


async def update_user(db: AsyncSession, db_obj: User, **fields) -> User:
    """
    Update a user.
    """
    for field, value in fields.items():
        setattr(db_obj, field, value)

    db.add(db_obj)
    await db.commit()
    await db.refresh(db_obj)
    return db_obj


async def delete_user(db: AsyncSession, db_obj: User) -> User:
    """
    Delete a user. Their reports go with them.
    """
    await db.delete(db_obj)
    await db.commit()
    return db_obj


async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
    """
    Authenticate a user by email and password.
    """
    user = await get_user_by_email(db, email=email)
    if not user:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user
