from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from civic_reporter.core.config import settings
from civic_reporter.core.logging import get_logger
from civic_reporter.db.base_class import Base
from civic_reporter.models import User, UserRole
from civic_reporter.models import Report, ReportHistory, ReportMedia, ReportUpvote  # noqa: F401

logger = get_logger("civic_reporter.db")


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables initialized")


async def create_initial_data(session: AsyncSession) -> None:
    """Create the first admin account from settings if it does not exist yet."""
    from civic_reporter.core.security import get_password_hash
    from civic_reporter.crud.user import get_user_by_email

    if not settings.FIRST_ADMIN_EMAIL or not settings.FIRST_ADMIN_PASSWORD:
        return

    admin = await get_user_by_email(session, email=settings.FIRST_ADMIN_EMAIL)
    if not admin:
        admin_user = User(
            email=settings.FIRST_ADMIN_EMAIL.lower(),
            hashed_password=get_password_hash(settings.FIRST_ADMIN_PASSWORD),
            name="Administrator",
            role=UserRole.ADMIN,
            is_active=True,
            is_verified=True,
        )
        session.add(admin_user)
        await session.commit()
        logger.info("Admin user created")
