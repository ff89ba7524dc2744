import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, case, delete, func, insert, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from civic_reporter.core.errors import NotFoundError
from civic_reporter.models import (
    Report,
    ReportHistory,
    ReportMedia,
    ReportStatus,
    ReportUpvote,
    User,
    UserRole,
)

EARTH_RADIUS_M = 6_371_000.0


async def get_report(db: AsyncSession, id: int) -> Optional[Report]:
    """
    Get a report by ID with its media, upvotes and history loaded.
    """
    result = await db.execute(
        select(Report).filter(Report.id == id).execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def create_report(
    db: AsyncSession,
    *,
    user_id: int,
    title: str,
    description: str,
    category: Any,
    severity: Any,
    location_lat: float,
    location_lng: float,
    location_address: str,
    media: Sequence[Dict[str, Any]] = (),
    initial_notes: str = "",
) -> Report:
    """
    Create a report together with its media rows and the initial history entry.
    Everything is committed in one transaction.
    """
    db_obj = Report(
        title=title,
        description=description,
        category=category,
        severity=severity,
        status=ReportStatus.REPORTED,
        location_lat=location_lat,
        location_lng=location_lng,
        location_address=location_address,
        user_id=user_id,
    )
    db_obj.media = [ReportMedia(**item) for item in media]
    db_obj.history = [
        ReportHistory(status=ReportStatus.REPORTED, notes=initial_notes, updated_by_id=user_id)
    ]
    db.add(db_obj)
    await db.commit()
    return await get_report(db, db_obj.id)


async def apply_status_change(
    db: AsyncSession, db_obj: Report, status: ReportStatus, notes: str, updated_by_id: int
) -> Report:
    """
    Set the status and append the matching history entry in a single commit.
    """
    db_obj.status = status
    db.add(
        ReportHistory(
            report_id=db_obj.id,
            status=status,
            notes=notes,
            updated_by_id=updated_by_id,
        )
    )
    await db.commit()
    return await get_report(db, db_obj.id)


async def count_upvotes(db: AsyncSession, report_id: int) -> int:
    result = await db.execute(
        select(func.count(ReportUpvote.id)).where(ReportUpvote.report_id == report_id)
    )
    return result.scalar_one()


async def has_upvoted(db: AsyncSession, report_id: int, user_id: int) -> bool:
    result = await db.execute(
        select(ReportUpvote.id).where(
            ReportUpvote.report_id == report_id, ReportUpvote.user_id == user_id
        )
    )
    return result.first() is not None


async def toggle_upvote(db: AsyncSession, report_id: int, user_id: int) -> Tuple[int, bool]:
    """
    Flip the user's membership in the report's upvote set.

    The flip is a conditional delete followed, when nothing was deleted, by an
    insert guarded by the (report_id, user_id) unique constraint, so racing
    requests never read-modify-write the set. Returns the new count and whether
    the user is now an upvoter.
    """
    removed = await db.execute(
        delete(ReportUpvote).where(
            ReportUpvote.report_id == report_id, ReportUpvote.user_id == user_id
        )
    )
    if removed.rowcount:
        await db.commit()
    else:
        try:
            await db.execute(insert(ReportUpvote).values(report_id=report_id, user_id=user_id))
            await db.commit()
        except IntegrityError:
            await db.rollback()
            # Either a concurrent request from the same user inserted the row
            # first, or the report was deleted under us.
            if await db.scalar(select(Report.id).where(Report.id == report_id)) is None:
                raise NotFoundError("Report not found")

    return await count_upvotes(db, report_id), await has_upvoted(db, report_id, user_id)


async def delete_report(db: AsyncSession, db_obj: Report) -> Report:
    """
    Delete a report. History, upvotes and media rows cascade.
    """
    await db.delete(db_obj)
    await db.commit()
    return db_obj


def _newest_first(query):
    return query.order_by(Report.created_at.desc(), Report.id.asc())


async def _paginate(db: AsyncSession, query, skip: int, limit: int) -> Tuple[List[Report], int]:
    total = (
        await db.execute(select(func.count()).select_from(query.order_by(None).subquery()))
    ).scalar_one()
    result = await db.execute(_newest_first(query).offset(skip).limit(limit))
    return list(result.unique().scalars().all()), total


async def get_user_reports(
    db: AsyncSession, user_id: int, skip: int = 0, limit: int = 10
) -> Tuple[List[Report], int]:
    """
    Get reports created by a specific user, newest first.
    """
    return await _paginate(db, select(Report).filter(Report.user_id == user_id), skip, limit)


async def get_reports(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 20,
    status: Optional[ReportStatus] = None,
    category: Optional[Any] = None,
    severity: Optional[Any] = None,
    user_id: Optional[int] = None,
    search: Optional[str] = None,
) -> Tuple[List[Report], int]:
    """
    Get reports matching any combination of filters, newest first.
    """
    query = select(Report)
    if status:
        query = query.filter(Report.status == status)
    if category:
        query = query.filter(Report.category == category)
    if severity:
        query = query.filter(Report.severity == severity)
    if user_id is not None:
        query = query.filter(Report.user_id == user_id)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(func.lower(Report.title).like(pattern), func.lower(Report.description).like(pattern))
        )
    return await _paginate(db, query, skip, limit)


async def get_reports_in_bounding_box(
    db: AsyncSession, lat: float, lng: float, radius_m: float
) -> List[Report]:
    """
    Get candidate reports inside the lat/lng box enclosing the search circle.
    The longitude bound is dropped near the poles and across the antimeridian.
    """
    # Padded slightly so the box always encloses the exact circle.
    lat_delta = math.degrees(radius_m / EARTH_RADIUS_M) * 1.000001
    conditions = [
        Report.location_lat >= lat - lat_delta,
        Report.location_lat <= lat + lat_delta,
    ]
    if abs(lat) + lat_delta < 90:
        lng_delta = lat_delta / math.cos(math.radians(abs(lat) + lat_delta))
        if -180 <= lng - lng_delta and lng + lng_delta <= 180:
            conditions += [
                Report.location_lng >= lng - lng_delta,
                Report.location_lng <= lng + lng_delta,
            ]
    result = await db.execute(select(Report).filter(and_(*conditions)))
    return list(result.unique().scalars().all())


async def count_reports_grouped(db: AsyncSession) -> List[Tuple[Any, Any, Any, int]]:
    """
    Count reports per (status, severity, category) in one grouped query.
    """
    result = await db.execute(
        select(Report.status, Report.severity, Report.category, func.count(Report.id))
        .group_by(Report.status, Report.severity, Report.category)
    )
    return [tuple(row) for row in result.all()]


async def count_all_upvotes(db: AsyncSession) -> int:
    result = await db.execute(select(func.count(ReportUpvote.id)))
    return result.scalar_one()


async def count_users(db: AsyncSession) -> Tuple[int, int, int]:
    """
    Return (total, active, admins) user counts.
    """
    result = await db.execute(
        select(
            func.count(User.id),
            func.coalesce(func.sum(case((User.is_active.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(case((User.role == UserRole.ADMIN, 1), else_=0)), 0),
        )
    )
    total, active, admins = result.one()
    return int(total), int(active), int(admins)


async def count_user_reports_by_status(db: AsyncSession, user_id: int) -> Dict[ReportStatus, int]:
    result = await db.execute(
        select(Report.status, func.count(Report.id))
        .where(Report.user_id == user_id)
        .group_by(Report.status)
    )
    return {ReportStatus(status): count for status, count in result.all()}


async def count_upvotes_received(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count(ReportUpvote.id))
        .join(Report, Report.id == ReportUpvote.report_id)
        .where(Report.user_id == user_id)
    )
    return result.scalar_one()


async def get_user_media_keys(db: AsyncSession, user_id: int) -> List[str]:
    result = await db.execute(
        select(ReportMedia.storage_key)
        .join(Report, Report.id == ReportMedia.report_id)
        .where(Report.user_id == user_id)
    )
    return list(result.scalars().all())
