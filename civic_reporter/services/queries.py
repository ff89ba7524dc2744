"""
Read-side views over reports: owner listings, nearby search, admin
filtering and live aggregate statistics.
"""
import math
from dataclasses import dataclass
from typing import Generic, List, Optional, Tuple, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from civic_reporter.core.errors import AuthorizationError, NotFoundError, ValidationError
from civic_reporter.crud import report as crud
from civic_reporter.models import Report, ReportCategory, ReportSeverity, ReportStatus
from civic_reporter.schemas.report import DashboardStats, ReportStatusCounts, UpvoteTotals, UserTotals
from civic_reporter.schemas.user import UserStats
from civic_reporter.services.actor import Actor
from civic_reporter.services.geo import haversine_m, validate_coordinates
from civic_reporter.services.lifecycle import coerce_enum

T = TypeVar("T")

MAX_PAGE_SIZE = 100
PENDING_STATUSES = (ReportStatus.REPORTED, ReportStatus.ACKNOWLEDGED, ReportStatus.IN_PROGRESS)


@dataclass
class PageResult(Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass
class ReportFilters:
    status: Optional[str] = None
    category: Optional[str] = None
    severity: Optional[str] = None
    user_id: Optional[int] = None
    search: Optional[str] = None


def page_window(page: int, limit: int) -> Tuple[int, int, int]:
    if page < 1:
        raise ValidationError("Page must be at least 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")
    return (page - 1) * limit, page, limit


def _require_admin(actor: Optional[Actor]) -> None:
    if actor is None or not actor.is_admin:
        raise AuthorizationError("Admin access required")


async def get_report(db: AsyncSession, report_id: int) -> Report:
    report = await crud.get_report(db, report_id)
    if not report:
        raise NotFoundError("Report not found")
    return report


async def list_owned_reports(
    db: AsyncSession, actor: Optional[Actor], page: int = 1, limit: int = 10
) -> PageResult[Report]:
    """Reports owned by the actor, newest first."""
    if actor is None:
        raise AuthorizationError("Login required")
    skip, page, limit = page_window(page, limit)
    items, total = await crud.get_user_reports(db, user_id=actor.id, skip=skip, limit=limit)
    return PageResult(items=items, total=total, page=page, limit=limit)


async def list_nearby(
    db: AsyncSession,
    lat: Optional[float],
    lng: Optional[float],
    radius_m: Optional[float],
    limit: Optional[int] = None,
) -> List[Tuple[Report, float]]:
    """
    Reports within ``radius_m`` meters of the center (boundary inclusive),
    closest first, ties broken by id. Returns (report, distance) pairs.
    """
    validate_coordinates(lat, lng)
    if radius_m is None or not math.isfinite(radius_m) or radius_m <= 0:
        raise ValidationError("Radius must be greater than 0")

    candidates = await crud.get_reports_in_bounding_box(db, lat, lng, radius_m)
    matches = []
    for report in candidates:
        distance = haversine_m(lat, lng, report.location_lat, report.location_lng)
        if distance <= radius_m:
            matches.append((report, distance))
    matches.sort(key=lambda pair: (pair[1], pair[0].id))
    if limit is not None:
        matches = matches[:limit]
    return matches


async def admin_list_reports(
    db: AsyncSession,
    actor: Optional[Actor],
    filters: Optional[ReportFilters] = None,
    page: int = 1,
    limit: int = 20,
) -> PageResult[Report]:
    """Admin view over all reports; unset filters match everything."""
    _require_admin(actor)
    filters = filters or ReportFilters()
    skip, page, limit = page_window(page, limit)
    items, total = await crud.get_reports(
        db,
        skip=skip,
        limit=limit,
        status=coerce_enum(ReportStatus, filters.status, "status") if filters.status else None,
        category=coerce_enum(ReportCategory, filters.category, "category") if filters.category else None,
        severity=coerce_enum(ReportSeverity, filters.severity, "severity") if filters.severity else None,
        user_id=filters.user_id,
        search=filters.search,
    )
    return PageResult(items=items, total=total, page=page, limit=limit)


async def dashboard_stats(db: AsyncSession, actor: Optional[Actor]) -> DashboardStats:
    """
    Aggregate counts computed from the stored rows on every call. There are no
    maintained counters to drift out of sync.
    """
    _require_admin(actor)
    by_status = {status: 0 for status in ReportStatus}
    by_severity = {severity: 0 for severity in ReportSeverity}
    by_category = {category: 0 for category in ReportCategory}
    total = 0
    for status, severity, category, count in await crud.count_reports_grouped(db):
        by_status[ReportStatus(status)] += count
        by_severity[ReportSeverity(severity)] += count
        by_category[ReportCategory(category)] += count
        total += count

    upvotes = await crud.count_all_upvotes(db)
    users_total, users_active, admins = await crud.count_users(db)
    return DashboardStats(
        reports=ReportStatusCounts(total=total, by_status=by_status),
        severity=by_severity,
        category=by_category,
        upvotes=UpvoteTotals(total=upvotes, average=round(upvotes / total, 2) if total else 0.0),
        users=UserTotals(total=users_total, active=users_active, admins=admins),
    )


async def user_stats(db: AsyncSession, user_id: int) -> UserStats:
    counts = await crud.count_user_reports_by_status(db, user_id)
    return UserStats(
        total=sum(counts.values()),
        pending=sum(counts.get(status, 0) for status in PENDING_STATUSES),
        resolved=counts.get(ReportStatus.RESOLVED, 0),
        rejected=counts.get(ReportStatus.REJECTED, 0),
        upvotes_received=await crud.count_upvotes_received(db, user_id),
    )
