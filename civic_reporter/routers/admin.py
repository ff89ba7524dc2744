from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from civic_reporter.api.deps import get_current_admin
from civic_reporter.db.session import get_db
from civic_reporter.schemas import (
    DashboardStats,
    Envelope,
    Page,
    RejectRequest,
    Report,
    ReportDetail,
    StatusUpdate,
    User as UserSchema,
    UserRoleUpdate,
    UserStats,
    UserStatusUpdate,
)
from civic_reporter.services import lifecycle, queries, users
from civic_reporter.services.actor import Actor
from civic_reporter.services.media import MediaStore, get_media_store
from civic_reporter.services.queries import ReportFilters

router = APIRouter(prefix="/admin")


class UserDetail(BaseModel):
    user: UserSchema
    stats: UserStats
    recent_reports: List[Report]


@router.get("/reports", response_model=Envelope[Page[Report]])
async def read_reports(
    status: Optional[str] = None,
    category: Optional[str] = None,
    severity: Optional[str] = None,
    user_id: Optional[int] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    admin: Actor = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    Retrieve all reports with optional filters.
    """
    filters = ReportFilters(status=status, category=category, severity=severity, user_id=user_id, search=search)
    result = await queries.admin_list_reports(db, admin, filters, page=page, limit=limit)
    return Envelope(
        data=Page(
            items=[Report.from_model(report, admin.id) for report in result.items],
            total=result.total,
            page=result.page,
            limit=result.limit,
            pages=result.pages,
        )
    )


@router.get("/reports/{report_id}", response_model=Envelope[ReportDetail])
async def read_report_detail(
    report_id: int,
    admin: Actor = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> Any:
    report = await queries.get_report(db, report_id)
    return Envelope(data=ReportDetail.from_model(report, admin.id))


@router.patch("/reports/{report_id}/status", response_model=Envelope[ReportDetail])
async def update_report_status(
    report_id: int,
    status_in: StatusUpdate,
    admin: Actor = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    Change a report's status and record it in the history.
    """
    report = await lifecycle.transition_status(db, admin, report_id, status_in.status, status_in.notes)
    return Envelope(
        message=f"Report status updated to {report.status.value}",
        data=ReportDetail.from_model(report, admin.id),
    )


@router.patch("/reports/{report_id}/reject", response_model=Envelope[ReportDetail])
async def reject_report(
    report_id: int,
    reject_in: RejectRequest,
    admin: Actor = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> Any:
    report = await lifecycle.reject_report(db, admin, report_id, reject_in.reason)
    return Envelope(message="Report rejected", data=ReportDetail.from_model(report, admin.id))


@router.get("/dashboard/stats", response_model=Envelope[DashboardStats])
async def read_dashboard_stats(
    admin: Actor = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> Any:
    return Envelope(data=await queries.dashboard_stats(db, admin))


@router.get("/users", response_model=Envelope[Page[UserSchema]])
async def read_users(
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    admin: Actor = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    Retrieve users, optionally matching a name or email.
    """
    result = await users.list_users(db, admin, search=search, page=page, limit=limit)
    return Envelope(
        data=Page(
            items=[UserSchema.model_validate(user) for user in result.items],
            total=result.total,
            page=result.page,
            limit=result.limit,
            pages=result.pages,
        )
    )


@router.get("/users/{user_id}", response_model=Envelope[UserDetail])
async def read_user(
    user_id: int,
    admin: Actor = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> Any:
    user, stats, recent = await users.get_user_detail(db, admin, user_id)
    return Envelope(
        data=UserDetail(
            user=UserSchema.model_validate(user),
            stats=stats,
            recent_reports=[Report.from_model(report) for report in recent],
        )
    )


@router.patch("/users/{user_id}/status", response_model=Envelope[UserSchema])
async def update_user_status(
    user_id: int,
    status_in: UserStatusUpdate,
    admin: Actor = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> Any:
    user = await users.set_user_active(db, admin, user_id, status_in.is_active)
    return Envelope(
        message="User activated" if user.is_active else "User deactivated",
        data=UserSchema.model_validate(user),
    )


@router.patch("/users/{user_id}/role", response_model=Envelope[UserSchema])
async def update_user_role(
    user_id: int,
    role_in: UserRoleUpdate,
    admin: Actor = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
) -> Any:
    user = await users.set_user_role(db, admin, user_id, role_in.role)
    return Envelope(message=f"User role updated to {user.role.value}", data=UserSchema.model_validate(user))


@router.delete("/users/{user_id}", response_model=Envelope[None])
async def delete_user(
    user_id: int,
    admin: Actor = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    media_store: MediaStore = Depends(get_media_store),
) -> Any:
    """
    Delete a user together with their reports.
    """
    await users.delete_user(db, admin, user_id, media_store=media_store)
    return Envelope(message="User deleted successfully")
