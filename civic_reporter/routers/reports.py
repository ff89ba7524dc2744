from typing import Any, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from civic_reporter.api.deps import get_current_actor, get_optional_actor
from civic_reporter.db.session import get_db
from civic_reporter.schemas import Envelope, NearbyReport, Page, Report, ReportDetail, UpvoteResult
from civic_reporter.schemas.report import Location
from civic_reporter.services import lifecycle, queries
from civic_reporter.services.actor import Actor
from civic_reporter.services.media import MediaStore, get_media_store

router = APIRouter()


@router.post("/reports", response_model=Envelope[ReportDetail], status_code=status.HTTP_201_CREATED)
async def create_new_report(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(""),
    category: Optional[str] = Form(None),
    severity: Optional[str] = Form("medium"),
    lat: Optional[float] = Form(None),
    lng: Optional[float] = Form(None),
    address: Optional[str] = Form(""),
    media: Optional[List[UploadFile]] = File(None),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    media_store: MediaStore = Depends(get_media_store),
) -> Any:
    """
    Submit a new report. Attachments are stored first, then the report is
    created; stored files are removed again if creation fails.
    """
    stored = await media_store.save_all(media or [], owner_id=actor.id)
    location = Location(lat=lat, lng=lng, address=address or "") if lat is not None and lng is not None else None
    try:
        report = await lifecycle.create_report(
            db,
            actor,
            title=title,
            description=description,
            category=category,
            severity=severity,
            location=location,
            media=stored,
        )
    except Exception:
        await media_store.delete_many([item.storage_key for item in stored])
        raise
    return Envelope(message="Report submitted successfully", data=ReportDetail.from_model(report, actor.id))


@router.get("/reports/mine", response_model=Envelope[Page[Report]])
async def read_my_reports(
    page: int = 1,
    limit: int = 10,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    Retrieve the current user's reports, newest first.
    """
    result = await queries.list_owned_reports(db, actor, page=page, limit=limit)
    return Envelope(
        data=Page(
            items=[Report.from_model(report, actor.id) for report in result.items],
            total=result.total,
            page=result.page,
            limit=result.limit,
            pages=result.pages,
        )
    )


@router.get("/reports/nearby", response_model=Envelope[List[NearbyReport]])
async def read_nearby_reports(
    lat: float,
    lng: float,
    radius: float = Query(..., description="Search radius in meters"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    Retrieve reports within ``radius`` meters of a point, closest first.
    """
    matches = await queries.list_nearby(db, lat, lng, radius, limit=limit)
    return Envelope(
        data=[
            NearbyReport.from_model(report, actor.id, distance_m=round(distance, 2))
            for report, distance in matches
        ]
    )


@router.get("/reports/{report_id}", response_model=Envelope[ReportDetail])
async def read_report(
    report_id: int,
    actor: Optional[Actor] = Depends(get_optional_actor),
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    Get a report with its history. Public; upvote state is filled in for logged-in viewers.
    """
    report = await queries.get_report(db, report_id)
    return Envelope(data=ReportDetail.from_model(report, actor.id if actor else None))


@router.patch("/reports/{report_id}/upvote", response_model=Envelope[UpvoteResult])
async def toggle_report_upvote(
    report_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> Any:
    count, has_upvoted = await lifecycle.toggle_upvote(db, actor, report_id)
    return Envelope(
        message="Upvote added" if has_upvoted else "Upvote removed",
        data=UpvoteResult(upvotes=count, has_upvoted=has_upvoted),
    )


@router.delete("/reports/{report_id}", response_model=Envelope[None])
async def delete_report_by_id(
    report_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    media_store: MediaStore = Depends(get_media_store),
) -> Any:
    """
    Delete a report. Owners can delete their own reports, admins can delete any.
    """
    await lifecycle.delete_report(db, actor, report_id, media_store=media_store)
    return Envelope(message="Report deleted successfully")
