from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime

from civic_reporter.models import Report as ReportModel
from civic_reporter.models.media import MediaType
from civic_reporter.models.report import ReportCategory, ReportSeverity, ReportStatus


class Location(BaseModel):
    lat: float
    lng: float
    address: str = ""


class ReportOwner(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class MediaItem(BaseModel):
    id: int
    type: MediaType
    url: str
    mime_type: str
    file_size: int

    class Config:
        from_attributes = True


class HistoryEntry(BaseModel):
    status: ReportStatus
    notes: str
    updated_by: Optional[ReportOwner] = None
    timestamp: datetime

    class Config:
        from_attributes = True


# Properties to return in lists
class Report(BaseModel):
    id: int
    title: str
    description: str
    category: ReportCategory
    severity: ReportSeverity
    status: ReportStatus
    location: Location
    media: List[MediaItem] = []
    user: Optional[ReportOwner] = None
    upvotes: int = 0
    has_upvoted: bool = False
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, report: ReportModel, viewer_id: Optional[int] = None, **extra):
        return cls(
            id=report.id,
            title=report.title,
            description=report.description,
            category=report.category,
            severity=report.severity,
            status=report.status,
            location=Location(
                lat=report.location_lat,
                lng=report.location_lng,
                address=report.location_address or "",
            ),
            media=[MediaItem.model_validate(item) for item in report.media],
            user=ReportOwner.model_validate(report.user) if report.user is not None else None,
            upvotes=report.upvote_count,
            has_upvoted=viewer_id is not None and report.upvoted_by(viewer_id),
            created_at=report.created_at,
            updated_at=report.updated_at,
            **extra,
        )


# Properties to return for a single report
class ReportDetail(Report):
    history: List[HistoryEntry] = []

    @classmethod
    def from_model(cls, report: ReportModel, viewer_id: Optional[int] = None, **extra):
        history = [HistoryEntry.model_validate(entry) for entry in report.history]
        return super().from_model(report, viewer_id=viewer_id, history=history, **extra)


class NearbyReport(Report):
    distance_m: float


class StatusUpdate(BaseModel):
    status: ReportStatus
    notes: str = Field("", max_length=1000)


class RejectRequest(BaseModel):
    reason: str = Field("", max_length=1000)


class UpvoteResult(BaseModel):
    upvotes: int
    has_upvoted: bool


class ReportStatusCounts(BaseModel):
    total: int = 0
    by_status: Dict[ReportStatus, int] = {}


class UpvoteTotals(BaseModel):
    total: int = 0
    average: float = 0.0


class UserTotals(BaseModel):
    total: int = 0
    active: int = 0
    admins: int = 0


class DashboardStats(BaseModel):
    reports: ReportStatusCounts
    severity: Dict[ReportSeverity, int]
    category: Dict[ReportCategory, int]
    upvotes: UpvoteTotals
    users: UserTotals
