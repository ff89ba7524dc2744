from civic_reporter.schemas.common import Envelope, Page
from civic_reporter.schemas.user import (
    User, UserCreate, UserLogin, UserStatusUpdate, UserRoleUpdate, UserStats, Token, TokenPayload,
    VerifyOtpRequest, ResendOtpRequest,
)
from civic_reporter.schemas.report import (
    Location, MediaItem, HistoryEntry, Report, ReportDetail, NearbyReport,
    StatusUpdate, RejectRequest, UpvoteResult, DashboardStats,
)
