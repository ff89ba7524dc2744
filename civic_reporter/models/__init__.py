from civic_reporter.models.user import User, UserRole
from civic_reporter.models.report import Report, ReportStatus, ReportCategory, ReportSeverity
from civic_reporter.models.media import ReportMedia, MediaType
from civic_reporter.models.history import ReportHistory
from civic_reporter.models.upvote import ReportUpvote
