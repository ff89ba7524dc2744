from sqlalchemy import Column, String, Integer, Enum, ForeignKey, Text, Float, Index
import enum
from sqlalchemy.orm import relationship

from civic_reporter.db.base_class import Base, enum_values


class ReportStatus(str, enum.Enum):
    REPORTED = "reported"
    ACKNOWLEDGED = "acknowledged"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"
    REJECTED = "rejected"


class ReportCategory(str, enum.Enum):
    SANITATION = "sanitation"
    PUBLIC_WORKS = "public_works"
    TRANSPORTATION = "transportation"
    PARKS_RECREATION = "parks_recreation"
    WATER_SEWER = "water_sewer"
    OTHER = "other"


class ReportSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Report(Base):
    __table_args__ = (
        Index("ix_report_location", "location_lat", "location_lng"),
    )

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(Enum(ReportCategory, values_callable=enum_values), nullable=False, index=True)
    severity = Column(Enum(ReportSeverity, values_callable=enum_values), default=ReportSeverity.MEDIUM, nullable=False)
    status = Column(Enum(ReportStatus, values_callable=enum_values), default=ReportStatus.REPORTED, nullable=False, index=True)

    location_lat = Column(Float, nullable=False)
    location_lng = Column(Float, nullable=False)
    location_address = Column(String(255), nullable=False, default="")

    # Relationships
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    user = relationship("User", back_populates="reports", lazy="joined")

    media = relationship(
        "ReportMedia", back_populates="report", cascade="all, delete-orphan",
        passive_deletes=True, lazy="selectin", order_by="ReportMedia.id",
    )
    upvotes = relationship(
        "ReportUpvote", back_populates="report", cascade="all, delete-orphan",
        passive_deletes=True, lazy="selectin",
    )
    history = relationship(
        "ReportHistory", back_populates="report", cascade="all, delete-orphan",
        passive_deletes=True, lazy="selectin", order_by="ReportHistory.id",
    )

    @property
    def upvote_count(self) -> int:
        return len(self.upvotes)

    def upvoted_by(self, user_id: int) -> bool:
        return any(upvote.user_id == user_id for upvote in self.upvotes)
