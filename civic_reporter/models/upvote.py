from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from civic_reporter.db.base_class import Base


class ReportUpvote(Base):
    __table_args__ = (
        UniqueConstraint("report_id", "user_id", name="uq_reportupvote_report_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, ForeignKey("report.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)

    report = relationship("Report", back_populates="upvotes")
