from datetime import datetime

from sqlalchemy import Column, Integer, ForeignKey, Enum, Text, DateTime
from sqlalchemy.orm import relationship

from civic_reporter.db.base_class import Base, enum_values
from civic_reporter.models.report import ReportStatus


class ReportHistory(Base):
    """One status change of a report. Rows are only ever inserted."""

    id = Column(Integer, primary_key=True, index=True)
    status = Column(Enum(ReportStatus, values_callable=enum_values), nullable=False)
    notes = Column(Text, nullable=False, default="")
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    report_id = Column(Integer, ForeignKey("report.id", ondelete="CASCADE"), nullable=False, index=True)
    report = relationship("Report", back_populates="history")

    updated_by_id = Column(Integer, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    updated_by = relationship("User", lazy="joined")
