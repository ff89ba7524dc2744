from sqlalchemy import Column, String, Integer, ForeignKey, Enum
import enum
from sqlalchemy.orm import relationship

from civic_reporter.db.base_class import Base, enum_values


class MediaType(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


class ReportMedia(Base):
    id = Column(Integer, primary_key=True, index=True)
    type = Column(Enum(MediaType, values_callable=enum_values), nullable=False)
    url = Column(String(512), nullable=False)
    storage_key = Column(String(255), nullable=False, unique=True)
    mime_type = Column(String(100), nullable=False)
    file_size = Column(Integer, nullable=False)  # Size in bytes

    report_id = Column(Integer, ForeignKey("report.id", ondelete="CASCADE"), nullable=False, index=True)
    report = relationship("Report", back_populates="media")
