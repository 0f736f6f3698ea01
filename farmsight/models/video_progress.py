from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from farmsight.core.timeutils import utcnow
from farmsight.db.database import Base

VIDEO_CATEGORIES = ("drought", "pests", "nutrients", "irrigation", "harvesting", "general")


class VideoProgress(Base):
    __tablename__ = "video_progress"
    __table_args__ = (
        CheckConstraint("progress BETWEEN 0 AND 100", name="ck_video_progress_range"),
        UniqueConstraint("user_id", "video_id", name="uq_video_progress_user_video"),
        Index("ix_video_progress_user_watched", "user_id", "last_watched_at"),
        Index("ix_video_progress_user_category", "user_id", "category"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    video_id = Column(String, nullable=False)
    video_title = Column(String, nullable=False)
    video_url = Column(String, nullable=False, default="")
    category = Column(String, nullable=False, default="general")

    progress = Column(Float, nullable=False, default=0.0)
    is_completed = Column(Boolean, nullable=False, default=False)
    watch_time = Column(Integer, nullable=False, default=0)  # seconds

    last_watched_at = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User")
