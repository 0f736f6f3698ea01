from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

VideoCategory = Literal["drought", "pests", "nutrients", "irrigation", "harvesting", "general"]


class VideoProgressCreate(BaseModel):
    video_id: str = Field(..., min_length=1)
    progress: float = Field(..., ge=0, le=100)
    video_title: Optional[str] = None
    video_url: Optional[str] = None
    category: VideoCategory = "general"
    watch_time: Optional[int] = Field(None, ge=0)


class VideoProgressOut(BaseModel):
    id: int
    video_id: str
    video_title: str
    video_url: str
    category: str
    progress: float
    is_completed: bool
    watch_time: int
    last_watched_at: datetime

    class Config:
        from_attributes = True
