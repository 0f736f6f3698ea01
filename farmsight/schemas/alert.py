from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class AlertOut(BaseModel):
    id: int
    farm_id: int
    user_id: int
    stress_level: str
    confidence: float
    ndvi_value: float
    recommendations: List[str]
    risk_factors: List[str]
    ai_analysis: Optional[str] = None
    alert_type: str
    status: str
    sent_at: Optional[datetime] = None
    urgency: str
    message: Optional[str] = None
    acknowledged: bool
    acknowledged_at: Optional[datetime] = None
    action_taken: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AcknowledgeRequest(BaseModel):
    action_taken: Optional[str] = None
