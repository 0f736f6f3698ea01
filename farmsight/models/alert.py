from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from farmsight.core.timeutils import utcnow
from farmsight.db.database import Base

ALERT_TYPES = ("sms", "in_app", "email")
ALERT_STATUSES = ("pending", "sent", "delivered", "failed")
URGENCIES = ("low", "medium", "high", "critical")


class Alert(Base):
    __tablename__ = "alerts"
    __table_args__ = (
        CheckConstraint("confidence BETWEEN 0 AND 1", name="ck_alerts_confidence"),
        Index("ix_alerts_farm_created", "farm_id", "created_at"),
        Index("ix_alerts_user_created", "user_id", "created_at"),
        Index("ix_alerts_status_created", "status", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)

    farm_id = Column(Integer, ForeignKey("farms.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    stress_level = Column(String, nullable=False)
    confidence = Column(Float, nullable=False)
    ndvi_value = Column(Float, nullable=False)

    recommendations = Column(JSON, nullable=False, default=list)
    risk_factors = Column(JSON, nullable=False, default=list)
    ai_analysis = Column(Text, nullable=True)

    alert_type = Column(String, nullable=False, default="in_app")
    status = Column(String, nullable=False, default="pending")
    sent_at = Column(DateTime, nullable=True)
    message_id = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)
    message = Column(Text, nullable=True)
    urgency = Column(String, nullable=False, default="medium")

    acknowledged = Column(Boolean, nullable=False, default=False)
    acknowledged_at = Column(DateTime, nullable=True)
    action_taken = Column(String, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    farm = relationship("Farm")
    user = relationship("User")


class AlertCooldown(Base):
    """
    Last alert per farm. Written only through a version-checked update so
    concurrent workers can't both claim the same cooldown window.
    """

    __tablename__ = "alert_cooldowns"

    farm_id = Column(Integer, ForeignKey("farms.id"), primary_key=True)
    stress_level = Column(String, nullable=False)
    last_alert_at = Column(DateTime, nullable=False)
    version = Column(Integer, nullable=False, default=1)
