from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from farmsight.core.timeutils import utcnow
from farmsight.db.database import Base

CROP_TYPES = ("rice", "corn", "wheat", "soybean", "vegetables", "fruits", "other")


class Farm(Base):
    __tablename__ = "farms"
    __table_args__ = (
        CheckConstraint("area_hectares > 0", name="ck_farms_area_positive"),
        CheckConstraint("latitude BETWEEN -90 AND 90", name="ck_farms_latitude"),
        CheckConstraint("longitude BETWEEN -180 AND 180", name="ck_farms_longitude"),
        Index("ix_farms_coordinates", "latitude", "longitude"),
    )

    id = Column(Integer, primary_key=True, index=True)

    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    owner = relationship("User", back_populates="farms")

    name = Column(String, nullable=False)
    description = Column(String, nullable=True)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    area_hectares = Column(Float, nullable=False)

    crop_type = Column(String, nullable=False)
    planting_date = Column(Date, nullable=False)
    expected_harvest_date = Column(Date, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)

    # Snapshot of the most recent stress analysis
    last_stress_level = Column(String, nullable=True)
    last_confidence = Column(Float, nullable=True)
    last_ndvi = Column(Float, nullable=True)
    last_analyzed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    ndvi_data = relationship(
        "NDVIData",
        back_populates="farm",
        cascade="all, delete",
        order_by="NDVIData.date.desc()",
    )

    @property
    def coordinates(self) -> str:
        return f"{self.latitude},{self.longitude}"
