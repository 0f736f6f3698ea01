from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
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

SATELLITES = ("Landsat-8", "Landsat-9", "Sentinel-2", "MODIS")


class NDVIData(Base):
    __tablename__ = "ndvi_data"
    __table_args__ = (
        CheckConstraint("ndvi BETWEEN -1 AND 1", name="ck_ndvi_range"),
        CheckConstraint("cloud_cover BETWEEN 0 AND 100", name="ck_ndvi_cloud_cover"),
        UniqueConstraint("farm_id", "date", name="uq_ndvi_farm_date"),
        Index("ix_ndvi_farm_date", "farm_id", "date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    farm_id = Column(Integer, ForeignKey("farms.id", ondelete="CASCADE"), nullable=False)

    date = Column(Date, nullable=False)
    ndvi = Column(Float, nullable=False)
    cloud_cover = Column(Float, nullable=False, default=0.0)
    satellite = Column(String, nullable=False, default="Landsat-8")

    # Stress level of this reading on its own, at recording time
    stress_level = Column(String, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    farm = relationship("Farm", back_populates="ndvi_data")
