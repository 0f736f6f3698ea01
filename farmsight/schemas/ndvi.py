from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Satellite = Literal["Landsat-8", "Landsat-9", "Sentinel-2", "MODIS"]


class NDVISampleCreate(BaseModel):
    date: date
    ndvi: float = Field(..., ge=-1, le=1)
    cloud_cover: float = Field(0.0, ge=0, le=100)
    satellite: Satellite = "Landsat-8"


class NDVISampleOut(BaseModel):
    id: int
    farm_id: int
    date: date
    ndvi: float
    cloud_cover: float
    satellite: str
    stress_level: Optional[str] = None

    class Config:
        from_attributes = True


class NDVIPoint(BaseModel):
    date: date
    ndvi: float = Field(..., ge=-1, le=1)
    cloud_cover: float = Field(0.0, ge=0, le=100)


class NDVIAnalysisRequest(BaseModel):
    """Ad-hoc analysis of readings that aren't stored. Any order; sorted server side."""

    samples: List[NDVIPoint] = Field(..., min_length=1)
    coordinates: Optional[str] = None
    crop_type: Optional[str] = None
    area: Optional[float] = None
    forecast_days: int = Field(14, ge=1, le=90)
