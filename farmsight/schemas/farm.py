from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

CropType = Literal["rice", "corn", "wheat", "soybean", "vegetables", "fruits", "other"]


class Coordinates(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class FarmCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    coordinates: Coordinates
    area_hectares: float = Field(..., gt=0)
    crop_type: CropType
    planting_date: date
    expected_harvest_date: Optional[date] = None

    @model_validator(mode="after")
    def check_harvest_after_planting(self):
        if self.expected_harvest_date and self.expected_harvest_date < self.planting_date:
            raise ValueError("expected_harvest_date must not precede planting_date")
        return self


class FarmUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    area_hectares: Optional[float] = Field(None, gt=0)
    crop_type: Optional[CropType] = None
    planting_date: Optional[date] = None
    expected_harvest_date: Optional[date] = None


class FarmOut(BaseModel):
    id: int
    owner_id: int
    name: str
    description: Optional[str] = None
    latitude: float
    longitude: float
    area_hectares: float
    crop_type: str
    planting_date: date
    expected_harvest_date: Optional[date] = None
    is_active: bool
    last_stress_level: Optional[str] = None
    last_confidence: Optional[float] = None
    last_ndvi: Optional[float] = None
    last_analyzed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
