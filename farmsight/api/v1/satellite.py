from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from farmsight.api.deps import get_imagery_provider, get_stress_detector
from farmsight.api.v1 import auth
from farmsight.models.user import User
from farmsight.schemas.ndvi import NDVIAnalysisRequest
from farmsight.services.stress.analyzer import StressDetector
from farmsight.services.stress.classifier import NdviSample
from farmsight.services.stress.forecast import forecast

router = APIRouter(prefix="/satellite", tags=["Satellite"])


@router.get("/timeseries")
def get_ndvi_timeseries(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: User = Depends(auth.get_current_user),
    imagery=Depends(get_imagery_provider),
):
    end = end_date or date.today()
    start = start_date or end - timedelta(days=90)

    if start > end:
        raise HTTPException(status_code=400, detail="start_date must not be after end_date")

    observations = imagery.timeseries(latitude, longitude, start, end)

    return {
        "coordinates": f"{latitude},{longitude}",
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "count": len(observations),
        "data": [
            {
                "date": o.date.isoformat(),
                "ndvi": o.ndvi,
                "cloud_cover": o.cloud_cover,
                "satellite": o.satellite,
            }
            for o in observations
        ],
    }


@router.post("/ndvi-analysis")
def analyze_ndvi_readings(
    payload: NDVIAnalysisRequest,
    current_user: User = Depends(auth.get_current_user),
    detector: StressDetector = Depends(get_stress_detector),
):
    """Assess and forecast readings posted by the client, without storing them."""
    samples = sorted(
        (NdviSample(date=p.date, ndvi=p.ndvi, cloud_cover=p.cloud_cover) for p in payload.samples),
        key=lambda s: s.date,
        reverse=True,
    )

    metadata = {
        "coordinates": payload.coordinates or "unknown",
        "crop_type": payload.crop_type or "unknown",
        "area": payload.area or "unknown",
    }

    assessment = detector.detect(samples, metadata)

    return {
        "analysis": assessment.to_dict(),
        "forecast": forecast(samples, payload.forecast_days).to_dict(),
        "ndvi_data_points": len(samples),
    }
