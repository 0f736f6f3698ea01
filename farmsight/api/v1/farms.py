from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from farmsight.api.deps import get_imagery_provider
from farmsight.api.v1 import auth
from farmsight.core.config import settings
from farmsight.core.errors import InsufficientDataError, NotFoundError, ValidationError
from farmsight.core.logging import get_logger
from farmsight.db.session import get_db
from farmsight.models.farm import Farm
from farmsight.models.ndvi_data import NDVIData
from farmsight.models.user import User
from farmsight.schemas.farm import FarmCreate, FarmOut, FarmUpdate
from farmsight.schemas.ndvi import NDVISampleCreate, NDVISampleOut
from farmsight.services.alert_service import MIN_ANALYSIS_SAMPLES, to_samples
from farmsight.services.stress.classifier import classify, classify_ndvi
from farmsight.services.stress.forecast import forecast

router = APIRouter(tags=["Farms"])

logger = get_logger(__name__)


def get_owned_farm(farm_id: int, db: Session, user: User) -> Farm:
    farm = db.query(Farm).filter(
        Farm.id == farm_id,
        Farm.owner_id == user.id,
        Farm.is_active.is_(True),
    ).first()

    if not farm:
        raise HTTPException(status_code=404, detail="Farm not found")

    return farm


def recent_samples(db: Session, farm_id: int, limit: int):
    rows = (
        db.query(NDVIData)
        .filter(NDVIData.farm_id == farm_id)
        .order_by(NDVIData.date.desc())
        .limit(limit)
        .all()
    )
    return to_samples(rows)


def store_sample(db: Session, farm: Farm, sample_date: date, ndvi: float, cloud_cover: float, satellite: str):
    existing = db.query(NDVIData).filter(
        NDVIData.farm_id == farm.id,
        NDVIData.date == sample_date,
    ).first()

    if existing:
        raise ValidationError(f"NDVI sample for {sample_date.isoformat()} already recorded")

    sample = NDVIData(
        farm_id=farm.id,
        date=sample_date,
        ndvi=ndvi,
        cloud_cover=cloud_cover,
        satellite=satellite,
        stress_level=classify_ndvi(ndvi).value,
    )

    db.add(sample)
    db.commit()
    db.refresh(sample)

    return sample


# =========================
# REGISTER FARM (POST)
# =========================
@router.post("/farms", status_code=201, response_model=FarmOut)
def create_farm(
    payload: FarmCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user)
):
    farm = Farm(
        owner_id=current_user.id,
        name=payload.name.strip(),
        description=payload.description,
        latitude=payload.coordinates.latitude,
        longitude=payload.coordinates.longitude,
        area_hectares=payload.area_hectares,
        crop_type=payload.crop_type,
        planting_date=payload.planting_date,
        expected_harvest_date=payload.expected_harvest_date,
    )

    db.add(farm)
    db.commit()
    db.refresh(farm)

    logger.info("Farm %s registered by user %s", farm.id, current_user.id)
    return farm


# =========================
# LIST FARMS (GET)
# =========================
@router.get("/farms")
def list_farms(
    skip: int = 0,
    limit: int = 10,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user)
):
    # Prevent abuse
    limit = min(limit, 100)

    query = db.query(Farm).filter(
        Farm.owner_id == current_user.id,
        Farm.is_active.is_(True),
    )

    total = query.count()
    farms = query.order_by(Farm.created_at.desc()).offset(skip).limit(limit).all()

    return {
        "total": total,
        "skip": skip,
        "limit": limit,
        "data": [FarmOut.model_validate(f) for f in farms],
    }


@router.get("/farms/{farm_id}", response_model=FarmOut)
def get_farm(
    farm_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user)
):
    return get_owned_farm(farm_id, db, current_user)


# =========================
# UPDATE FARM
# =========================
@router.patch("/farms/{farm_id}", response_model=FarmOut)
def update_farm(
    farm_id: int,
    payload: FarmUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user)
):
    farm = get_owned_farm(farm_id, db, current_user)

    updates = payload.model_dump(exclude_unset=True)
    coordinates = updates.pop("coordinates", None)
    if coordinates:
        farm.latitude = coordinates["latitude"]
        farm.longitude = coordinates["longitude"]

    for key, value in updates.items():
        if value is None and key != "description" and key != "expected_harvest_date":
            raise HTTPException(status_code=400, detail=f"{key} cannot be null")
        setattr(farm, key, value)

    if farm.expected_harvest_date and farm.expected_harvest_date < farm.planting_date:
        raise HTTPException(status_code=400, detail="expected_harvest_date must not precede planting_date")

    db.commit()
    db.refresh(farm)

    return farm


# =========================
# DEACTIVATE FARM
# =========================
@router.delete("/farms/{farm_id}")
def delete_farm(
    farm_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user)
):
    farm = get_owned_farm(farm_id, db, current_user)

    farm.is_active = False
    db.commit()

    return {
        "message": "Farm deactivated",
        "id": farm_id,
    }


# =========================
# NDVI HISTORY
# =========================
@router.get("/farms/{farm_id}/ndvi")
def get_farm_ndvi(
    farm_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user)
):
    farm = get_owned_farm(farm_id, db, current_user)

    query = db.query(NDVIData).filter(NDVIData.farm_id == farm.id)
    if start_date:
        query = query.filter(NDVIData.date >= start_date)
    if end_date:
        query = query.filter(NDVIData.date <= end_date)

    rows = query.order_by(NDVIData.date.desc()).limit(limit).all()

    return {
        "farm": farm.name,
        "coordinates": farm.coordinates,
        "count": len(rows),
        "ndvi_data": [NDVISampleOut.model_validate(r) for r in rows],
    }


@router.post("/farms/{farm_id}/ndvi", status_code=201, response_model=NDVISampleOut)
def record_farm_ndvi(
    farm_id: int,
    payload: NDVISampleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user)
):
    farm = get_owned_farm(farm_id, db, current_user)

    return store_sample(db, farm, payload.date, payload.ndvi, payload.cloud_cover, payload.satellite)


@router.post("/farms/{farm_id}/ndvi/fetch", status_code=201, response_model=NDVISampleOut)
def fetch_farm_ndvi(
    farm_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
    imagery=Depends(get_imagery_provider),
):
    farm = get_owned_farm(farm_id, db, current_user)

    observation = imagery.latest_ndvi(farm.latitude, farm.longitude)
    if observation is None:
        raise NotFoundError("No satellite image found")

    return store_sample(
        db,
        farm,
        observation.date,
        observation.ndvi,
        observation.cloud_cover,
        observation.satellite,
    )


# =========================
# STRESS LEVEL / FORECAST
# =========================
@router.get("/farms/{farm_id}/stress-level")
def get_farm_stress_level(
    farm_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user)
):
    farm = get_owned_farm(farm_id, db, current_user)

    samples = recent_samples(db, farm.id, settings.NDVI_HISTORY_LIMIT)
    if not samples:
        raise NotFoundError("No NDVI data available for this farm")

    result = classify(samples)

    return {
        "farm_id": farm.id,
        "farm_name": farm.name,
        "crop_type": farm.crop_type,
        "latest_ndvi": samples[0].ndvi,
        "stress_level": result.stress_level.value,
        "confidence": result.confidence,
        "trend": result.trend,
        "recommendations": result.recommendations,
        "last_updated": samples[0].date.isoformat(),
    }


@router.get("/farms/{farm_id}/forecast")
def get_farm_forecast(
    farm_id: int,
    days: int = Query(14, ge=1, le=90),
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user)
):
    farm = get_owned_farm(farm_id, db, current_user)

    samples = recent_samples(db, farm.id, settings.NDVI_HISTORY_LIMIT)
    if len(samples) < MIN_ANALYSIS_SAMPLES:
        raise InsufficientDataError(
            f"Insufficient NDVI data for forecasting (minimum {MIN_ANALYSIS_SAMPLES} data points required)"
        )

    current = classify(samples)

    return {
        "farm_id": farm.id,
        "current_status": {
            "ndvi": samples[0].ndvi,
            "stress_level": current.stress_level.value,
            "last_updated": samples[0].date.isoformat(),
        },
        **forecast(samples, days).to_dict(),
    }
