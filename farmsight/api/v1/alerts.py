from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from farmsight.api.deps import get_alert_service
from farmsight.api.v1 import auth
from farmsight.db.session import get_db
from farmsight.models.alert import Alert
from farmsight.models.farm import Farm
from farmsight.models.user import User
from farmsight.schemas.alert import AcknowledgeRequest, AlertOut
from farmsight.services.alert_service import AlertService

router = APIRouter(prefix="/alerts", tags=["Alerts"])


def check_farm_access(farm_id: int, db: Session, user: User):
    farm = db.query(Farm).filter(Farm.id == farm_id).first()

    if not farm or (farm.owner_id != user.id and user.role != "admin"):
        raise HTTPException(status_code=404, detail="Farm not found")

    return farm


# =========================
# ANALYZE
# =========================
@router.post("/analyze/{farm_id}")
def analyze_farm(
    farm_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
    service: AlertService = Depends(get_alert_service),
):
    check_farm_access(farm_id, db, current_user)

    outcome = service.analyze_farm(farm_id)

    return {"success": True, **outcome.to_dict()}


@router.post("/analyze-all")
def analyze_all_farms(
    admin: User = Depends(auth.require_admin),
    service: AlertService = Depends(get_alert_service),
):
    return {"success": True, **service.analyze_all_farms()}


# =========================
# HISTORY
# =========================
@router.get("/farm/{farm_id}")
def get_farm_alert_history(
    farm_id: int,
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
    service: AlertService = Depends(get_alert_service),
):
    check_farm_access(farm_id, db, current_user)

    alerts = service.alert_history(farm_id, days)

    return {
        "farm_id": farm_id,
        "total_alerts": len(alerts),
        "alerts": [AlertOut.model_validate(a) for a in alerts],
    }


@router.get("/my-alerts")
def get_my_alerts(
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    alerts = (
        db.query(Alert)
        .filter(Alert.user_id == current_user.id)
        .order_by(Alert.created_at.desc())
        .limit(limit)
        .all()
    )

    return {
        "total": len(alerts),
        "alerts": [AlertOut.model_validate(a) for a in alerts],
    }


# =========================
# STATISTICS
# =========================
@router.get("/statistics")
def get_alert_statistics(
    days: int = Query(30, ge=1, le=365),
    current_user: User = Depends(auth.get_current_user),
    service: AlertService = Depends(get_alert_service),
):
    return {"statistics": service.alert_statistics(days, user_id=current_user.id)}


@router.get("/admin/statistics")
def get_system_alert_statistics(
    days: int = Query(30, ge=1, le=365),
    admin: User = Depends(auth.require_admin),
    service: AlertService = Depends(get_alert_service),
):
    return {"statistics": service.alert_statistics(days)}


# =========================
# ACKNOWLEDGE
# =========================
@router.put("/{alert_id}/acknowledge", response_model=AlertOut)
def acknowledge_alert(
    alert_id: int,
    payload: AcknowledgeRequest,
    current_user: User = Depends(auth.get_current_user),
    service: AlertService = Depends(get_alert_service),
):
    return service.acknowledge(alert_id, current_user.id, payload.action_taken)
