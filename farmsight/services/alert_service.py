"""
Farm analysis and alerting.

One analysis pass per farm: load recent NDVI samples, assess stress,
forecast, then either alert (one notification, one Alert row) or suppress.
"""

import time
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import numpy as np
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from farmsight.core.errors import FarmSightError, InsufficientDataError, NotFoundError
from farmsight.core.logging import get_logger
from farmsight.core.timeutils import utcnow
from farmsight.models.alert import ALERT_TYPES, URGENCIES, Alert
from farmsight.models.farm import Farm
from farmsight.models.ndvi_data import NDVIData
from farmsight.models.user import User
from farmsight.services.cooldown import CooldownStore
from farmsight.services.notification_dispatcher import DispatchResult, NotificationDispatcher, urgency_for
from farmsight.services.stress.analyzer import StressAssessment, StressDetector
from farmsight.services.stress.classifier import NdviSample, StressLevel
from farmsight.services.stress.forecast import StressForecast, forecast

logger = get_logger(__name__)

MIN_ANALYSIS_SAMPLES = 3

ALERTED = "alerted"
SUPPRESSED = "suppressed"


@dataclass
class AnalysisOutcome:
    farm_id: int
    state: str
    assessment: StressAssessment
    forecast: StressForecast
    alert: Optional[Alert] = None
    dispatch: Optional[DispatchResult] = None
    reason: Optional[str] = None

    @property
    def alert_sent(self) -> bool:
        return self.dispatch is not None and self.dispatch.success

    def to_dict(self) -> dict:
        return {
            "farm_id": self.farm_id,
            "state": self.state,
            "analysis": self.assessment.to_dict(),
            "forecast": self.forecast.to_dict(),
            "alert_created": self.alert is not None,
            "alert_id": self.alert.id if self.alert is not None else None,
            "alert_sent": self.alert_sent,
            "reason": self.reason,
        }


def to_samples(rows) -> List[NdviSample]:
    return [NdviSample(date=r.date, ndvi=r.ndvi, cloud_cover=r.cloud_cover or 0.0) for r in rows]


class AlertService:
    def __init__(
        self,
        db: Session,
        detector: StressDetector,
        dispatcher: NotificationDispatcher,
        cooldown_window: timedelta = timedelta(hours=24),
        min_confidence: float = 0.7,
        history_limit: int = 30,
        forecast_days: int = 14,
        bulk_delay_seconds: float = 2.0,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.db = db
        self.detector = detector
        self.dispatcher = dispatcher
        self.cooldowns = CooldownStore(db, cooldown_window)
        self.min_confidence = min_confidence
        self.history_limit = history_limit
        self.forecast_days = forecast_days
        self.bulk_delay_seconds = bulk_delay_seconds
        self.rng = rng
        self.clock = clock
        self.sleep = sleep

    # =========================
    # SINGLE FARM
    # =========================
    def load_samples(self, farm_id: int) -> List[NdviSample]:
        rows = (
            self.db.query(NDVIData)
            .filter(NDVIData.farm_id == farm_id)
            .order_by(NDVIData.date.desc())
            .limit(self.history_limit)
            .all()
        )
        return to_samples(rows)

    def _suppression_reason(self, assessment: StressAssessment, cooldown, now) -> Optional[str]:
        if assessment.stress_level.severity <= StressLevel.LOW.severity:
            return "stress_below_alert_threshold"

        if assessment.confidence < self.min_confidence:
            return "confidence_below_threshold"

        if self.cooldowns.is_active(cooldown, assessment.stress_level, now):
            return "recently_alerted"

        return None

    def analyze_farm(self, farm_id: int) -> AnalysisOutcome:
        farm = self.db.get(Farm, farm_id)
        if farm is None or not farm.is_active:
            raise NotFoundError("Farm not found or inactive")

        owner = self.db.get(User, farm.owner_id)
        if owner is None or not owner.is_active:
            raise NotFoundError("Farm owner not found or inactive")

        samples = self.load_samples(farm.id)
        if len(samples) < MIN_ANALYSIS_SAMPLES:
            raise InsufficientDataError(
                f"Insufficient NDVI data for analysis: {len(samples)} samples, "
                f"at least {MIN_ANALYSIS_SAMPLES} required"
            )

        metadata = {
            "coordinates": farm.coordinates,
            "area": farm.area_hectares,
            "crop_type": farm.crop_type,
            "planting_date": farm.planting_date.isoformat(),
        }
        assessment = self.detector.detect(samples, metadata)
        projection = forecast(samples, self.forecast_days, rng=self.rng)

        now = self.clock()
        cooldown = self.cooldowns.current(farm.id)
        reason = self._suppression_reason(assessment, cooldown, now)

        if reason is None and not self.cooldowns.claim(farm.id, assessment.stress_level, now, cooldown):
            reason = "recently_alerted"

        alert = None
        dispatch = None
        if reason is None:
            alert = Alert(
                farm_id=farm.id,
                user_id=owner.id,
                stress_level=assessment.stress_level.value,
                confidence=assessment.confidence,
                ndvi_value=assessment.current_ndvi,
                recommendations=list(assessment.recommendations),
                risk_factors=list(assessment.risk_factors),
                ai_analysis=assessment.analysis,
                status="pending",
                urgency=urgency_for(assessment.stress_level.value),
                created_at=now,
            )
            self.db.add(alert)

            # The row must be writable before anyone is messaged
            try:
                self.db.flush()
            except SQLAlchemyError:
                self.db.rollback()
                raise

            dispatch = self.dispatcher.dispatch(owner, farm, assessment)
            alert.alert_type = dispatch.alert_type
            alert.status = dispatch.status
            alert.sent_at = dispatch.sent_at
            alert.message_id = dispatch.message_id
            alert.phone_number = dispatch.phone_number
            alert.message = dispatch.message
            alert.urgency = dispatch.urgency

        farm.last_stress_level = assessment.stress_level.value
        farm.last_confidence = assessment.confidence
        farm.last_ndvi = assessment.current_ndvi
        farm.last_analyzed_at = now

        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            if dispatch is not None and dispatch.message_id:
                logger.error(
                    "Alert for farm %s was delivered as %s but could not be stored",
                    farm.id,
                    dispatch.message_id,
                )
            raise

        if alert is not None:
            self.db.refresh(alert)
            logger.info("Alert %s stored for farm %s (%s)", alert.id, farm.id, alert.stress_level)
        else:
            logger.info("Alert suppressed for farm %s: %s", farm.id, reason)

        return AnalysisOutcome(
            farm_id=farm.id,
            state=ALERTED if alert is not None else SUPPRESSED,
            assessment=assessment,
            forecast=projection,
            alert=alert,
            dispatch=dispatch,
            reason=reason,
        )

    # =========================
    # ALL FARMS
    # =========================
    def analyze_all_farms(self) -> dict:
        """
        Analyze every active farm one at a time.

        A failing farm is recorded and skipped. The fixed delay between farms
        keeps outbound calls under the providers' rate limits.
        """
        farm_ids = [
            row.id
            for row in self.db.query(Farm.id).filter(Farm.is_active.is_(True)).order_by(Farm.id).all()
        ]
        logger.info("Starting analysis of %d farms", len(farm_ids))

        results = []
        for index, farm_id in enumerate(farm_ids):
            if index > 0 and self.bulk_delay_seconds > 0:
                self.sleep(self.bulk_delay_seconds)

            try:
                outcome = self.analyze_farm(farm_id)
            except FarmSightError as exc:
                logger.warning("Analysis failed for farm %s: %s", farm_id, exc.detail)
                results.append({"farm_id": farm_id, "success": False, "error": exc.detail})
                continue
            except Exception as exc:
                # Drop anything half-flushed so the next farm's commit can't persist it
                self.db.rollback()
                logger.exception("Unexpected error analyzing farm %s", farm_id)
                results.append({"farm_id": farm_id, "success": False, "error": str(exc)})
                continue

            results.append(
                {
                    "farm_id": farm_id,
                    "success": True,
                    "state": outcome.state,
                    "stress_level": outcome.assessment.stress_level.value,
                    "alert_sent": outcome.alert_sent,
                    "reason": outcome.reason,
                }
            )

        levels = Counter(r["stress_level"] for r in results if r["success"])
        summary = {
            "total_farms": len(farm_ids),
            "analyzed": sum(1 for r in results if r["success"]),
            "failed": sum(1 for r in results if not r["success"]),
            "alerts_created": sum(1 for r in results if r.get("state") == ALERTED),
            "alerts_sent": sum(1 for r in results if r.get("alert_sent")),
            "healthy": levels.get(StressLevel.HEALTHY.value, 0),
            "low": levels.get(StressLevel.LOW.value, 0),
            "by_stress_level": {level.value: levels.get(level.value, 0) for level in StressLevel},
            "timestamp": self.clock().isoformat(),
            "results": results,
        }

        logger.info(
            "Farm analysis completed: %d analyzed, %d failed, %d alerts",
            summary["analyzed"],
            summary["failed"],
            summary["alerts_created"],
        )
        return summary

    # =========================
    # HISTORY / STATISTICS
    # =========================
    def alert_history(self, farm_id: int, days: int = 30) -> List[Alert]:
        since = self.clock() - timedelta(days=days)
        return (
            self.db.query(Alert)
            .filter(Alert.farm_id == farm_id, Alert.created_at >= since)
            .order_by(Alert.created_at.desc())
            .all()
        )

    def alert_statistics(self, days: int = 30, user_id: Optional[int] = None) -> dict:
        since = self.clock() - timedelta(days=days)

        query = self.db.query(Alert).filter(Alert.created_at >= since)
        if user_id is not None:
            query = query.filter(Alert.user_id == user_id)
        alerts = query.all()

        stats = {
            "total_alerts": len(alerts),
            "by_stress_level": {},
            "by_day": {},
            "average_confidence": 0.0,
            "alert_types": {t: 0 for t in ALERT_TYPES},
            "urgency": {u: 0 for u in URGENCIES},
            "acknowledged": 0,
            "unacknowledged": 0,
        }

        for alert in alerts:
            stats["by_stress_level"][alert.stress_level] = stats["by_stress_level"].get(alert.stress_level, 0) + 1

            day = alert.created_at.date().isoformat()
            stats["by_day"][day] = stats["by_day"].get(day, 0) + 1

            stats["alert_types"][alert.alert_type] = stats["alert_types"].get(alert.alert_type, 0) + 1
            stats["urgency"][alert.urgency] = stats["urgency"].get(alert.urgency, 0) + 1

            if alert.acknowledged:
                stats["acknowledged"] += 1
            else:
                stats["unacknowledged"] += 1

        if alerts:
            stats["average_confidence"] = sum(a.confidence for a in alerts) / len(alerts)

        return stats

    def acknowledge(self, alert_id: int, user_id: int, action_taken: Optional[str] = None) -> Alert:
        alert = (
            self.db.query(Alert)
            .filter(Alert.id == alert_id, Alert.user_id == user_id)
            .first()
        )
        if alert is None:
            raise NotFoundError("Alert not found")

        alert.acknowledged = True
        alert.acknowledged_at = self.clock()
        alert.action_taken = action_taken

        self.db.commit()
        self.db.refresh(alert)
        return alert
