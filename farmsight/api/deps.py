"""
Per-request construction of services and their external capabilities.

Tests swap any of these through ``app.dependency_overrides``.
"""

from datetime import timedelta

from fastapi import Depends
from sqlalchemy.orm import Session

from farmsight.core.config import settings
from farmsight.db.session import get_db
from farmsight.services.alert_service import AlertService
from farmsight.services.integrations.imagery import StacImageryProvider, SyntheticImageryProvider
from farmsight.services.integrations.notifications import LoggingChannel, SmsChannel
from farmsight.services.integrations.videos import StaticVideoCatalog
from farmsight.services.notification_dispatcher import NotificationDispatcher
from farmsight.services.stress.analyzer import LlmStressAnalyzer, StressDetector


def get_stress_detector() -> StressDetector:
    primary = None
    if settings.LLM_ENDPOINT and settings.LLM_API_KEY:
        primary = LlmStressAnalyzer(
            endpoint=settings.LLM_ENDPOINT,
            api_key=settings.LLM_API_KEY,
            model=settings.LLM_MODEL,
            timeout=settings.EXTERNAL_TIMEOUT_SECONDS,
        )
    return StressDetector(primary=primary)


def get_notification_channel():
    if settings.NOTIFICATION_BACKEND == "sms":
        return SmsChannel(
            endpoint=settings.SMS_ENDPOINT,
            app_key=settings.SMS_APP_KEY,
            app_secret=settings.SMS_APP_SECRET,
            sender=settings.SMS_SENDER,
            timeout=settings.EXTERNAL_TIMEOUT_SECONDS,
        )
    return LoggingChannel()


def get_imagery_provider():
    if settings.IMAGERY_BACKEND == "stac":
        return StacImageryProvider(settings.STAC_URL, timeout=settings.EXTERNAL_TIMEOUT_SECONDS)
    return SyntheticImageryProvider()


def get_video_catalog():
    return StaticVideoCatalog()


def get_alert_service(
    db: Session = Depends(get_db),
    detector: StressDetector = Depends(get_stress_detector),
    channel=Depends(get_notification_channel),
) -> AlertService:
    return AlertService(
        db=db,
        detector=detector,
        dispatcher=NotificationDispatcher(channel, country_code=settings.SMS_COUNTRY_CODE),
        cooldown_window=timedelta(hours=settings.ALERT_COOLDOWN_HOURS),
        min_confidence=settings.ALERT_MIN_CONFIDENCE,
        history_limit=settings.NDVI_HISTORY_LIMIT,
        forecast_days=settings.FORECAST_DAYS,
        bulk_delay_seconds=settings.BULK_ANALYSIS_DELAY_SECONDS,
    )
