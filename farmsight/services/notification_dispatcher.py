import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from farmsight.core.errors import ExternalServiceError
from farmsight.core.logging import get_logger
from farmsight.core.timeutils import utcnow
from farmsight.services.integrations.notifications import NotificationChannel
from farmsight.services.stress.analyzer import StressAssessment

logger = get_logger(__name__)

URGENCY_BY_LEVEL = {
    "severe": "critical",
    "high": "high",
    "moderate": "medium",
    "low": "low",
    "healthy": "low",
}

PREFIX_BY_LEVEL = {
    "severe": "[URGENT]",
    "high": "[IMPORTANT]",
}


def urgency_for(stress_level: str) -> str:
    return URGENCY_BY_LEVEL.get(stress_level, "medium")


def validate_phone_number(phone_number: Optional[str]) -> Optional[str]:
    """Digits only, 10 to 15 of them, else None."""
    if not phone_number:
        return None

    digits = re.sub(r"\D", "", phone_number)
    if 10 <= len(digits) <= 15:
        return digits
    return None


def format_phone_number(phone_number: Optional[str], country_code: str = "+62") -> Optional[str]:
    digits = validate_phone_number(phone_number)
    if not digits:
        return None

    if phone_number.strip().startswith("+"):
        return f"+{digits}"

    # Local format drops the trunk prefix
    if digits.startswith("0"):
        return f"{country_code}{digits[1:]}"

    return f"{country_code}{digits}"


def build_alert_message(farmer_name: str, farm_name: str, assessment: StressAssessment) -> str:
    level = assessment.stress_level.value
    prefix = PREFIX_BY_LEVEL.get(level, "[INFO]")

    lines = [
        f"{prefix} FarmSight Alert",
        "",
        f"Hi {farmer_name},",
        f'Your farm "{farm_name}" shows {level} crop stress.',
        "",
        f"Current NDVI: {assessment.current_ndvi:.3f}",
        f"Confidence: {assessment.confidence * 100:.0f}%",
        "",
        "Recommendations:",
    ]
    lines.extend(f"- {rec}" for rec in assessment.recommendations)
    lines.append("")
    lines.append("Check your FarmSight app for detailed analysis.")

    return "\n".join(lines)


@dataclass
class DispatchResult:
    alert_type: str
    status: str
    message: str
    urgency: str
    phone_number: Optional[str] = None
    message_id: Optional[str] = None
    sent_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status in ("sent", "delivered")


class NotificationDispatcher:
    """
    Formats an alert and pushes it through the configured channel.

    Owners without a usable phone number get an in-app alert only. A channel
    failure is logged and downgraded to an in-app alert marked ``failed``.
    """

    def __init__(self, channel: NotificationChannel, country_code: str = "+62"):
        self.channel = channel
        self.country_code = country_code

    def dispatch(self, owner, farm, assessment: StressAssessment) -> DispatchResult:
        message = build_alert_message(owner.full_name or owner.email, farm.name, assessment)
        urgency = urgency_for(assessment.stress_level.value)
        phone_number = format_phone_number(owner.phone_number, self.country_code)

        if not phone_number:
            logger.warning("No valid phone number for user %s, in-app alert only", owner.id)
            return DispatchResult(
                alert_type="in_app",
                status="delivered",
                message=message,
                urgency=urgency,
            )

        try:
            receipt = self.channel.send(phone_number, message, urgency)
        except ExternalServiceError as exc:
            logger.error("Failed to send alert for farm %s: %s", farm.id, exc.detail)
            return DispatchResult(
                alert_type="in_app",
                status="failed",
                message=message,
                urgency=urgency,
                phone_number=phone_number,
                error=exc.detail,
            )

        if not receipt.success:
            logger.error("Channel %s rejected alert for farm %s: %s", self.channel.name, farm.id, receipt.error)
            return DispatchResult(
                alert_type="in_app",
                status="failed",
                message=message,
                urgency=urgency,
                phone_number=phone_number,
                error=receipt.error,
            )

        logger.info("Alert sent to user %s for farm %s", owner.id, farm.name)
        return DispatchResult(
            alert_type="sms",
            status="sent",
            message=message,
            urgency=urgency,
            phone_number=phone_number,
            message_id=receipt.message_id,
            sent_at=utcnow(),
        )
