"""
Rule-based crop stress classification.

The most recent NDVI reading picks a base level from a fixed threshold table.
A declining trend over the latest readings escalates that level by one step.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Optional, Sequence

from farmsight.services.stress.trend import ndvi_trend


class StressLevel(str, Enum):
    HEALTHY = "healthy"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    SEVERE = "severe"

    @property
    def severity(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def escalate(self) -> "StressLevel":
        return _SEVERITY_ORDER[min(self.severity + 1, len(_SEVERITY_ORDER) - 1)]


_SEVERITY_ORDER = [
    StressLevel.HEALTHY,
    StressLevel.LOW,
    StressLevel.MODERATE,
    StressLevel.HIGH,
    StressLevel.SEVERE,
]


@dataclass(frozen=True)
class NdviSample:
    date: date
    ndvi: float
    cloud_cover: float = 0.0


@dataclass
class Classification:
    stress_level: StressLevel
    confidence: float
    base_level: StressLevel
    trend: float
    escalated: bool = False
    recommendations: List[str] = field(default_factory=list)


# Upper bounds (exclusive), checked in order
NDVI_THRESHOLDS = [
    (0.2, StressLevel.SEVERE),
    (0.3, StressLevel.HIGH),
    (0.4, StressLevel.MODERATE),
    (0.5, StressLevel.LOW),
]

DECLINING_TREND_SLOPE = -0.05

DEFAULT_CONFIDENCE = 0.8
BRANCH_CONFIDENCE = {
    StressLevel.SEVERE: 0.9,
    StressLevel.HIGH: 0.8,
    StressLevel.MODERATE: 0.7,
}

RULE_RECOMMENDATIONS = {
    StressLevel.SEVERE: ["Immediate irrigation required", "Check for pest infestation"],
    StressLevel.HIGH: ["Increase irrigation frequency", "Apply balanced fertilizer"],
    StressLevel.MODERATE: ["Monitor closely", "Consider light irrigation"],
    StressLevel.LOW: ["Continue normal irrigation", "Monitor weekly"],
    StressLevel.HEALTHY: ["Maintain current practices", "Continue regular monitoring"],
}

DECLINING_TREND_NOTE = "Declining health trend detected"


def classify_ndvi(ndvi: float) -> StressLevel:
    for upper, level in NDVI_THRESHOLDS:
        if ndvi < upper:
            return level
    return StressLevel.HEALTHY


def classify(samples: Sequence[NdviSample], trend_slope: Optional[float] = None) -> Classification:
    """
    Classify stress from samples ordered newest first.

    When ``trend_slope`` is not given it is estimated from the samples.
    Fewer than two samples always means a flat trend.
    """
    if len(samples) < 2:
        trend = 0.0
    elif trend_slope is None:
        trend = ndvi_trend(samples)
    else:
        trend = trend_slope

    base = classify_ndvi(samples[0].ndvi)
    confidence = BRANCH_CONFIDENCE.get(base, DEFAULT_CONFIDENCE)
    recommendations = list(RULE_RECOMMENDATIONS[base])

    level = base
    escalated = False
    if trend < DECLINING_TREND_SLOPE:
        level = base.escalate()
        escalated = True
        recommendations.append(DECLINING_TREND_NOTE)

    return Classification(
        stress_level=level,
        confidence=confidence,
        base_level=base,
        trend=trend,
        escalated=escalated,
        recommendations=recommendations,
    )
