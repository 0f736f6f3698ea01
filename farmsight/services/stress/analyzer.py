"""
Stress analyzers.

``RuleBasedStressAnalyzer`` wraps the threshold classifier. ``LlmStressAnalyzer``
asks a chat-completions endpoint for an assessment. ``StressDetector`` tries
the LLM first when one is configured and falls back to the rules on any
external failure.
"""

import json
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol, Sequence

import requests

from farmsight.core.errors import ExternalServiceError
from farmsight.core.logging import get_logger
from farmsight.core.timeutils import utcnow
from farmsight.services.stress.classifier import NdviSample, StressLevel, classify
from farmsight.services.stress.trend import ndvi_trend

logger = get_logger(__name__)


@dataclass
class StressAssessment:
    stress_level: StressLevel
    confidence: float
    recommendations: List[str]
    current_ndvi: float
    average_ndvi: float
    trend: float
    model: str
    analysis: Optional[str] = None
    risk_factors: List[str] = field(default_factory=list)
    detected_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "stress_level": self.stress_level.value,
            "confidence": self.confidence,
            "recommendations": self.recommendations,
            "risk_factors": self.risk_factors,
            "analysis": self.analysis,
            "model": self.model,
            "detected_at": self.detected_at.isoformat(),
            "ndvi_analysis": {
                "current": self.current_ndvi,
                "average": self.average_ndvi,
                "trend": self.trend,
            },
        }


class StressAnalyzer(Protocol):
    def analyze(self, samples: Sequence[NdviSample], metadata: dict) -> StressAssessment:
        ...


def _average(samples: Sequence[NdviSample]) -> float:
    return sum(s.ndvi for s in samples) / len(samples)


class RuleBasedStressAnalyzer:
    name = "rule-based"

    def analyze(self, samples: Sequence[NdviSample], metadata: dict) -> StressAssessment:
        result = classify(samples)

        return StressAssessment(
            stress_level=result.stress_level,
            confidence=result.confidence,
            recommendations=result.recommendations,
            current_ndvi=samples[0].ndvi,
            average_ndvi=_average(samples),
            trend=result.trend,
            model=self.name,
            analysis=(
                f"NDVI {samples[0].ndvi:.3f} classified as {result.base_level.value}"
                + (" and escalated on a declining trend" if result.escalated else "")
            ),
        )


# =========================
# LLM ANALYZER
# =========================

SYSTEM_PROMPT = (
    "You are an expert agricultural scientist specializing in crop health analysis "
    "using satellite data and NDVI metrics. Provide practical, science-based recommendations."
)

PROMPT_TEMPLATE = """Analyze the following crop health data.

FARM DETAILS:
- Location: {location}
- Crop Type: {crop_type}
- Farm Area: {area} hectares
- Planting Date: {planting_date}

NDVI DATA:
- Current NDVI: {current:.3f}
- Average NDVI: {average:.3f}
- NDVI Trend: {trend_label} ({trend:.3f})
- Data Points: {count} measurements

Respond in JSON:
{{
  "stressLevel": "healthy|low|moderate|high|severe",
  "confidence": 0.0-1.0,
  "recommendations": ["..."],
  "analysis": "brief explanation",
  "riskFactors": ["..."]
}}"""

# Checked in order; first keyword hit wins
TEXT_KEYWORDS = [
    (("severe", "critical"), StressLevel.SEVERE),
    (("high", "serious"), StressLevel.HIGH),
    (("low", "mild"), StressLevel.LOW),
    (("healthy", "good"), StressLevel.HEALTHY),
]


def parse_text_response(text: str) -> dict:
    """Best-effort reading of a non-JSON LLM reply."""
    lowered = text.lower()

    level = StressLevel.MODERATE
    for keywords, candidate in TEXT_KEYWORDS:
        if any(k in lowered for k in keywords):
            level = candidate
            break

    return {
        "stressLevel": level.value,
        "confidence": 0.7,
        "recommendations": ["Monitor crop conditions", "Follow standard agricultural practices"],
        "analysis": "Crop health assessment based on satellite data analysis",
        "riskFactors": [],
    }


def _extract_content(payload) -> str:
    """
    Message text from a chat-completions style reply.

    Accepts ``choices[0].message.content``, ``result.content`` or a top-level
    ``content``. Anything else raises ``ExternalServiceError``.
    """
    if not isinstance(payload, dict):
        raise ExternalServiceError("llm", f"unexpected response {type(payload).__name__}")

    choices = payload.get("choices")
    if choices:
        first = choices[0] if isinstance(choices, list) else None
        message = first.get("message") if isinstance(first, dict) else None
        if not isinstance(message, dict):
            raise ExternalServiceError("llm", "malformed choices in response")
        content = message.get("content")
    elif isinstance(payload.get("result"), dict):
        content = payload["result"].get("content")
    else:
        content = payload.get("content")

    if not isinstance(content, str) or not content.strip():
        raise ExternalServiceError("llm", "response carried no content")
    return content


def _string_list(value, default: List[str]) -> List[str]:
    if not isinstance(value, list):
        return default
    items = [str(v) for v in value if v]
    return items or default


class LlmStressAnalyzer:
    name = "llm"

    def __init__(self, endpoint: str, api_key: str, model: str, timeout: float = 30.0):
        self.endpoint = endpoint
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def build_prompt(self, samples: Sequence[NdviSample], metadata: dict) -> str:
        trend = ndvi_trend(samples)
        if trend > 0:
            trend_label = "Improving"
        elif trend < 0:
            trend_label = "Declining"
        else:
            trend_label = "Stable"

        return PROMPT_TEMPLATE.format(
            location=metadata.get("coordinates", "unknown"),
            crop_type=metadata.get("crop_type", "unknown"),
            area=metadata.get("area", "unknown"),
            planting_date=metadata.get("planting_date", "unknown"),
            current=samples[0].ndvi,
            average=_average(samples),
            trend_label=trend_label,
            trend=trend,
            count=len(samples),
        )

    def analyze(self, samples: Sequence[NdviSample], metadata: dict) -> StressAssessment:
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": self.build_prompt(samples, metadata)},
            ],
            "max_tokens": 500,
            "temperature": 0.3,
        }

        try:
            response = requests.post(
                self.endpoint,
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise ExternalServiceError("llm", str(exc)) from exc

        content = _extract_content(payload)

        try:
            parsed = json.loads(content)
        except ValueError:
            parsed = None
        if not isinstance(parsed, dict):
            parsed = parse_text_response(content)

        try:
            level = StressLevel(parsed.get("stressLevel"))
            confidence = float(parsed.get("confidence") or 0.7)
        except (TypeError, ValueError):
            raise ExternalServiceError("llm", f"unusable assessment {parsed!r}")

        # json.loads accepts NaN and Infinity
        if not math.isfinite(confidence):
            raise ExternalServiceError("llm", f"non-finite confidence {confidence!r}")

        analysis = parsed.get("analysis")

        return StressAssessment(
            stress_level=level,
            confidence=min(max(confidence, 0.0), 1.0),
            recommendations=_string_list(parsed.get("recommendations"), ["Monitor crop conditions"]),
            current_ndvi=samples[0].ndvi,
            average_ndvi=_average(samples),
            trend=ndvi_trend(samples),
            model=self.name,
            analysis=str(analysis) if analysis is not None else None,
            risk_factors=_string_list(parsed.get("riskFactors"), []),
        )


class StressDetector:
    def __init__(
        self,
        primary: Optional[StressAnalyzer] = None,
        fallback: Optional[RuleBasedStressAnalyzer] = None,
    ):
        self.primary = primary
        self.fallback = fallback or RuleBasedStressAnalyzer()

    def detect(self, samples: Sequence[NdviSample], metadata: dict) -> StressAssessment:
        if self.primary is not None:
            try:
                return self.primary.analyze(samples, metadata)
            except ExternalServiceError as exc:
                logger.warning("Stress analyzer failed, using rules: %s", exc.detail)

        return self.fallback.analyze(samples, metadata)
