from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterator, Optional, Sequence

import numpy as np

from farmsight.services.stress.classifier import NdviSample, StressLevel, classify_ndvi
from farmsight.services.stress.trend import ndvi_trend

MIN_FORECAST_SAMPLES = 3
NOISE_AMPLITUDE = 0.025

METHOD_LINEAR = "linear_regression"
METHOD_INSUFFICIENT = "insufficient_data"


@dataclass(frozen=True)
class ForecastPoint:
    date: date
    predicted_ndvi: float
    stress_level: StressLevel
    confidence: float

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "predicted_ndvi": round(self.predicted_ndvi, 4),
            "stress_level": self.stress_level.value,
            "confidence": round(self.confidence, 4),
        }


@dataclass
class StressForecast:
    method: str
    horizon_days: int
    points: Iterator[ForecastPoint] = field(default_factory=lambda: iter(()))
    trend: Optional[float] = None
    current_ndvi: Optional[float] = None

    def to_dict(self) -> dict:
        """Materialise the points. The iterator is consumed."""
        return {
            "method": self.method,
            "horizon_days": self.horizon_days,
            "trend": self.trend,
            "current_ndvi": self.current_ndvi,
            "forecast": [p.to_dict() for p in self.points],
        }


def forecast_confidence(day: int, horizon_days: int) -> float:
    return max(0.5, 0.9 - (day / horizon_days) * 0.4)


def _project(
    last_ndvi: float,
    slope: float,
    horizon_days: int,
    rng: np.random.Generator,
    start: date,
) -> Iterator[ForecastPoint]:
    for day in range(1, horizon_days + 1):
        noise = rng.uniform(-NOISE_AMPLITUDE, NOISE_AMPLITUDE)
        predicted = float(np.clip(last_ndvi + slope * day + noise, 0.0, 1.0))

        yield ForecastPoint(
            date=start + timedelta(days=day),
            predicted_ndvi=predicted,
            stress_level=classify_ndvi(predicted),
            confidence=forecast_confidence(day, horizon_days),
        )


def forecast(
    samples: Sequence[NdviSample],
    horizon_days: int = 14,
    rng: Optional[np.random.Generator] = None,
    start: Optional[date] = None,
) -> StressForecast:
    """
    Project NDVI ``horizon_days`` ahead along the recent linear trend.

    ``samples`` are newest first. Points are generated lazily, one per day
    after ``start`` (today by default). Pass a seeded ``rng`` for
    reproducible output.
    """
    if len(samples) < MIN_FORECAST_SAMPLES:
        return StressForecast(method=METHOD_INSUFFICIENT, horizon_days=horizon_days)

    slope = ndvi_trend(samples)
    last_ndvi = samples[0].ndvi

    return StressForecast(
        method=METHOD_LINEAR,
        horizon_days=horizon_days,
        points=_project(
            last_ndvi,
            slope,
            horizon_days,
            rng if rng is not None else np.random.default_rng(),
            start or date.today(),
        ),
        trend=slope,
        current_ndvi=last_ndvi,
    )
