from typing import Sequence

TREND_WINDOW = 5


def linear_regression_slope(values: Sequence[float]) -> float:
    """
    Ordinary least-squares slope of ``values`` against their index.

    Returns NaN when the denominator is zero (a single point).
    """
    n = len(values)
    xs = range(n)

    sum_x = sum(xs)
    sum_y = sum(values)
    sum_xy = sum(x * y for x, y in zip(xs, values))
    sum_x2 = sum(x * x for x in xs)

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return float("nan")

    return (n * sum_xy - sum_x * sum_y) / denominator


def ndvi_trend(samples, window: int = TREND_WINDOW) -> float:
    """
    Per-sample NDVI slope over the latest ``window`` readings.

    ``samples`` are newest first; the slope is taken oldest to newest so a
    negative value means vegetation is declining.
    """
    if len(samples) < 2:
        return 0.0

    recent = [s.ndvi for s in samples[:window]]
    recent.reverse()
    return linear_regression_slope(recent)
