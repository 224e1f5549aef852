"""Heuristic memory leak and fragmentation detection.

Works on the memory-usage series only (percent of device memory). Neither
signal is ground truth: without vendor-specific allocator APIs the best we
can do is read patterns in the usage curve, so results carry
``heuristic=True`` and a confidence that grows with the number of samples.
"""

from typing import Iterable, List

import numpy as np

from .config import Thresholds
from .models import MemoryHealth
from .trends import Point, slope

# One minute of samples at 1 Hz before the heuristics are fully trusted
FULL_CONFIDENCE_SAMPLES = 60

_EPS = 1e-9
_MAX_RATIO = 100.0


def growth_ratio(values: np.ndarray) -> float:
    """Mean of the newest third divided by the mean of the oldest third."""
    third = len(values) // 3
    if third == 0:
        return 1.0
    oldest = float(values[:third].mean())
    newest = float(values[-third:].mean())
    return min(newest / max(oldest, _EPS), _MAX_RATIO)


def monotonic_fraction(values: np.ndarray) -> float:
    """Share of consecutive deltas that do not decrease."""
    if len(values) < 2:
        return 0.0
    deltas = np.diff(values)
    return float(np.count_nonzero(deltas >= 0) / deltas.size)


def fragmentation_pressure(values: np.ndarray, delta_scale: float) -> float:
    """Score 0..100: jittery usage at high occupancy scores highest."""
    if len(values) < 2 or delta_scale <= 0:
        return 0.0
    jitter = float(np.diff(values).std())
    occupancy = float(np.clip(values.mean(), 0.0, 100.0)) / 100.0
    return float(np.clip(100.0 * min(1.0, jitter / delta_scale) * occupancy, 0.0, 100.0))


def detect(points: Iterable[Point], thresholds: Thresholds) -> MemoryHealth:
    """Analyze a memory-usage window."""
    pts: List[Point] = list(points)
    values = np.array([v for _, v in pts], dtype=float)
    n = len(values)
    if n == 0:
        return MemoryHealth()

    ratio = growth_ratio(values)
    fraction = monotonic_fraction(values)
    leak = (
        n >= thresholds.leak_min_samples
        and ratio >= thresholds.leak_ratio
        and fraction >= thresholds.leak_monotonic_fraction
    )
    return MemoryHealth(
        leak_suspected=bool(leak),
        fragmentation_pressure=fragmentation_pressure(values, thresholds.fragmentation_delta_scale),
        usage_trend_slope=slope(pts),
        growth_ratio=ratio,
        monotonic_fraction=fraction,
        confidence=min(1.0, n / FULL_CONFIDENCE_SAMPLES),
    )
