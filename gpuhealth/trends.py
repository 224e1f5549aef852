"""Rolling statistics over a device's retained history.

Every function here is pure: the result depends only on the points or
samples passed in, so windows can be analyzed in isolation.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .config import Thresholds
from .models import Metric, MetricSample, TrendStats, TrendSummary

Point = Tuple[datetime, float]


def _elapsed(points: Sequence[Point]) -> np.ndarray:
    """Seconds since the first point, one entry per point."""
    origin = points[0][0]
    return np.array([(ts - origin).total_seconds() for ts, _ in points], dtype=float)


def rolling(points: Iterable[Point]) -> Tuple[int, float, float, float]:
    """Return ``(count, mean, min, max)``; zeros for an empty window."""
    values = np.array([v for _, v in points], dtype=float)
    if values.size == 0:
        return 0, 0.0, 0.0, 0.0
    return int(values.size), float(values.mean()), float(values.min()), float(values.max())


def slope(points: Iterable[Point]) -> float:
    """Least-squares slope of value over time, in units per second."""
    pts = list(points)
    if len(pts) < 2:
        return 0.0
    x = _elapsed(pts)
    y = np.array([v for _, v in pts], dtype=float)
    dx = x - x.mean()
    denom = float(np.dot(dx, dx))
    if denom == 0.0:
        return 0.0
    return float(np.dot(dx, y - y.mean()) / denom)


def seconds_above(points: Iterable[Point], threshold: float) -> float:
    """Time spent at or above ``threshold`` using the real sample gaps.

    A sample at or above the threshold accounts for the gap back to the
    previous sample. The first sample has no predecessor and accounts for
    the window's mean interval instead.

    A window of fewer than two samples has no interval to measure and
    always yields 0, so a lone sample above the threshold counts nothing
    until its successor arrives; at 1 Hz the total then jumps to 2.
    """
    pts = list(points)
    if len(pts) < 2:
        return 0.0
    x = _elapsed(pts)
    gaps = np.clip(np.diff(x), 0.0, None)
    above = np.array([v >= threshold for _, v in pts[1:]], dtype=bool)
    total = float(gaps[above].sum())
    if pts[0][1] >= threshold:
        total += float(x[-1] / (len(pts) - 1))
    return total


def peak(points: Iterable[Point]) -> Tuple[float, Optional[datetime]]:
    """Highest value and when it first occurred."""
    best: Optional[Point] = None
    for ts, value in points:
        if best is None or value > best[1]:
            best = (ts, value)
    if best is None:
        return 0.0, None
    return best[1], best[0]


def power_limit(sample: MetricSample, thresholds: Thresholds) -> float:
    if sample.power_limit_watts and sample.power_limit_watts > 0:
        return sample.power_limit_watts
    return thresholds.default_power_limit_watts


def power_pct(sample: MetricSample, thresholds: Thresholds) -> float:
    """Power draw as a percent of the board limit."""
    return sample.power_watts * 100.0 / power_limit(sample, thresholds)


def efficiency(sample: MetricSample, thresholds: Thresholds) -> Optional[float]:
    """Utilization percent per watt, or None when the device is near idle."""
    if sample.power_watts <= 0 or sample.utilization_pct < thresholds.efficiency_min_utilization:
        return None
    return sample.utilization_pct / sample.power_watts


def count_spikes(powers: Sequence[float], jump_watts: float, lookback: int) -> int:
    """Count sudden power increases among the last ``lookback`` deltas."""
    if len(powers) < 2 or lookback <= 0:
        return 0
    recent = np.array(powers[-(lookback + 1):], dtype=float)
    return int(np.count_nonzero(np.diff(recent) > jump_watts))


def rise_over(points: Sequence[Point], seconds: float) -> float:
    """Latest value minus the oldest value no older than ``seconds``."""
    if len(points) < 2:
        return 0.0
    latest_at, latest = points[-1]
    cutoff = latest_at - timedelta(seconds=seconds)
    for ts, value in points:
        if ts >= cutoff:
            return latest - value
    return 0.0


def _warn_level(metric: Metric, latest: MetricSample, thresholds: Thresholds) -> Optional[float]:
    if metric is Metric.TEMPERATURE:
        return thresholds.temp_warn
    if metric is Metric.MEMORY:
        return thresholds.mem_warn
    if metric is Metric.POWER:
        return thresholds.power_warn / 100.0 * power_limit(latest, thresholds)
    return None


def metric_stats(
    metric: Metric,
    points: Iterable[Point],
    warn_level: Optional[float] = None,
) -> TrendStats:
    pts: List[Point] = list(points)
    count, mean, low, high = rolling(pts)
    top, top_at = peak(pts)
    return TrendStats(
        metric=metric,
        count=count,
        mean=mean,
        minimum=low,
        maximum=high,
        slope=slope(pts),
        peak=top,
        peak_at=top_at,
        seconds_above_warn=seconds_above(pts, warn_level) if warn_level is not None else 0.0,
    )


def analyze(samples: Sequence[MetricSample], thresholds: Thresholds) -> TrendSummary:
    """Derive trend statistics for every tracked metric from a window."""
    if not samples:
        return TrendSummary(stats={metric: TrendStats(metric=metric) for metric in Metric})

    latest = samples[-1]
    stats = {}
    for metric in Metric:
        points = [(s.timestamp, metric.value_of(s)) for s in samples]
        stats[metric] = metric_stats(metric, points, _warn_level(metric, latest, thresholds))

    efficiencies = [e for e in (efficiency(s, thresholds) for s in samples) if e is not None]
    powers = [s.power_watts for s in samples]
    temperatures = [(s.timestamp, s.temperature_c) for s in samples]
    return TrendSummary(
        stats=stats,
        window_seconds=(latest.timestamp - samples[0].timestamp).total_seconds(),
        current_efficiency=efficiency(latest, thresholds),
        best_efficiency=max(efficiencies) if efficiencies else None,
        power_spikes=count_spikes(powers, thresholds.spike_watts, thresholds.spike_lookback),
        alert_window_spikes=count_spikes(
            powers, thresholds.spike_watts, thresholds.spike_alert_lookback
        ),
        temperature_rise=rise_over(temperatures, thresholds.temp_rise_window_seconds),
    )
