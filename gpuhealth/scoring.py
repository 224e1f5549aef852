"""Composite health scoring.

``score`` is a pure function: identical inputs always produce an identical
``HealthScore``. Nothing here reads the clock or keeps state.
"""

import math

from .config import Thresholds
from .models import HealthScore, MemoryHealth, MetricSample, TrendSummary
from .trends import power_pct

TEMPERATURE_WEIGHT = 0.4
POWER_WEIGHT = 0.3
MEMORY_WEIGHT = 0.3


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    # Trim float noise first so e.g. 49.4999999999 and 49.5 agree
    return int(math.floor(round(value, 9) + 0.5))


def piecewise(value: float, baseline: float, warn: float, crit: float, warn_score: float) -> float:
    """100 up to ``baseline``, ``warn_score`` at ``warn``, 0 from ``crit`` on."""
    if value <= baseline:
        return 100.0
    if value <= warn:
        return 100.0 - (100.0 - warn_score) * (value - baseline) / (warn - baseline)
    if value < crit:
        return warn_score * (crit - value) / (crit - warn)
    return 0.0


def temperature_component(sample: MetricSample, thresholds: Thresholds) -> float:
    return clamp(piecewise(
        sample.temperature_c,
        thresholds.temp_baseline,
        thresholds.temp_warn,
        thresholds.temp_crit,
        thresholds.warn_score,
    ))


def power_component(sample: MetricSample, trend: TrendSummary, thresholds: Thresholds) -> float:
    value = piecewise(
        power_pct(sample, thresholds),
        thresholds.power_baseline,
        thresholds.power_warn,
        thresholds.power_crit,
        thresholds.warn_score,
    )
    current, best = trend.current_efficiency, trend.best_efficiency
    if current is not None and best:
        ratio = min(1.0, current / best)
        value -= thresholds.efficiency_penalty * (1.0 - ratio)
    if trend.power_spikes > thresholds.spike_limit:
        value -= thresholds.spike_penalty
    return clamp(value)


def memory_component(sample: MetricSample, memory: MemoryHealth, thresholds: Thresholds) -> float:
    value = piecewise(
        sample.memory_pct,
        thresholds.mem_baseline,
        thresholds.mem_warn,
        thresholds.mem_crit,
        thresholds.warn_score,
    )
    if memory.leak_suspected:
        value -= thresholds.leak_penalty
    value -= thresholds.fragmentation_weight * memory.fragmentation_pressure
    return clamp(value)


def score(
    sample: MetricSample,
    trend: TrendSummary,
    memory: MemoryHealth,
    thresholds: Thresholds,
) -> HealthScore:
    """Combine the three sub-scores into the composite health score."""
    temperature = temperature_component(sample, thresholds)
    power = power_component(sample, trend, thresholds)
    mem = memory_component(sample, memory, thresholds)
    overall = round_half_up(
        TEMPERATURE_WEIGHT * temperature + POWER_WEIGHT * power + MEMORY_WEIGHT * mem
    )
    return HealthScore(
        overall=int(clamp(overall)),
        temperature_component=temperature,
        power_component=power,
        memory_component=mem,
    )
