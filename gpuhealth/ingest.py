"""Range checks applied to raw samples before they enter history."""

import math
from typing import Dict, List, Optional, Tuple

import structlog

from .models import MetricSample, OutOfRangeSample

logger = structlog.get_logger(__name__)

MAX_TEMPERATURE_C = 150.0

# field -> (low, high); None means unbounded
_BOUNDS: Dict[str, Tuple[Optional[float], Optional[float]]] = {
    "utilization_pct": (0.0, 100.0),
    "fan_pct": (0.0, 100.0),
    "temperature_c": (0.0, MAX_TEMPERATURE_C),
    "power_watts": (0.0, None),
    "memory_total": (0.0, None),
    "core_clock_mhz": (0.0, None),
    "mem_clock_mhz": (0.0, None),
}


def _clamp(raw: float, low: Optional[float], high: Optional[float]) -> float:
    if not math.isfinite(raw):
        return low if low is not None else 0.0
    if low is not None and raw < low:
        return low
    if high is not None and raw > high:
        return high
    return raw


def sanitize(
    sample: MetricSample,
    previous: Optional[MetricSample] = None,
) -> Tuple[MetricSample, Tuple[OutOfRangeSample, ...]]:
    """Clamp out-of-range values and report each one that changed.

    ``previous`` is the last accepted sample for the same device; a
    timestamp that goes backwards is pulled up to it so that window
    arithmetic never sees negative gaps.
    """
    issues: List[OutOfRangeSample] = []
    fixes = {}

    for name, (low, high) in _BOUNDS.items():
        raw = float(getattr(sample, name))
        value = _clamp(raw, low, high)
        if value != raw:
            fixes[name] = value
            issues.append(OutOfRangeSample(field=name, raw=raw, clamped=value))

    total = fixes.get("memory_total", sample.memory_total)
    raw_used = float(sample.memory_used)
    used = _clamp(raw_used, 0.0, total if total > 0 else None)
    if used != raw_used:
        fixes["memory_used"] = used
        issues.append(OutOfRangeSample(field="memory_used", raw=raw_used, clamped=used))

    limit = sample.power_limit_watts
    if limit is not None and (not math.isfinite(limit) or limit <= 0):
        fixes["power_limit_watts"] = None
        issues.append(OutOfRangeSample(field="power_limit_watts", raw=float(limit), clamped=0.0))

    if previous is not None and sample.timestamp < previous.timestamp:
        fixes["timestamp"] = previous.timestamp
        issues.append(OutOfRangeSample(
            field="timestamp",
            raw=sample.timestamp.timestamp(),
            clamped=previous.timestamp.timestamp(),
        ))

    if not fixes:
        return sample, ()

    for issue in issues:
        logger.warning(
            "Out-of-range sample value clamped",
            field=issue.field,
            raw=issue.raw,
            clamped=issue.clamped,
        )
    return sample.model_copy(update=fixes), tuple(issues)
