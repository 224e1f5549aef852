"""Data models for the GPU health monitor."""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, computed_field

DeviceId = int


class Metric(str, Enum):
    """Tracked per-sample series."""
    UTILIZATION = "utilization"
    MEMORY = "memory"  # percent of total
    TEMPERATURE = "temperature"
    POWER = "power"  # watts
    FAN = "fan"
    CORE_CLOCK = "core_clock"
    MEM_CLOCK = "mem_clock"

    def value_of(self, sample: "MetricSample") -> float:
        """Read this metric from a sample."""
        if self is Metric.MEMORY:
            return sample.memory_pct
        return float(getattr(sample, _SAMPLE_FIELDS[self]))


_SAMPLE_FIELDS = {
    Metric.UTILIZATION: "utilization_pct",
    Metric.TEMPERATURE: "temperature_c",
    Metric.POWER: "power_watts",
    Metric.FAN: "fan_pct",
    Metric.CORE_CLOCK: "core_clock_mhz",
    Metric.MEM_CLOCK: "mem_clock_mhz",
}


class MetricSample(BaseModel):
    """One tick of telemetry for one device.

    Values are stored as reported; range checks happen at ingestion.
    """
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    utilization_pct: float = 0.0
    memory_used: float = 0.0  # bytes
    memory_total: float = 0.0  # bytes
    temperature_c: float = 0.0
    power_watts: float = 0.0
    fan_pct: float = 0.0
    core_clock_mhz: float = 0.0
    mem_clock_mhz: float = 0.0
    throttled: bool = False
    power_limit_watts: Optional[float] = None

    @property
    def memory_pct(self) -> float:
        if self.memory_total <= 0:
            return 0.0
        return self.memory_used * 100.0 / self.memory_total


class OutOfRangeSample(BaseModel):
    """Record of a sample value that was clamped at ingestion."""
    model_config = ConfigDict(frozen=True)

    field: str
    raw: float
    clamped: float


class TrendStats(BaseModel):
    """Rolling statistics for one metric over the retained window."""
    model_config = ConfigDict(frozen=True)

    metric: Metric
    count: int = 0
    mean: float = 0.0
    minimum: float = 0.0
    maximum: float = 0.0
    slope: float = 0.0  # units per second
    peak: float = 0.0
    peak_at: Optional[datetime] = None
    seconds_above_warn: float = 0.0


class TrendSummary(BaseModel):
    """Everything the trend analyzer derives from one window."""
    model_config = ConfigDict(frozen=True)

    stats: Dict[Metric, TrendStats]
    window_seconds: float = 0.0
    current_efficiency: Optional[float] = None  # utilization % per watt
    best_efficiency: Optional[float] = None
    power_spikes: int = 0  # over spike_lookback deltas, for scoring
    alert_window_spikes: int = 0  # over spike_alert_lookback deltas
    temperature_rise: float = 0.0  # degrees over temp_rise_window_seconds

    def get(self, metric: Metric) -> TrendStats:
        return self.stats.get(metric) or TrendStats(metric=metric)


class MemoryHealth(BaseModel):
    """Output of the memory leak / fragmentation heuristics.

    ``heuristic`` is always true: no vendor-neutral API reports real
    fragmentation, so these values are estimates from usage patterns.
    """
    model_config = ConfigDict(frozen=True)

    leak_suspected: bool = False
    fragmentation_pressure: float = 0.0  # 0..100
    usage_trend_slope: float = 0.0  # memory percent per second
    growth_ratio: float = 1.0
    monotonic_fraction: float = 0.0
    confidence: float = 0.0
    heuristic: bool = True


class HealthStatus(str, Enum):
    """Health bands derived from the composite score."""
    EXCELLENT = "excellent"
    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"

    @classmethod
    def from_score(cls, overall: int) -> "HealthStatus":
        if overall >= 90:
            return cls.EXCELLENT
        if overall >= 70:
            return cls.GOOD
        if overall >= 50:
            return cls.WARNING
        return cls.CRITICAL

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def emoji(self) -> str:
        return {
            HealthStatus.EXCELLENT: "🟢",
            HealthStatus.GOOD: "🔵",
            HealthStatus.WARNING: "🟡",
            HealthStatus.CRITICAL: "🔴",
        }[self]


class HealthScore(BaseModel):
    """Composite health score and its components (all 0..100)."""
    model_config = ConfigDict(frozen=True)

    overall: int
    temperature_component: float
    power_component: float
    memory_component: float

    @computed_field
    @property
    def status(self) -> HealthStatus:
        return HealthStatus.from_score(self.overall)


class AlertCategory(str, Enum):
    TEMPERATURE = "temperature"
    TEMPERATURE_RISE = "temperature_rise"
    POWER = "power"
    POWER_SPIKES = "power_spikes"
    MEMORY = "memory"
    MEMORY_LEAK = "memory_leak"
    THROTTLING = "throttling"


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    AlertSeverity.INFO: 0,
    AlertSeverity.WARNING: 1,
    AlertSeverity.CRITICAL: 2,
}


class Alert(BaseModel):
    """An alert for one (device, category) condition episode."""
    model_config = ConfigDict(frozen=True)

    id: str
    device: DeviceId
    category: AlertCategory
    severity: AlertSeverity
    message: str
    first_seen: datetime
    last_seen: datetime
    occurrence_count: int = 1
    value: Optional[float] = None
    threshold: Optional[float] = None


class TransitionKind(str, Enum):
    OPENED = "opened"
    UPGRADED = "upgraded"
    CLEARED = "cleared"


class AlertTransition(BaseModel):
    """A change in alert state handed to notification consumers."""
    model_config = ConfigDict(frozen=True)

    kind: TransitionKind
    alert: Alert


class HealthSnapshot(BaseModel):
    """Immutable result of the latest complete tick for one device."""
    model_config = ConfigDict(frozen=True)

    device: DeviceId
    sample: Optional[MetricSample] = None
    trend: Optional[TrendSummary] = None
    memory_health: Optional[MemoryHealth] = None
    health_score: Optional[HealthScore] = None
    active_alerts: Tuple[Alert, ...] = ()
    diagnostics: Tuple[OutOfRangeSample, ...] = ()
    stale: bool = False
    uptime_seconds: float = 0.0
    tick_count: int = 0

    @classmethod
    def no_data(cls, device: DeviceId) -> "HealthSnapshot":
        """Snapshot for a device that has not completed a tick yet."""
        return cls(device=device)

    @computed_field
    @property
    def has_data(self) -> bool:
        return self.sample is not None

    @property
    def status(self) -> Optional[HealthStatus]:
        if self.health_score is None:
            return None
        return self.health_score.status
