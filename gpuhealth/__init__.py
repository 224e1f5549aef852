"""
GPU Health - accelerator telemetry analytics

Bounded per-device history, trend statistics, composite health scores and
deduplicated alerts computed from a stream of hardware samples.
"""

__version__ = "0.1.0"

from .config import MonitorConfig, Thresholds, ThresholdStore
from .errors import GpuHealthError, InvalidThresholds, UnknownDevice
from .history import HistoryBuffer, HistoryStore, HistoryWindow
from .models import (
    Alert,
    AlertCategory,
    AlertSeverity,
    AlertTransition,
    HealthScore,
    HealthSnapshot,
    HealthStatus,
    MemoryHealth,
    Metric,
    MetricSample,
    OutOfRangeSample,
    TransitionKind,
    TrendStats,
    TrendSummary,
)
from .alerts import AlertEngine
from .registry import DeviceRegistry, DeviceSession, TickResult

__all__ = [
    "MonitorConfig",
    "Thresholds",
    "ThresholdStore",
    "GpuHealthError",
    "InvalidThresholds",
    "UnknownDevice",
    "HistoryBuffer",
    "HistoryStore",
    "HistoryWindow",
    "Alert",
    "AlertCategory",
    "AlertSeverity",
    "AlertTransition",
    "HealthScore",
    "HealthSnapshot",
    "HealthStatus",
    "MemoryHealth",
    "Metric",
    "MetricSample",
    "OutOfRangeSample",
    "TransitionKind",
    "TrendStats",
    "TrendSummary",
    "AlertEngine",
    "DeviceRegistry",
    "DeviceSession",
    "TickResult",
]
