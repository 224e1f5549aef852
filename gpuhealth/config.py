"""Configuration for the GPU health monitor."""

from typing import Any, Literal

import structlog
from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import InvalidThresholds

logger = structlog.get_logger(__name__)


class MonitorConfig(BaseSettings):
    """Process-level settings for the monitor service."""

    model_config = SettingsConfigDict(
        env_prefix="GPUHEALTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service
    service_name: str = "gpuhealth"
    service_port: int = 8005
    host: str = "127.0.0.1"

    # Sampling
    collection_interval: float = 1.0  # seconds per tick
    history_capacity: int = 300  # 5 minutes at 1 Hz
    stale_after_intervals: int = 5
    source: Literal["nvml", "mock"] = "nvml"
    mock_device_count: int = 1

    # Notifications
    notifications_enabled: bool = True
    notification_min_interval: float = 10.0
    desktop_notifications: bool = True

    # Message bus
    publish_to_bus: bool = False
    nats_url: str = "nats://localhost:4222"
    nats_max_reconnect_attempts: int = 10

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False


class Thresholds(BaseSettings):
    """Alert thresholds and scoring curve shape.

    Temperatures are degrees Celsius, power values are percent of the board
    power limit and memory values are percent of total device memory.
    """

    model_config = SettingsConfigDict(
        env_prefix="GPUHEALTH_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    temp_baseline: float = 60.0
    temp_warn: float = 80.0
    temp_crit: float = 90.0

    power_baseline: float = 50.0
    power_warn: float = 85.0
    power_crit: float = 95.0
    default_power_limit_watts: float = Field(300.0, gt=0)

    mem_baseline: float = 50.0
    mem_warn: float = 80.0
    mem_crit: float = 95.0

    # Sub-score reached exactly at a *_warn threshold
    warn_score: float = 60.0

    # Power efficiency and stability
    efficiency_min_utilization: float = Field(10.0, ge=0)
    efficiency_penalty: float = Field(30.0, ge=0)
    spike_watts: float = Field(20.0, gt=0)
    spike_lookback: int = Field(10, ge=1)  # inter-sample deltas
    spike_limit: int = Field(5, ge=0)
    spike_penalty: float = Field(5.0, ge=0)

    # Memory heuristics
    leak_ratio: float = Field(1.10, gt=1.0)
    leak_monotonic_fraction: float = Field(0.6, ge=0, le=1)
    leak_min_samples: int = Field(10, ge=3)
    leak_penalty: float = Field(20.0, ge=0)
    fragmentation_delta_scale: float = Field(5.0, gt=0)
    fragmentation_weight: float = Field(0.2, ge=0)

    # Alerting
    debounce_ticks: int = Field(3, ge=1)
    temp_rise_celsius: float = Field(15.0, gt=0)
    temp_rise_window_seconds: float = Field(300.0, gt=0)
    spike_alert_count: int = Field(10, ge=1)
    spike_alert_lookback: int = Field(60, ge=1)  # inter-sample deltas
    alert_history_size: int = Field(100, ge=1)

    @model_validator(mode="after")
    def _check_ordering(self) -> "Thresholds":
        for name in ("temp", "power", "mem"):
            baseline = getattr(self, f"{name}_baseline")
            warn = getattr(self, f"{name}_warn")
            crit = getattr(self, f"{name}_crit")
            if not baseline < warn < crit:
                raise ValueError(
                    f"{name} thresholds must satisfy baseline < warn < crit "
                    f"(got {baseline}, {warn}, {crit})"
                )
        if not 0.0 <= self.warn_score <= 100.0:
            raise ValueError("warn_score must be within 0..100")
        if self.spike_alert_count >= self.spike_alert_lookback:
            raise ValueError("spike_alert_count must be below spike_alert_lookback")
        return self


class ThresholdStore:
    """Holds the live thresholds; readers always see one complete value.

    Updates build a new validated ``Thresholds`` and swap the reference, so a
    tick that already read the old value keeps using it until it finishes.
    """

    def __init__(self, thresholds: Thresholds | None = None):
        self._current = thresholds or Thresholds()

    def current(self) -> Thresholds:
        return self._current

    def replace(self, thresholds: Thresholds) -> None:
        self._current = thresholds
        logger.info("Thresholds replaced")

    def update(self, **changes: Any) -> Thresholds:
        """Apply a partial update; the previous value stays on failure."""
        merged = {**self._current.model_dump(), **changes}
        try:
            updated = Thresholds(**merged)
        except ValidationError as e:
            logger.warning("Rejected threshold update", changes=changes, error=str(e))
            raise InvalidThresholds(str(e)) from e
        self._current = updated
        logger.info("Thresholds updated", changes=changes)
        return updated


def get_config() -> MonitorConfig:
    """Get a configuration instance from the environment."""
    return MonitorConfig()
