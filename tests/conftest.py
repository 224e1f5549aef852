"""Shared fixtures for the health monitor tests."""

from datetime import datetime, timedelta

import pytest

from gpuhealth.config import Thresholds, ThresholdStore
from gpuhealth.models import MetricSample
from gpuhealth.registry import DeviceRegistry

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)
MEMORY_TOTAL = 1000.0


def make_sample(
    second: float = 0,
    temperature: float = 55.0,
    utilization: float = 50.0,
    memory_pct: float = 40.0,
    power: float = 120.0,
    power_limit: float = 300.0,
    throttled: bool = False,
    **overrides,
) -> MetricSample:
    """A comfortable sample at BASE_TIME + ``second`` unless overridden."""
    values = dict(
        timestamp=BASE_TIME + timedelta(seconds=second),
        utilization_pct=utilization,
        memory_used=MEMORY_TOTAL * memory_pct / 100.0,
        memory_total=MEMORY_TOTAL,
        temperature_c=temperature,
        power_watts=power,
        fan_pct=50.0,
        core_clock_mhz=1500.0,
        mem_clock_mhz=7000.0,
        throttled=throttled,
        power_limit_watts=power_limit,
    )
    values.update(overrides)
    return MetricSample(**values)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def thresholds():
    return Thresholds()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return DeviceRegistry(ThresholdStore(Thresholds()), clock=clock)
