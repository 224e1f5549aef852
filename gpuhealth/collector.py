"""Sample sources: NVML-backed hardware polling and a synthetic mock."""

import math
from datetime import datetime
from typing import Callable, Dict, Protocol

import pynvml
import structlog

from .models import DeviceId, MetricSample

logger = structlog.get_logger(__name__)


def _benign_throttle_reasons() -> int:
    """Throttle reason bits that are not a health concern."""
    return (
        pynvml.nvmlClocksThrottleReasonGpuIdle
        | pynvml.nvmlClocksThrottleReasonApplicationsClocksSetting
    )


class SampleSource(Protocol):
    """Anything that yields one sample per device per tick."""

    def sample_all(self) -> Dict[DeviceId, MetricSample]:
        ...

    def close(self) -> None:
        ...


class NvmlSampleSource:
    """Polls NVIDIA devices through NVML."""

    def __init__(self, now: Callable[[], datetime] = datetime.now):
        self._now = now
        self.device_count = 0
        self.available = False
        try:
            pynvml.nvmlInit()
            self.device_count = pynvml.nvmlDeviceGetCount()
            self.available = True
            logger.info("NVML initialized", devices=self.device_count)
        except pynvml.NVMLError as e:
            logger.error("NVML not available", error=str(e))

    def _optional(self, read: Callable[[], float], default: float = 0.0) -> float:
        try:
            return float(read())
        except pynvml.NVMLError:
            return default

    def sample_device(self, index: int) -> MetricSample:
        h = pynvml.nvmlDeviceGetHandleByIndex(index)
        util = pynvml.nvmlDeviceGetUtilizationRates(h)
        mem = pynvml.nvmlDeviceGetMemoryInfo(h)
        temp = pynvml.nvmlDeviceGetTemperature(h, pynvml.NVML_TEMPERATURE_GPU)

        limit = self._optional(lambda: pynvml.nvmlDeviceGetEnforcedPowerLimit(h) / 1000.0)
        reasons = int(self._optional(lambda: pynvml.nvmlDeviceGetCurrentClocksThrottleReasons(h)))

        return MetricSample(
            timestamp=self._now(),
            utilization_pct=float(util.gpu),
            memory_used=float(mem.used),
            memory_total=float(mem.total),
            temperature_c=float(temp),
            power_watts=self._optional(lambda: pynvml.nvmlDeviceGetPowerUsage(h) / 1000.0),  # mW -> W
            fan_pct=self._optional(lambda: pynvml.nvmlDeviceGetFanSpeed(h)),
            core_clock_mhz=self._optional(
                lambda: pynvml.nvmlDeviceGetClockInfo(h, pynvml.NVML_CLOCK_GRAPHICS)
            ),
            mem_clock_mhz=self._optional(
                lambda: pynvml.nvmlDeviceGetClockInfo(h, pynvml.NVML_CLOCK_MEM)
            ),
            throttled=bool(reasons & ~_benign_throttle_reasons()),
            power_limit_watts=limit or None,
        )

    def sample_all(self) -> Dict[DeviceId, MetricSample]:
        """Sample every device; a device that fails is skipped this tick."""
        if not self.available:
            return {}
        samples: Dict[DeviceId, MetricSample] = {}
        for i in range(self.device_count):
            try:
                samples[i] = self.sample_device(i)
            except pynvml.NVMLError as e:
                logger.error("GPU sampling failed", device=i, error=str(e))
        return samples

    def close(self) -> None:
        if not self.available:
            return
        try:
            pynvml.nvmlShutdown()
        except pynvml.NVMLError as e:
            logger.warning("NVML shutdown failed", error=str(e))
        self.available = False


class MockSampleSource:
    """Synthetic devices for demos and machines without a supported GPU.

    Values wobble slowly around a mid-load operating point so that history,
    trends and scores have something to show.
    """

    MEMORY_TOTAL = 8192 * 1024 * 1024  # 8 GB

    def __init__(self, device_count: int = 1, now: Callable[[], datetime] = datetime.now):
        self.device_count = device_count
        self._now = now
        self._tick = 0

    def sample_device(self, index: int) -> MetricSample:
        phase = self._tick / 30.0 + index
        wobble = math.sin(phase)
        return MetricSample(
            timestamp=self._now(),
            utilization_pct=45.0 + 10.0 * wobble,
            memory_used=self.MEMORY_TOTAL * (0.25 + 0.02 * wobble),
            memory_total=float(self.MEMORY_TOTAL),
            temperature_c=65.0 + 5.0 * wobble,
            power_watts=150.0 + 20.0 * wobble,
            fan_pct=60.0 + 5.0 * wobble,
            core_clock_mhz=1500.0,
            mem_clock_mhz=7000.0,
            throttled=False,
            power_limit_watts=300.0,
        )

    def sample_all(self) -> Dict[DeviceId, MetricSample]:
        samples = {i: self.sample_device(i) for i in range(self.device_count)}
        self._tick += 1
        return samples

    def close(self) -> None:
        pass


def create_source(kind: str, mock_device_count: int = 1) -> SampleSource:
    """Build the configured sample source."""
    if kind == "mock":
        return MockSampleSource(mock_device_count)
    return NvmlSampleSource()
