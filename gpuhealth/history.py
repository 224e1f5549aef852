"""Fixed-capacity per-device sample history."""

from collections import deque
from datetime import datetime, timedelta
from itertools import dropwhile, islice
from typing import Deque, Dict, Iterator, Optional, Tuple

from .models import DeviceId, Metric, MetricSample

DEFAULT_CAPACITY = 300  # 5 minutes at 1 Hz

Point = Tuple[datetime, float]


class HistoryBuffer:
    """Circular buffer of the most recent samples for one device."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._samples: Deque[MetricSample] = deque(maxlen=capacity)

    def append(self, sample: MetricSample) -> None:
        self._samples.append(sample)

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[MetricSample]:
        return iter(self._samples)

    def latest(self) -> Optional[MetricSample]:
        return self._samples[-1] if self._samples else None

    def snapshot(self) -> Tuple[MetricSample, ...]:
        """Copy of the retained samples, oldest first."""
        return tuple(self._samples)


class HistoryWindow:
    """Read-only view over the newest samples of a buffer.

    Iterating yields ``(timestamp, value)`` pairs for ``metric``, oldest
    first. Every iteration starts over from the buffer's current contents.
    With ``count`` the view holds at most that many samples; with
    ``seconds`` it holds the samples no older than that span before the
    newest one. Both limits may be combined.
    """

    def __init__(
        self,
        buffer: Optional[HistoryBuffer],
        metric: Metric,
        count: Optional[int] = None,
        seconds: Optional[float] = None,
    ):
        self._buffer = buffer
        self.metric = metric
        self.count = count
        self.seconds = seconds

    def _selected(self) -> Iterator[MetricSample]:
        """Lazily walk the buffer's matching samples, oldest first."""
        buf = self._buffer
        if buf is None or not len(buf):
            return iter(())
        start = 0
        if self.count is not None:
            start = max(0, len(buf) - max(0, self.count))
        samples: Iterator[MetricSample] = islice(buf, start, None)
        if self.seconds is not None:
            cutoff = buf.latest().timestamp - timedelta(seconds=self.seconds)
            samples = dropwhile(lambda s: s.timestamp < cutoff, samples)
        return samples

    def __iter__(self) -> Iterator[Point]:
        metric = self.metric
        return ((s.timestamp, metric.value_of(s)) for s in self._selected())

    def __len__(self) -> int:
        return sum(1 for _ in self._selected())

    def __bool__(self) -> bool:
        return next(self._selected(), None) is not None


class HistoryStore:
    """Per-device history buffers sharing one capacity."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self.capacity = capacity
        self._buffers: Dict[DeviceId, HistoryBuffer] = {}

    def buffer(self, device: DeviceId) -> HistoryBuffer:
        """Return the device's buffer, creating it on first use."""
        buf = self._buffers.get(device)
        if buf is None:
            buf = self._buffers.setdefault(device, HistoryBuffer(self.capacity))
        return buf

    def append(self, device: DeviceId, sample: MetricSample) -> None:
        self.buffer(device).append(sample)

    def window(
        self,
        device: DeviceId,
        metric: Metric,
        count: Optional[int] = None,
        seconds: Optional[float] = None,
    ) -> HistoryWindow:
        """View of the most recent ``metric`` values; empty for unknown devices."""
        return HistoryWindow(self._buffers.get(device), metric, count=count, seconds=seconds)

    def samples(self, device: DeviceId) -> Tuple[MetricSample, ...]:
        buf = self._buffers.get(device)
        return buf.snapshot() if buf is not None else ()

    def __contains__(self, device: DeviceId) -> bool:
        return device in self._buffers
