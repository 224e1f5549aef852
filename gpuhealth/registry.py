"""Per-device sessions and the single ingestion entry point."""

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import structlog

from . import memory, scoring, trends
from .alerts import AlertEngine
from .config import ThresholdStore
from .errors import UnknownDevice
from .history import DEFAULT_CAPACITY, HistoryBuffer, HistoryStore
from .ingest import sanitize
from .models import (
    AlertTransition,
    DeviceId,
    HealthSnapshot,
    Metric,
    MetricSample,
)

logger = structlog.get_logger(__name__)


@dataclass
class DeviceSession:
    """Everything the monitor knows about one device."""
    device: DeviceId
    history: HistoryBuffer
    alerts: AlertEngine
    snapshot: HealthSnapshot
    last_tick_at: Optional[float] = None  # registry clock
    uptime_seconds: float = 0.0
    tick_count: int = 0


@dataclass(frozen=True)
class TickResult:
    snapshot: HealthSnapshot
    transitions: List[AlertTransition] = field(default_factory=list)


class DeviceRegistry:
    """Owns all device sessions and the currently selected device.

    Each registry is independent; tests and callers construct their own.
    Ticks for different devices touch disjoint state. Readers get immutable
    snapshots that each tick replaces as a whole.
    """

    def __init__(
        self,
        thresholds: Optional[ThresholdStore] = None,
        capacity: int = DEFAULT_CAPACITY,
        interval: float = 1.0,
        stale_after_intervals: int = 5,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.thresholds = thresholds or ThresholdStore()
        self.store = HistoryStore(capacity)
        self.interval = interval
        self.stale_after_intervals = stale_after_intervals
        self._clock = clock
        self._sessions: Dict[DeviceId, DeviceSession] = {}
        self._selected: Optional[DeviceId] = None
        self._lock = threading.Lock()

    @property
    def stale_after_seconds(self) -> float:
        return self.interval * self.stale_after_intervals

    def register(self, device: DeviceId) -> DeviceSession:
        """Return the device's session, creating an empty one if needed."""
        session = self._sessions.get(device)
        if session is not None:
            return session
        with self._lock:
            session = self._sessions.get(device)
            if session is None:
                session = DeviceSession(
                    device=device,
                    history=self.store.buffer(device),
                    alerts=AlertEngine(device, self.thresholds.current().alert_history_size),
                    snapshot=HealthSnapshot.no_data(device),
                )
                self._sessions[device] = session
                if self._selected is None:
                    self._selected = device
                logger.info("Device session created", device=device)
        return session

    def tick(self, device: DeviceId, sample: MetricSample) -> TickResult:
        """Ingest one sample and publish the device's new snapshot.

        Every stage runs against the retained window plus the new sample
        before anything is stored, so a tick that raises leaves the session
        exactly as it was.
        """
        thresholds = self.thresholds.current()
        session = self.register(device)

        previous = session.history.latest()
        clean, diagnostics = sanitize(sample, previous)

        window = (session.history.snapshot() + (clean,))[-session.history.capacity:]
        trend = trends.analyze(window, thresholds)
        memory_health = memory.detect(
            [(s.timestamp, Metric.MEMORY.value_of(s)) for s in window], thresholds
        )
        health_score = scoring.score(clean, trend, memory_health, thresholds)
        # Alert states commit here, so this stage runs last
        transitions = session.alerts.evaluate(clean, memory_health, thresholds, trend)

        session.history.append(clean)
        if previous is not None:
            gap = (clean.timestamp - previous.timestamp).total_seconds()
            if 0 < gap <= self.stale_after_seconds:
                session.uptime_seconds += gap

        session.tick_count += 1
        snapshot = HealthSnapshot(
            device=device,
            sample=clean,
            trend=trend,
            memory_health=memory_health,
            health_score=health_score,
            active_alerts=session.alerts.active_alerts(),
            diagnostics=diagnostics,
            uptime_seconds=session.uptime_seconds,
            tick_count=session.tick_count,
        )
        session.snapshot = snapshot
        session.last_tick_at = self._clock()

        logger.debug(
            "Tick complete",
            device=device,
            score=health_score.overall,
            status=health_score.status.value,
            alerts=len(snapshot.active_alerts),
        )
        return TickResult(snapshot=snapshot, transitions=transitions)

    def _session(self, device: DeviceId) -> DeviceSession:
        session = self._sessions.get(device)
        if session is None:
            raise UnknownDevice(device)
        return session

    def snapshot(self, device: DeviceId) -> HealthSnapshot:
        """Latest complete snapshot, flagged stale if ticks stopped arriving."""
        session = self._session(device)
        snapshot = session.snapshot
        if session.last_tick_at is not None:
            silent_for = self._clock() - session.last_tick_at
            if silent_for > self.stale_after_seconds:
                return snapshot.model_copy(update={"stale": True})
        return snapshot

    def history(self, device: DeviceId) -> Tuple[MetricSample, ...]:
        """Full retained history for export, oldest first."""
        return self._session(device).history.snapshot()

    def recent_alerts(self, device: DeviceId, limit: Optional[int] = None) -> List[AlertTransition]:
        """Latest alert transitions for the device, newest first."""
        return self._session(device).alerts.get_recent_alerts(limit)

    def select(self, device: DeviceId) -> None:
        self._session(device)
        self._selected = device
        logger.info("Device selected", device=device)

    @property
    def selected(self) -> Optional[DeviceId]:
        return self._selected

    def selected_snapshot(self) -> Optional[HealthSnapshot]:
        if self._selected is None:
            return None
        return self.snapshot(self._selected)

    def devices(self) -> List[DeviceId]:
        return sorted(self._sessions)

    def __contains__(self, device: DeviceId) -> bool:
        return device in self._sessions
