"""Threshold alerting with deduplication and debounce.

Each (device, category) pair runs a small state machine::

    Clear --condition--> Active(severity) --higher severity--> Active(higher)
    Active --no condition for debounce_ticks ticks--> Clear

While a condition persists the existing alert is updated in place
(``last_seen``, ``occurrence_count``) instead of a new one being raised.
The engine never rate-limits; it always reports the current state.
A suspected leak is its own category, so a memory threshold alert clears
on the usage reading alone.
"""

import itertools
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Tuple, Union

import structlog

from .config import Thresholds
from .models import (
    Alert,
    AlertCategory,
    AlertSeverity,
    AlertTransition,
    DeviceId,
    MemoryHealth,
    MetricSample,
    TransitionKind,
    TrendSummary,
)
from .trends import power_pct

logger = structlog.get_logger(__name__)

RECENT_ALERTS = 100


@dataclass(frozen=True)
class Condition:
    """A threshold breach observed on one tick."""
    severity: AlertSeverity
    message: str
    value: Optional[float] = None
    threshold: Optional[float] = None


@dataclass(frozen=True)
class Clear:
    pass


@dataclass(frozen=True)
class Active:
    alert: Alert
    clear_streak: int = 0


AlertState = Union[Clear, Active]


def _graded(
    value: float,
    warn: float,
    crit: float,
    warn_message: str,
    crit_message: str,
) -> Optional[Condition]:
    if value >= crit:
        return Condition(AlertSeverity.CRITICAL, crit_message, value, crit)
    if value >= warn:
        return Condition(AlertSeverity.WARNING, warn_message, value, warn)
    return None


def check_conditions(
    device: DeviceId,
    sample: MetricSample,
    memory: MemoryHealth,
    thresholds: Thresholds,
    trend: Optional[TrendSummary] = None,
) -> Dict[AlertCategory, Optional[Condition]]:
    """Evaluate every alert category for one sample.

    Rise and spike conditions need the window's ``trend``; without one they
    never fire.
    """
    temp = sample.temperature_c
    power = power_pct(sample, thresholds)
    mem = sample.memory_pct

    rise = trend.temperature_rise if trend is not None else 0.0
    spikes = trend.alert_window_spikes if trend is not None else 0

    return {
        AlertCategory.TEMPERATURE: _graded(
            temp,
            thresholds.temp_warn,
            thresholds.temp_crit,
            f"GPU {device} temperature {temp:.1f}°C is high",
            f"GPU {device} temperature {temp:.1f}°C exceeds safe limits",
        ),
        AlertCategory.TEMPERATURE_RISE: (
            Condition(
                AlertSeverity.WARNING,
                f"GPU {device} temperature rising rapidly (+{rise:.1f}°C in "
                f"{thresholds.temp_rise_window_seconds / 60:.0f} min)",
                rise,
                thresholds.temp_rise_celsius,
            )
            if rise > thresholds.temp_rise_celsius else None
        ),
        AlertCategory.POWER: _graded(
            power,
            thresholds.power_warn,
            thresholds.power_crit,
            f"GPU {device} power draw is high: {sample.power_watts:.0f} W ({power:.0f}% of limit)",
            f"GPU {device} power draw is critical: {sample.power_watts:.0f} W ({power:.0f}% of limit)",
        ),
        AlertCategory.POWER_SPIKES: (
            Condition(
                AlertSeverity.WARNING,
                f"GPU {device} detected {spikes} power spikes - check power supply stability",
                float(spikes),
                float(thresholds.spike_alert_count),
            )
            if spikes > thresholds.spike_alert_count else None
        ),
        AlertCategory.MEMORY: _graded(
            mem,
            thresholds.mem_warn,
            thresholds.mem_crit,
            f"GPU {device} memory usage is high: {mem:.1f}%",
            f"GPU {device} memory usage is critically high: {mem:.1f}%",
        ),
        AlertCategory.MEMORY_LEAK: (
            Condition(
                AlertSeverity.INFO,
                f"GPU {device} possible memory leak: usage grew {memory.growth_ratio:.2f}x across the window",
                memory.growth_ratio,
                thresholds.leak_ratio,
            )
            if memory.leak_suspected else None
        ),
        AlertCategory.THROTTLING: (
            Condition(AlertSeverity.WARNING, f"GPU {device} is throttling - performance reduced")
            if sample.throttled else None
        ),
    }


def step(
    state: AlertState,
    condition: Optional[Condition],
    sample: MetricSample,
    debounce_ticks: int,
    new_alert,
) -> Tuple[AlertState, Optional[AlertTransition]]:
    """Advance one (device, category) state machine by one tick.

    ``new_alert`` builds the Alert for a Clear->Active transition.
    """
    now = sample.timestamp

    if isinstance(state, Clear):
        if condition is None:
            return state, None
        alert = new_alert(condition, now)
        return Active(alert), AlertTransition(kind=TransitionKind.OPENED, alert=alert)

    alert = state.alert
    if condition is None:
        streak = state.clear_streak + 1
        if streak >= debounce_ticks:
            return Clear(), AlertTransition(kind=TransitionKind.CLEARED, alert=alert)
        return Active(alert, streak), None

    if condition.severity.rank > alert.severity.rank:
        upgraded = alert.model_copy(update={
            "severity": condition.severity,
            "message": condition.message,
            "value": condition.value,
            "threshold": condition.threshold,
            "last_seen": now,
            "occurrence_count": alert.occurrence_count + 1,
        })
        return Active(upgraded), AlertTransition(kind=TransitionKind.UPGRADED, alert=upgraded)

    update = {
        "value": condition.value,
        "last_seen": now,
        "occurrence_count": alert.occurrence_count + 1,
    }
    # A lower-severity reading keeps the threshold the alert was raised for
    if condition.severity is alert.severity:
        update["message"] = condition.message
        update["threshold"] = condition.threshold
    return Active(alert.model_copy(update=update)), None


class AlertEngine:
    """Alert state for one device, plus a bounded log of recent transitions."""

    def __init__(self, device: DeviceId, history_size: int = RECENT_ALERTS):
        self.device = device
        self._states: Dict[AlertCategory, AlertState] = {
            category: Clear() for category in AlertCategory
        }
        self._ids = itertools.count(1)
        self._recent: Deque[AlertTransition] = deque(maxlen=history_size)

    def _new_alert(self, category: AlertCategory):
        def build(condition: Condition, now) -> Alert:
            return Alert(
                id=f"gpu{self.device}-{category.value}-{next(self._ids)}",
                device=self.device,
                category=category,
                severity=condition.severity,
                message=condition.message,
                first_seen=now,
                last_seen=now,
                value=condition.value,
                threshold=condition.threshold,
            )
        return build

    def state(self, category: AlertCategory) -> AlertState:
        return self._states[category]

    def evaluate(
        self,
        sample: MetricSample,
        memory: MemoryHealth,
        thresholds: Thresholds,
        trend: Optional[TrendSummary] = None,
    ) -> List[AlertTransition]:
        """Run every category's state machine for one tick."""
        conditions = check_conditions(self.device, sample, memory, thresholds, trend)
        states = dict(self._states)
        transitions: List[AlertTransition] = []
        for category in AlertCategory:
            states[category], transition = step(
                states[category],
                conditions[category],
                sample,
                thresholds.debounce_ticks,
                self._new_alert(category),
            )
            if transition is not None:
                transitions.append(transition)
        self._states = states
        self._recent.extend(transitions)

        for transition in transitions:
            logger.info(
                "Alert transition",
                device=self.device,
                category=transition.alert.category.value,
                kind=transition.kind.value,
                severity=transition.alert.severity.value,
                alert_id=transition.alert.id,
            )
        return transitions

    def active_alerts(self) -> Tuple[Alert, ...]:
        return tuple(
            state.alert for state in self._states.values() if isinstance(state, Active)
        )

    def get_recent_alerts(self, limit: Optional[int] = None) -> List[AlertTransition]:
        """Most recent transitions first, at most ``limit`` of them."""
        recent = list(reversed(self._recent))
        return recent if limit is None else recent[:max(0, limit)]
