"""Tests for device sessions and the tick pipeline."""

import pytest

from gpuhealth.config import Thresholds, ThresholdStore
from gpuhealth.errors import GpuHealthError, UnknownDevice
from gpuhealth.models import AlertCategory, HealthStatus, TransitionKind
from gpuhealth.registry import DeviceRegistry

from conftest import FakeClock, make_sample


def test_unknown_device_raises(registry):
    with pytest.raises(UnknownDevice) as excinfo:
        registry.snapshot(3)
    assert excinfo.value.device == 3
    assert isinstance(excinfo.value, GpuHealthError)

    with pytest.raises(UnknownDevice):
        registry.select(3)
    with pytest.raises(UnknownDevice):
        registry.history(3)
    assert registry.selected is None
    assert registry.selected_snapshot() is None


def test_registered_device_starts_with_no_data(registry):
    registry.register(2)
    snapshot = registry.snapshot(2)
    assert snapshot.device == 2
    assert not snapshot.has_data
    assert snapshot.health_score is None
    assert snapshot.status is None
    assert snapshot.active_alerts == ()


def test_first_device_is_selected(registry):
    registry.register(1)
    registry.register(0)
    assert registry.selected == 1
    assert registry.devices() == [0, 1]

    registry.select(0)
    assert registry.selected == 0
    assert registry.selected_snapshot().device == 0


def test_tick_produces_complete_snapshot(registry):
    result = registry.tick(0, make_sample(0))
    snapshot = result.snapshot

    assert snapshot.has_data
    assert snapshot.tick_count == 1
    assert snapshot.health_score.overall == 100
    assert snapshot.status is HealthStatus.EXCELLENT
    assert snapshot.trend is not None
    assert snapshot.memory_health.heuristic
    assert registry.snapshot(0) == snapshot
    assert 0 in registry


def test_snapshots_are_replaced_not_mutated(registry):
    first = registry.tick(0, make_sample(0, temperature=50.0)).snapshot
    registry.tick(0, make_sample(1, temperature=85.0))

    assert first.sample.temperature_c == 50.0
    assert first.active_alerts == ()
    assert registry.snapshot(0).sample.temperature_c == 85.0


def test_devices_are_isolated(registry):
    for i in range(5):
        registry.tick(0, make_sample(i, temperature=92.0))
    registry.tick(1, make_sample(0))

    assert registry.snapshot(0).active_alerts
    assert registry.snapshot(1).active_alerts == ()
    assert len(registry.history(0)) == 5
    assert len(registry.history(1)) == 1


def test_tick_reports_transitions(registry):
    result = registry.tick(0, make_sample(0, temperature=85.0))
    assert [t.kind for t in result.transitions] == [TransitionKind.OPENED]
    assert result.snapshot.active_alerts[0].category is AlertCategory.TEMPERATURE


def test_snapshot_goes_stale_when_ticks_stop(registry, clock):
    registry.tick(0, make_sample(0))
    clock.advance(registry.stale_after_seconds)
    assert not registry.snapshot(0).stale

    clock.advance(0.5)
    stale = registry.snapshot(0)
    assert stale.stale
    assert stale.tick_count == 1

    registry.tick(0, make_sample(10))
    assert not registry.snapshot(0).stale


def test_out_of_range_values_are_clamped_and_reported(registry):
    result = registry.tick(0, make_sample(0, temperature=400.0, utilization=-5.0))
    snapshot = result.snapshot

    assert snapshot.sample.temperature_c == 150.0
    assert snapshot.sample.utilization_pct == 0.0
    assert {d.field for d in snapshot.diagnostics} == {"temperature_c", "utilization_pct"}
    assert registry.history(0)[0].temperature_c == 150.0


def test_history_export_is_ordered_and_bounded(clock):
    registry = DeviceRegistry(capacity=5, clock=clock)
    for i in range(8):
        registry.tick(0, make_sample(i, temperature=40.0 + i))
    exported = registry.history(0)
    assert [s.temperature_c for s in exported] == [43.0, 44.0, 45.0, 46.0, 47.0]


def test_threshold_update_applies_on_next_tick(registry):
    registry.tick(0, make_sample(0, temperature=75.0))
    assert registry.snapshot(0).active_alerts == ()

    registry.thresholds.update(temp_baseline=50.0, temp_warn=70.0, temp_crit=85.0)
    result = registry.tick(0, make_sample(1, temperature=75.0))
    assert [t.kind for t in result.transitions] == [TransitionKind.OPENED]


def test_uptime_skips_gaps_longer_than_stale_window(registry):
    registry.tick(0, make_sample(0))
    registry.tick(0, make_sample(1))
    registry.tick(0, make_sample(2))
    # Collection paused for a minute
    registry.tick(0, make_sample(62))
    registry.tick(0, make_sample(63))
    assert registry.snapshot(0).uptime_seconds == 3.0


def test_backwards_timestamp_does_not_break_window():
    clock = FakeClock()
    registry = DeviceRegistry(ThresholdStore(Thresholds()), clock=clock)
    registry.tick(0, make_sample(5))
    result = registry.tick(0, make_sample(3))
    assert result.snapshot.sample.timestamp == make_sample(5).timestamp
    assert [d.field for d in result.snapshot.diagnostics] == ["timestamp"]
    assert result.snapshot.uptime_seconds == 0.0


def test_failed_tick_leaves_session_untouched(registry, monkeypatch):
    for i in range(3):
        registry.tick(0, make_sample(i, temperature=85.0))
    before = registry.snapshot(0)
    history = registry.history(0)
    active = registry.snapshot(0).active_alerts

    def broken_score(*args, **kwargs):
        raise RuntimeError("scoring failed")

    monkeypatch.setattr("gpuhealth.registry.scoring.score", broken_score)
    with pytest.raises(RuntimeError):
        registry.tick(0, make_sample(3, temperature=95.0))

    assert registry.history(0) == history
    assert registry.snapshot(0) == before
    assert registry.snapshot(0).tick_count == 3
    assert registry.snapshot(0).active_alerts == active
    assert registry.recent_alerts(0)[0].kind is TransitionKind.OPENED

    monkeypatch.undo()
    result = registry.tick(0, make_sample(3, temperature=95.0))
    assert [t.kind for t in result.transitions] == [TransitionKind.UPGRADED]
    assert result.snapshot.tick_count == 4


def test_rapid_temperature_rise_opens_alert(registry):
    opened = []
    for i in range(21):
        result = registry.tick(0, make_sample(i * 10, temperature=40.0 + i))
        opened.extend(
            t for t in result.transitions if t.alert.category is AlertCategory.TEMPERATURE_RISE
        )

    # +16 C after 160 s is the first reading past the 15 C limit
    assert [t.kind for t in opened] == [TransitionKind.OPENED]
    assert opened[0].alert.first_seen == make_sample(160).timestamp
    assert opened[0].alert.threshold == 15.0


def test_power_spikes_open_alert(registry):
    categories = set()
    for i in range(30):
        result = registry.tick(0, make_sample(i, power=100.0 if i % 2 == 0 else 130.0))
        categories.update(t.alert.category for t in result.transitions)

    assert categories == {AlertCategory.POWER_SPIKES}
    alert = registry.snapshot(0).active_alerts[0]
    assert alert.value == 15.0


def test_recent_alerts_per_device(registry):
    registry.tick(0, make_sample(0, temperature=85.0))
    registry.tick(1, make_sample(0))

    recent = registry.recent_alerts(0)
    assert [(t.kind, t.alert.category) for t in recent] == [
        (TransitionKind.OPENED, AlertCategory.TEMPERATURE),
    ]
    assert registry.recent_alerts(1) == []
    with pytest.raises(UnknownDevice):
        registry.recent_alerts(5)
