"""Tests for the composite health score."""

import pytest

from gpuhealth import scoring, trends
from gpuhealth.config import Thresholds
from gpuhealth.models import HealthStatus, MemoryHealth

from conftest import make_sample


def score_one(sample, thresholds, memory=None):
    summary = trends.analyze([sample], thresholds)
    return scoring.score(sample, summary, memory or MemoryHealth(), thresholds)


@pytest.mark.parametrize("value,expected", [
    (40.0, 100.0),
    (60.0, 100.0),
    (70.0, 80.0),
    (80.0, 60.0),
    (85.0, 30.0),
    (90.0, 0.0),
    (120.0, 0.0),
])
def test_piecewise_breakpoints(value, expected):
    assert scoring.piecewise(value, 60.0, 80.0, 90.0, 60.0) == pytest.approx(expected)


def test_baseline_sample_scores_100(thresholds):
    sample = make_sample(temperature=60.0, power=150.0, power_limit=300.0, memory_pct=50.0)
    result = score_one(sample, thresholds)
    assert result.overall == 100
    assert result.status is HealthStatus.EXCELLENT


def test_everything_at_critical_scores_0(thresholds):
    sample = make_sample(temperature=90.0, power=95.0, power_limit=100.0, memory_pct=95.0)
    result = score_one(sample, thresholds)
    assert result.overall == 0
    assert result.temperature_component == 0.0
    assert result.power_component == 0.0
    assert result.memory_component == 0.0
    assert result.status is HealthStatus.CRITICAL


def test_overall_is_rounded_weighted_sum(thresholds):
    sample = make_sample(temperature=85.0, power=270.0, power_limit=300.0, memory_pct=70.0)
    result = score_one(sample, thresholds)
    weighted = (
        0.4 * result.temperature_component
        + 0.3 * result.power_component
        + 0.3 * result.memory_component
    )
    assert result.overall == scoring.round_half_up(weighted)
    assert 0 <= result.overall <= 100


def test_score_is_deterministic(thresholds):
    sample = make_sample(temperature=83.3, power=201.0, memory_pct=66.6)
    assert score_one(sample, thresholds) == score_one(sample, thresholds)


def test_round_half_up():
    assert scoring.round_half_up(49.5) == 50
    assert scoring.round_half_up(49.4999999999) == 50
    assert scoring.round_half_up(49.49) == 49
    assert scoring.round_half_up(0.5) == 1


@pytest.mark.parametrize("overall,status", [
    (100, HealthStatus.EXCELLENT),
    (90, HealthStatus.EXCELLENT),
    (89, HealthStatus.GOOD),
    (70, HealthStatus.GOOD),
    (69, HealthStatus.WARNING),
    (50, HealthStatus.WARNING),
    (49, HealthStatus.CRITICAL),
    (0, HealthStatus.CRITICAL),
])
def test_status_bands(overall, status):
    assert HealthStatus.from_score(overall) is status


def test_leak_and_fragmentation_reduce_memory_component(thresholds):
    sample = make_sample(memory_pct=40.0)
    leaky = MemoryHealth(leak_suspected=True, fragmentation_pressure=50.0)
    result = score_one(sample, thresholds, memory=leaky)
    assert result.memory_component == pytest.approx(100.0 - 20.0 - 0.2 * 50.0)


def test_efficiency_drop_reduces_power_component(thresholds):
    efficient = make_sample(0, utilization=90.0, power=120.0)
    wasteful = make_sample(1, utilization=45.0, power=120.0)
    summary = trends.analyze([efficient, wasteful], thresholds)

    result = scoring.score(wasteful, summary, MemoryHealth(), thresholds)
    # Half the best efficiency costs half the penalty
    assert result.power_component == pytest.approx(100.0 - 15.0)


def test_power_spikes_reduce_power_component(thresholds):
    samples = [
        make_sample(i, utilization=50.0, power=100.0 + 25.0 * i)
        for i in range(12)
    ]
    summary = trends.analyze(samples, thresholds)
    assert summary.power_spikes > thresholds.spike_limit

    # Without the efficiency term only the spike penalty applies
    flat = summary.model_copy(update={"current_efficiency": None})
    result = scoring.score(make_sample(power=100.0), flat, MemoryHealth(), thresholds)
    assert result.power_component == pytest.approx(100.0 - thresholds.spike_penalty)


def test_missing_power_limit_uses_default(thresholds):
    sample = make_sample(power=255.0, power_limit=None)
    summary = trends.analyze([sample], thresholds)
    # 85% of the 300 W default sits exactly on the warn breakpoint
    assert scoring.power_component(sample, summary, thresholds) == pytest.approx(60.0)


def test_custom_warn_score():
    custom = Thresholds(warn_score=40.0)
    sample = make_sample(temperature=80.0)
    assert scoring.temperature_component(sample, custom) == pytest.approx(40.0)
