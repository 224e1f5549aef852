"""Tests for sample range checks."""

import math

from gpuhealth.ingest import MAX_TEMPERATURE_C, sanitize

from conftest import MEMORY_TOTAL, make_sample


def test_valid_sample_passes_through_unchanged():
    sample = make_sample(0)
    clean, issues = sanitize(sample)
    assert clean is sample
    assert issues == ()


def test_temperature_is_capped():
    clean, issues = sanitize(make_sample(temperature=500.0))
    assert clean.temperature_c == MAX_TEMPERATURE_C
    assert len(issues) == 1
    assert issues[0].field == "temperature_c"
    assert issues[0].raw == 500.0
    assert issues[0].clamped == MAX_TEMPERATURE_C


def test_negative_and_non_finite_values_go_to_low_bound():
    clean, issues = sanitize(make_sample(power=-3.0, fan_pct=math.nan, utilization=140.0))
    assert clean.power_watts == 0.0
    assert clean.fan_pct == 0.0
    assert clean.utilization_pct == 100.0
    assert {i.field for i in issues} == {"power_watts", "fan_pct", "utilization_pct"}


def test_memory_used_cannot_exceed_total():
    clean, issues = sanitize(make_sample(memory_used=MEMORY_TOTAL * 2))
    assert clean.memory_used == MEMORY_TOTAL
    assert clean.memory_pct == 100.0
    assert [i.field for i in issues] == ["memory_used"]


def test_invalid_power_limit_is_dropped():
    clean, issues = sanitize(make_sample(power_limit=0.0))
    assert clean.power_limit_watts is None
    assert [i.field for i in issues] == ["power_limit_watts"]


def test_timestamp_never_goes_backwards():
    previous = make_sample(10)
    clean, issues = sanitize(make_sample(4), previous)
    assert clean.timestamp == previous.timestamp
    assert [i.field for i in issues] == ["timestamp"]
