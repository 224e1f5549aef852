"""Tests for the sample sources."""

from datetime import datetime

from gpuhealth.collector import MockSampleSource, create_source
from gpuhealth.ingest import sanitize


def test_mock_source_yields_one_sample_per_device():
    source = MockSampleSource(device_count=3, now=lambda: datetime(2024, 1, 1))
    samples = source.sample_all()

    assert sorted(samples) == [0, 1, 2]
    for sample in samples.values():
        assert sample.power_limit_watts == 300.0
        assert 0 < sample.memory_pct < 100
        # Synthetic values never need clamping
        assert sanitize(sample)[1] == ()


def test_mock_source_values_move_between_ticks():
    source = MockSampleSource()
    first = source.sample_all()[0]
    for _ in range(10):
        later = source.sample_all()[0]
    assert later.temperature_c != first.temperature_c


def test_create_source_mock():
    source = create_source("mock", mock_device_count=2)
    assert isinstance(source, MockSampleSource)
    assert source.device_count == 2
