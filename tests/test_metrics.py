import pytest

from pulselink.metrics import (
    RawSample,
    SampleSlot,
    SmoothingWindow,
    Trend,
    TrendWindow,
    classify_trend,
    compute_slope,
)


def test_slope_of_even_steps():
    assert compute_slope([60, 62, 64, 66]) == pytest.approx(2.0)


@pytest.mark.parametrize("values", [
    [60, 61],
    [70, 71, 75, 90],
    [50, 50.5, 51, 80, 81],
])
def test_increasing_sequences_have_positive_slope(values):
    assert compute_slope(values) > 0


@pytest.mark.parametrize("values", [
    [90, 80],
    [100, 99, 97, 60],
])
def test_decreasing_sequences_have_negative_slope(values):
    assert compute_slope(values) < 0


def test_constant_sequence_has_zero_slope():
    assert compute_slope([72, 72, 72, 72, 72]) == pytest.approx(0.0, abs=1e-12)


def test_classify_trend_uses_symmetric_threshold():
    assert classify_trend(2.0, 0.5) == Trend.UP
    assert classify_trend(-2.0, 0.5) == Trend.DOWN
    assert classify_trend(0.5, 0.5) == Trend.FLAT
    assert classify_trend(-0.5, 0.5) == Trend.FLAT
    assert classify_trend(None, 0.5) == Trend.FLAT


def test_trend_window_evicts_oldest_first():
    window = TrendWindow(capacity=3)
    for value in [1, 2, 3, 4, 5]:
        window.push(value)
        assert window.size() <= 3
    assert window.get_values() == [3, 4, 5]


def test_trend_window_shrinking_capacity_keeps_newest():
    window = TrendWindow(capacity=5)
    for value in [1, 2, 3, 4, 5]:
        window.push(value)
    window.capacity = 2
    assert window.get_values() == [4, 5]


def test_trend_window_needs_two_values_for_slope():
    window = TrendWindow(capacity=4)
    assert window.slope() is None
    window.push(60)
    assert window.slope() is None
    window.push(70)
    assert window.slope() == pytest.approx(10.0)


def test_smoothing_window_keeps_entries_within_span():
    window = SmoothingWindow(span_seconds=3.0)
    for t in range(10):
        window.add(float(t), 60.0 + t)
    # Entries at t = 6, 7, 8, 9 are within 3 s of t = 9
    assert window.get_values() == [66.0, 67.0, 68.0, 69.0]
    assert window.mean() == pytest.approx(67.5)


def test_smoothing_window_is_chronological():
    window = SmoothingWindow(span_seconds=10.0)
    for t in [1.0, 2.0, 5.0]:
        window.add(t, 70.0)
    timestamps = [t for t, _ in window.buffer]
    assert timestamps == sorted(timestamps)


def test_smoothing_window_empty_mean():
    assert SmoothingWindow().mean() is None


def test_sample_slot_keeps_only_latest():
    slot = SampleSlot()
    assert slot.latest() is None
    slot.publish(RawSample(received_at=1.0, heart_rate=70))
    slot.publish(RawSample(received_at=2.0, heart_rate=71))
    assert slot.latest() == RawSample(received_at=2.0, heart_rate=71)
    slot.clear()
    assert slot.latest() is None
